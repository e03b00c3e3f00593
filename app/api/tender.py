from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session, selectinload
from uuid import UUID
import logging

from app.db.session import get_db
from app.db.models import Tender
from app.schemas.tender import (
    TenderCreate, TenderDocumentLink, TenderDocumentOut, TenderOut, TenderUpdate, TenderStatusUpdate
)
from app.core.deps import Caller, get_current_user
from app.core.errors import InvalidTransition, NotFound, ValidationFailed
from app.services import tender_service
from app.services.bid_store import get_tender_or_404
from app.services.storage_service import get_document_store, read_upload
from app.utils.permissions import is_admin, require_admin
from app.utils.tender_state import TenderStateMachine, TenderStatus
from app.utils.pagination import Page, PaginationParams, create_paginated_response, paginate_query
from app.utils.cache import get_cached, set_cached, tender_key, invalidate_tender_cache
from app.utils.deadline import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenders", tags=["tenders"])


def tender_out(store, tender: Tender) -> TenderOut:
    """TenderOut with a signed download link on every attached document"""
    out = TenderOut.model_validate(tender)
    out.documents = [TenderDocumentOut(**view) for view in tender_service.tender_document_urls(store, tender)]
    return out


def get_visible_tender(db: Session, tender_id, current_user: Caller) -> Tender:
    """Drafts exist only for admins; everyone else gets 404"""
    tender = get_tender_or_404(db, tender_id)
    if tender.status == TenderStatus.DRAFT and not is_admin(current_user):
        raise NotFound("Tender not found")
    return tender


@router.post("/", response_model=TenderOut)
def create_tender(
    data: TenderCreate,
    db: Session = Depends(get_db),
    current_user: Caller = Depends(get_current_user)
):
    """
    Create a new tender in 'DRAFT' status.
    Must be published before it can receive bids.
    """
    require_admin(current_user)

    tender = Tender(
        **data.model_dump(),
        created_by=current_user.user_id,
        status=TenderStatus.DRAFT,
    )
    db.add(tender)
    db.commit()
    db.refresh(tender)

    logger.info(f"Tender created: {tender.id} '{tender.title}' by {current_user.user_id}")
    return tender


@router.get("/", response_model=Page[TenderOut])
def list_tenders(
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user)
):
    """
    List tenders with pagination, newest first.

    Suppliers only see tenders that have left DRAFT.
    """
    query = db.query(Tender).options(selectinload(Tender.documents)).order_by(Tender.created_at.desc())
    if not is_admin(current_user):
        query = query.filter(Tender.status != TenderStatus.DRAFT)
    items, total = paginate_query(query, pagination.skip, pagination.limit)
    return create_paginated_response(
        [tender_out(store, tender) for tender in items], total, pagination.skip, pagination.limit
    )


@router.get("/{tender_id}", response_model=TenderOut)
def get_tender(
    tender_id: UUID,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user)
):
    payload = get_cached(tender_key(tender_id))
    if payload is None:
        tender = get_tender_or_404(db, tender_id)
        payload = tender_out(store, tender).model_dump(mode="json")
        set_cached(tender_key(tender_id), payload)

    if payload["status"] == TenderStatus.DRAFT and not is_admin(current_user):
        raise NotFound("Tender not found")
    return payload


@router.put("/{tender_id}", response_model=TenderOut)
def update_tender(
    tender_id: UUID,
    data: TenderUpdate,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user)
):
    """
    Update tender details.
    Only allowed in 'DRAFT' or 'PUBLISHED' status.
    """
    require_admin(current_user)
    tender = get_tender_or_404(db, tender_id)

    if not TenderStateMachine.can_edit_tender(tender.status):
        raise InvalidTransition(
            f"Cannot edit tender in '{tender.status}' status. Only DRAFT/PUBLISHED tenders can be edited."
        )

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field in ("title", "description", "submission_deadline", "price_weightage", "technical_weightage"):
            raise ValidationFailed(f"{field} cannot be cleared")
        setattr(tender, field, value)

    if tender.price_weightage + tender.technical_weightage != 100:
        db.rollback()
        raise ValidationFailed("price_weightage and technical_weightage must sum to 100")
    if tender.clarification_deadline and tender.clarification_deadline > tender.submission_deadline:
        db.rollback()
        raise ValidationFailed("clarification_deadline must not be after submission_deadline")
    if tender.opening_date and tender.opening_date < tender.submission_deadline:
        db.rollback()
        raise ValidationFailed("opening_date must not be before submission_deadline")

    tender.updated_at = utcnow()
    db.commit()
    db.refresh(tender)

    invalidate_tender_cache(str(tender_id))
    logger.info(f"Tender {tender_id} updated: {sorted(changes)}")
    return tender_out(store, tender)


@router.put("/{tender_id}/status", response_model=TenderOut)
def update_tender_status(
    tender_id: UUID,
    status_update: TenderStatusUpdate,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user)
):
    """
    Publish or close a tender.
    AWARDED is only reachable through the award flow.
    """
    require_admin(current_user)
    tender = get_tender_or_404(db, tender_id)
    target = status_update.status.value

    is_valid, message = TenderStateMachine.validate_transition(tender.status, target)
    if not is_valid:
        raise InvalidTransition(message)

    now = utcnow()
    moved = (
        db.query(Tender)
        .filter(Tender.id == tender_id, Tender.status == tender.status)
        .update(
            {Tender.status: target, Tender.status_updated_at: now, Tender.updated_at: now},
            synchronize_session=False,
        )
    )
    if moved != 1:
        db.rollback()
        raise InvalidTransition("Tender status changed concurrently; refresh and retry.")
    db.commit()
    db.refresh(tender)

    invalidate_tender_cache(str(tender_id))
    logger.info(f"Tender {tender_id} -> {target} by {current_user.user_id}")
    return tender_out(store, tender)


@router.delete("/{tender_id}", status_code=204)
def delete_tender(
    tender_id: UUID,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user)
):
    """
    Delete a DRAFT tender and its documents.
    Published tenders are closed, never deleted.
    """
    require_admin(current_user)
    tender_service.delete_tender(db, store, tender_id)
    invalidate_tender_cache(str(tender_id))
    return None


@router.post("/{tender_id}/documents", response_model=TenderDocumentOut)
async def upload_tender_document(
    tender_id: UUID,
    file: UploadFile = File(...),
    document_type: str = Form("general"),
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user)
):
    """
    Attach a document to a DRAFT or PUBLISHED tender.
    """
    require_admin(current_user)
    document = tender_service.upload_tender_document(
        db,
        store,
        tender_id,
        await read_upload(file, "Tender document"),
        document_type,
        current_user.user_id,
    )
    invalidate_tender_cache(str(tender_id))
    return tender_service.document_view(store, document)


@router.get("/{tender_id}/documents/{document_id}/url", response_model=TenderDocumentLink)
def get_tender_document_url(
    tender_id: UUID,
    document_id: UUID,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user)
):
    get_visible_tender(db, tender_id, current_user)
    document = tender_service.get_tender_document(db, tender_id, document_id)
    view = tender_service.document_view(store, document)
    return {"document_id": document.id, "file_name": document.file_name, "url": view["download_url"]}
