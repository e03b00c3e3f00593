from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.db.session import get_db
from app.schemas.award import AwardRequest, AwardResult, AwardDetail, ComparisonOut
from app.core.deps import Caller, get_current_user
from app.services import award_service, comparison_service
from app.services.bid_store import document_extension
from app.services.storage_service import get_document_store, read_upload
from app.utils.permissions import require_admin, can_view_supplier

router = APIRouter(prefix="/awards", tags=["awards"])


def award_detail(store, award) -> dict:
    return {
        "award": award,
        "download_urls": {
            "loi": store.signed_url(award.loi_doc_path, f"Letter_of_Intent.{document_extension(award.loi_doc_path)}"),
            "contract": store.signed_url(award.contract_doc_path, f"Contract.{document_extension(award.contract_doc_path)}"),
        },
    }


@router.get("/comparison/{tender_id}", response_model=ComparisonOut)
def get_comparison(
    tender_id: UUID,
    sort: Optional[str] = None,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    """
    Technically qualified bids with their financials, for the award decision.

    Query Parameters:
    - sort: submitted_at (default), amount (L1 first) or score (highest first)
    """
    require_admin(current_user)
    summaries = comparison_service.get_comparison(db, store, tender_id, sort=sort)
    return {"tender_id": tender_id, "qualified_bids": summaries}


@router.post("/award-winner", response_model=AwardResult)
def award_winner(
    payload: AwardRequest,
    db: Session = Depends(get_db),
    current_user: Caller = Depends(get_current_user),
):
    """
    Award the tender to one technically qualified bid. Irreversible.
    Every other qualified bid is marked LOST in the same transaction.
    """
    require_admin(current_user)
    return award_service.award_winner(
        db,
        tender_id=payload.tender_id,
        winning_bid_id=payload.winning_bid_id,
        awarded_by=current_user.user_id,
    )


@router.put("/{award_id}/finalize", response_model=AwardDetail)
async def finalize_award(
    award_id: UUID,
    loi_file: Optional[UploadFile] = File(None),
    contract_file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    """Attach the signed letter of intent and contract. Re-sending the same files is a no-op."""
    require_admin(current_user)
    award = award_service.finalize_award(
        db,
        store,
        award_id,
        loi_doc=await read_upload(loi_file, "Letter of intent"),
        contract_doc=await read_upload(contract_file, "Contract"),
    )
    return award_detail(store, award)


@router.get("/tender/{tender_id}", response_model=AwardDetail)
def get_award(
    tender_id: UUID,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    """Award of a tender; visible to admins and the winning supplier"""
    award = award_service.get_award_for_tender(db, tender_id)
    if not can_view_supplier(current_user, award.supplier_id):
        raise HTTPException(status_code=403, detail="Not authorized to view this award")
    return award_detail(store, award)
