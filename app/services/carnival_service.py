"""
Carnival Stall Engine - single-stage bidding for carnival stalls.

No technical/financial split and no single-winner lock: any number of bids
for an event may be approved. Stall capacity is reported with every decision
and is only enforced when CARNIVAL_ENFORCE_CAPACITY is set.
"""
import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import CapacityExceeded, DuplicateBid, InvalidTransition, NotFound, ValidationFailed
from app.db.models import CarnivalBid, CarnivalEvent
from app.services.bid_store import document_extension
from app.services.storage_service import DocumentUpload, UploadBatch, validate_upload
from app.utils.deadline import ensure_carnival_open, utcnow
from app.utils.tender_state import CarnivalBidStateMachine, CarnivalBidStatus

logger = logging.getLogger(__name__)


def get_carnival_or_404(db: Session, carnival_id) -> CarnivalEvent:
    event = db.query(CarnivalEvent).filter(CarnivalEvent.id == carnival_id).first()
    if not event:
        raise NotFound("Carnival not found")
    return event


def create_carnival(
    db: Session,
    event_title: str,
    event_date,
    bid_deadline,
    total_stalls: int,
    base_stall_price: Decimal,
    extra_stall_price: Optional[Decimal] = None,
    created_by=None,
) -> CarnivalEvent:
    if bid_deadline >= event_date:
        raise ValidationFailed("Bid deadline must be strictly before the event date.")
    if total_stalls is None or total_stalls <= 0:
        raise ValidationFailed("Total stalls must be greater than zero.")
    if base_stall_price is None or base_stall_price < 0:
        raise ValidationFailed("Base stall price cannot be negative.")
    if extra_stall_price is not None and extra_stall_price < 0:
        raise ValidationFailed("Extra stall price cannot be negative.")

    event = CarnivalEvent(
        event_title=event_title,
        event_date=event_date,
        bid_deadline=bid_deadline,
        total_stalls=total_stalls,
        base_stall_price=base_stall_price,
        extra_stall_price=extra_stall_price,
        created_by=created_by,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info(f"Carnival created: {event.id} '{event_title}' ({total_stalls} stalls)")
    return event


def list_active_carnivals(db: Session) -> list:
    """Events still accepting bids, soonest first"""
    return (
        db.query(CarnivalEvent)
        .filter(CarnivalEvent.bid_deadline > utcnow())
        .order_by(CarnivalEvent.event_date.asc())
        .all()
    )


def capacity_summary(db: Session, event: CarnivalEvent) -> dict:
    approved = (
        db.query(func.count(CarnivalBid.id))
        .filter(CarnivalBid.carnival_id == event.id, CarnivalBid.status == CarnivalBidStatus.APPROVED)
        .scalar()
    ) or 0
    return {
        "total_stalls": event.total_stalls,
        "approved_count": approved,
        "remaining_stalls": max(event.total_stalls - approved, 0),
        "over_capacity": approved > event.total_stalls,
    }


def submit_carnival_bid(
    db: Session,
    store,
    carnival_id,
    supplier_id,
    technical_doc: Optional[DocumentUpload],
    financial_doc: Optional[DocumentUpload],
    bid_amount: Decimal,
    proposal_description: Optional[str] = None,
) -> CarnivalBid:
    event = get_carnival_or_404(db, carnival_id)
    ensure_carnival_open(event)

    if bid_amount is None or bid_amount < event.base_stall_price:
        raise ValidationFailed(
            f"Bid amount must be at least the base stall price ({event.base_stall_price})."
        )
    validate_upload(technical_doc, "Technical document")
    validate_upload(financial_doc, "Financial document")

    existing = db.query(CarnivalBid).filter(
        CarnivalBid.carnival_id == carnival_id, CarnivalBid.supplier_id == supplier_id
    ).first()
    if existing:
        raise DuplicateBid("A bid from this supplier already exists for this carnival.")

    prefix = f"carnivals/{carnival_id}/{supplier_id}/{uuid.uuid4()}"
    batch = UploadBatch(store)
    try:
        technical = batch.put(f"{prefix}_technical.{technical_doc.extension}", technical_doc)
        financial = batch.put(f"{prefix}_financial.{financial_doc.extension}", financial_doc)

        ensure_carnival_open(event)

        bid = CarnivalBid(
            carnival_id=carnival_id,
            supplier_id=supplier_id,
            bid_amount=bid_amount,
            proposal_description=proposal_description,
            technical_doc_path=technical.path,
            financial_doc_path=financial.path,
            status=CarnivalBidStatus.PENDING,
        )
        db.add(bid)
        db.commit()
    except IntegrityError:
        db.rollback()
        batch.discard()
        logger.warning(f"Duplicate carnival bid rejected by constraint: carnival={carnival_id} supplier={supplier_id}")
        raise DuplicateBid("A bid from this supplier already exists for this carnival.")
    except Exception:
        db.rollback()
        batch.discard()
        raise

    db.refresh(bid)
    logger.info(f"Carnival bid submitted: bid={bid.id} carnival={carnival_id} supplier={supplier_id}")
    return bid


def carnival_document_urls(store, bid: CarnivalBid) -> dict:
    return {
        "technical": store.signed_url(
            bid.technical_doc_path, f"Technical_Doc.{document_extension(bid.technical_doc_path)}"
        ),
        "financial": store.signed_url(
            bid.financial_doc_path, f"Financial_Doc.{document_extension(bid.financial_doc_path)}"
        ),
    }


def get_carnival_bid_status(db: Session, store, carnival_id, supplier_id) -> dict:
    event = get_carnival_or_404(db, carnival_id)
    bid = db.query(CarnivalBid).filter(
        CarnivalBid.carnival_id == carnival_id, CarnivalBid.supplier_id == supplier_id
    ).first()
    return {
        "bid": bid,
        "download_urls": carnival_document_urls(store, bid) if bid else None,
        "bid_deadline": event.bid_deadline,
    }


def update_bid_status(db: Session, bid_id, status: str, decided_by) -> dict:
    """
    Approve or reject a pending carnival bid.

    Re-applying the bid's current status is a no-op. The event is never
    locked, so other bids of the same event stay open to decisions.
    """
    if not CarnivalBidStateMachine.is_valid_status(status) or status == CarnivalBidStatus.PENDING:
        raise ValidationFailed(
            f"Invalid status '{status}'. Allowed: {[CarnivalBidStatus.APPROVED, CarnivalBidStatus.REJECTED]}"
        )

    bid = db.query(CarnivalBid).filter(CarnivalBid.id == bid_id).first()
    if not bid:
        raise NotFound("Carnival bid not found")
    event = bid.carnival

    if bid.status == status:
        logger.info(f"Carnival bid {bid_id} already {status}; nothing to do")
        return {"bid_id": bid.id, "carnival_id": event.id, "status": bid.status, **capacity_summary(db, event)}

    is_valid, message = CarnivalBidStateMachine.validate_transition(bid.status, status)
    if not is_valid:
        raise InvalidTransition(message)

    if status == CarnivalBidStatus.APPROVED:
        capacity = capacity_summary(db, event)
        if capacity["remaining_stalls"] <= 0:
            if settings.CARNIVAL_ENFORCE_CAPACITY:
                raise CapacityExceeded(
                    f"All {event.total_stalls} stalls for '{event.event_title}' are already allocated."
                )
            logger.warning(
                f"Approving carnival bid {bid_id} beyond capacity: "
                f"{capacity['approved_count']}/{event.total_stalls} stalls already approved"
            )

    try:
        decided = (
            db.query(CarnivalBid)
            .filter(CarnivalBid.id == bid_id, CarnivalBid.status == CarnivalBidStatus.PENDING)
            .update(
                {CarnivalBid.status: status, CarnivalBid.decided_by: decided_by, CarnivalBid.updated_at: utcnow()},
                synchronize_session=False,
            )
        )
        if decided != 1:
            raise InvalidTransition("Carnival bid was decided concurrently; refresh and retry.")
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(bid)
    logger.info(f"Carnival bid {bid_id} -> {status} by {decided_by}")
    return {"bid_id": bid.id, "carnival_id": event.id, "status": bid.status, **capacity_summary(db, event)}


def get_carnival_details(db: Session, store, carnival_id) -> dict:
    event = get_carnival_or_404(db, carnival_id)
    bids = (
        db.query(CarnivalBid)
        .filter(CarnivalBid.carnival_id == carnival_id)
        .order_by(CarnivalBid.submitted_at.asc())
        .all()
    )
    return {
        "carnival": event,
        "bids": [{"bid": bid, "download_urls": carnival_document_urls(store, bid)} for bid in bids],
        "capacity": capacity_summary(db, event),
    }
