"""
Award Finalizer - the one irreversible operation of the engine.

The critical section is the conditional UPDATE moving the tender from
PUBLISHED to AWARDED. Whichever request changes that row wins; every other
concurrent request sees rowcount 0 and fails with AlreadyAwarded. The Award
row has a unique tender_id as a second guard.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import AlreadyAwarded, InvalidTransition, NotFound
from app.db.models import Award, Bid, Tender
from app.services.bid_store import get_tender_or_404
from app.services.storage_service import DocumentUpload, UploadBatch, calculate_hash, validate_upload
from app.utils.cache import invalidate_tender_cache
from app.utils.deadline import utcnow
from app.utils.tender_state import BidStatus, TenderStateMachine, TenderStatus

logger = logging.getLogger(__name__)


def award_winner(db: Session, tender_id, winning_bid_id, awarded_by) -> dict:
    """
    Award a tender to one technically qualified bid.

    In one transaction: tender → AWARDED, winner → WON, every other
    TECH_QUALIFIED bid → LOST, Award row created.

    Returns:
        The authoritative post-award state
    """
    tender = get_tender_or_404(db, tender_id)
    if tender.status == TenderStatus.AWARDED:
        raise AlreadyAwarded("Action Blocked: Already awarded.")
    if not TenderStateMachine.can_award(tender.status):
        raise InvalidTransition(
            f"Cannot award tender in '{tender.status}' status. Must be '{TenderStatus.PUBLISHED}'."
        )

    bid = db.query(Bid).filter(Bid.id == winning_bid_id).first()
    if not bid or bid.tender_id != tender.id:
        raise InvalidTransition("Winning bid does not belong to this tender.")
    if bid.status in (BidStatus.WON, BidStatus.LOST):
        # Decided by an award that committed after the tender was read
        raise AlreadyAwarded("Action Blocked: Already awarded.")
    if bid.status != BidStatus.TECH_QUALIFIED:
        raise InvalidTransition(
            f"Only a '{BidStatus.TECH_QUALIFIED}' bid can win; this bid is '{bid.status}'."
        )

    now = utcnow()
    try:
        claimed = (
            db.query(Tender)
            .filter(Tender.id == tender_id, Tender.status == TenderStatus.PUBLISHED)
            .update(
                {Tender.status: TenderStatus.AWARDED, Tender.status_updated_at: now, Tender.updated_at: now},
                synchronize_session=False,
            )
        )
        if claimed != 1:
            raise AlreadyAwarded("Action Blocked: Already awarded.")

        won = (
            db.query(Bid)
            .filter(Bid.id == winning_bid_id, Bid.status == BidStatus.TECH_QUALIFIED)
            .update({Bid.status: BidStatus.WON, Bid.updated_at: now}, synchronize_session=False)
        )
        if won != 1:
            raise InvalidTransition("Winning bid is no longer technically qualified.")

        lost_bid_ids = [
            row.id for row in db.query(Bid.id).filter(
                Bid.tender_id == tender_id,
                Bid.id != winning_bid_id,
                Bid.status == BidStatus.TECH_QUALIFIED,
            ).all()
        ]
        if lost_bid_ids:
            (
                db.query(Bid)
                .filter(Bid.id.in_(lost_bid_ids), Bid.status == BidStatus.TECH_QUALIFIED)
                .update({Bid.status: BidStatus.LOST, Bid.updated_at: now}, synchronize_session=False)
            )

        award = Award(
            tender_id=tender_id,
            bid_id=winning_bid_id,
            supplier_id=bid.supplier_id,
            awarded_by=awarded_by,
            awarded_at=now,
        )
        db.add(award)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Award race lost on constraint for tender {tender_id}")
        raise AlreadyAwarded("Action Blocked: Already awarded.")
    except AlreadyAwarded:
        db.rollback()
        logger.warning(f"Award race lost for tender {tender_id}")
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(award)
    invalidate_tender_cache(str(tender_id))
    logger.info(
        f"Tender {tender_id} awarded to bid {winning_bid_id} by {awarded_by}; {len(lost_bid_ids)} bids marked LOST"
    )
    return {
        "award_id": award.id,
        "tender_id": award.tender_id,
        "tender_status": TenderStatus.AWARDED,
        "winning_bid_id": award.bid_id,
        "supplier_id": award.supplier_id,
        "lost_bid_ids": lost_bid_ids,
        "awarded_at": award.awarded_at,
    }


def get_award_or_404(db: Session, award_id) -> Award:
    award = db.query(Award).filter(Award.id == award_id).first()
    if not award:
        raise NotFound("Award not found")
    return award


def get_award_for_tender(db: Session, tender_id) -> Award:
    get_tender_or_404(db, tender_id)
    award = db.query(Award).filter(Award.tender_id == tender_id).first()
    if not award:
        raise NotFound("Tender has not been awarded")
    return award


def _same_documents(award: Award, loi_hash: str, contract_hash: str) -> bool:
    return award.loi_doc_hash == loi_hash and award.contract_doc_hash == contract_hash


def finalize_award(
    db: Session,
    store,
    award_id,
    loi_doc: Optional[DocumentUpload],
    contract_doc: Optional[DocumentUpload],
) -> Award:
    """
    Attach the letter of intent and contract to an existing award.

    Re-submitting identical documents is a no-op. Different documents on an
    already finalized award raise InvalidTransition.
    """
    validate_upload(loi_doc, "Letter of intent")
    validate_upload(contract_doc, "Contract")

    award = get_award_or_404(db, award_id)
    loi_hash = calculate_hash(loi_doc.content)
    contract_hash = calculate_hash(contract_doc.content)

    if award.finalized_at is not None:
        if _same_documents(award, loi_hash, contract_hash):
            logger.info(f"Award {award_id} already finalized with identical documents")
            return award
        raise InvalidTransition("Award is already finalized with different documents.")

    batch = UploadBatch(store)
    try:
        loi = batch.put(f"awards/{award_id}/loi_{loi_hash[:16]}.{loi_doc.extension}", loi_doc)
        contract = batch.put(
            f"awards/{award_id}/contract_{contract_hash[:16]}.{contract_doc.extension}", contract_doc
        )

        attached = (
            db.query(Award)
            .filter(Award.id == award_id, Award.finalized_at.is_(None))
            .update(
                {
                    Award.loi_doc_path: loi.path,
                    Award.contract_doc_path: contract.path,
                    Award.loi_doc_hash: loi.sha256,
                    Award.contract_doc_hash: contract.sha256,
                    Award.finalized_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if attached != 1:
            # A concurrent finalize got there first
            db.rollback()
            db.refresh(award)
            if _same_documents(award, loi_hash, contract_hash):
                # Same content-addressed paths; the blobs belong to the winner now
                return award
            # Content-addressed paths shared with the winner belong to it
            batch.discard(keep=(award.loi_doc_path, award.contract_doc_path))
            raise InvalidTransition("Award is already finalized with different documents.")
        db.commit()
    except InvalidTransition:
        raise
    except Exception:
        db.rollback()
        db.refresh(award)
        batch.discard(keep=(award.loi_doc_path, award.contract_doc_path))
        raise

    db.refresh(award)
    logger.info(f"Award {award_id} finalized: loi={award.loi_doc_path} contract={award.contract_doc_path}")
    return award
