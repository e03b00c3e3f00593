"""
Bid Store - owns tender bids and their document references.

Submission is all-or-nothing: the three documents are uploaded first and the
bid row is inserted last. Any failure after an upload deletes what was
stored. One bid per (tender, supplier) is enforced by the
uq_bid_tender_supplier constraint, not by the pre-check.
"""
import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    AlreadyAwarded, DuplicateBid, FinancialsLocked, InvalidTransition, NotFound, ValidationFailed
)
from app.db.models import Bid, Tender
from app.services.storage_service import DocumentUpload, UploadBatch, validate_upload
from app.utils.deadline import ensure_tender_open
from app.utils.tender_state import BidStateMachine, TenderStateMachine, TenderStatus

logger = logging.getLogger(__name__)


def _document_path(tender_id, supplier_id, kind: str, upload: DocumentUpload) -> str:
    return f"tenders/{tender_id}/{supplier_id}/{uuid.uuid4()}_{kind}.{upload.extension}"


def get_tender_or_404(db: Session, tender_id) -> Tender:
    tender = db.query(Tender).filter(Tender.id == tender_id).first()
    if not tender:
        raise NotFound("Tender not found")
    return tender


def _lock_published_tender(db: Session, tender_id) -> None:
    """
    Re-assert PUBLISHED inside the insert transaction.

    The no-op UPDATE takes the tender row's write lock, so a close or award
    that commits first makes it match nothing, and one that comes later waits
    for the bid to commit.
    """
    locked = (
        db.query(Tender)
        .filter(Tender.id == tender_id, Tender.status == TenderStatus.PUBLISHED)
        .update({Tender.updated_at: Tender.updated_at}, synchronize_session=False)
    )
    if locked == 1:
        return

    status = db.query(Tender.status).filter(Tender.id == tender_id).scalar()
    logger.warning(f"Bid rejected at insert: tender {tender_id} moved to {status} during upload")
    if status == TenderStatus.AWARDED:
        raise AlreadyAwarded("Tender has already been awarded.")
    raise InvalidTransition(
        f"Tender is '{status}'. Bids can only be submitted when tender is '{TenderStatus.PUBLISHED}'."
    )


def submit_bid(
    db: Session,
    store,
    tender_id,
    supplier_id,
    technical_doc: Optional[DocumentUpload],
    financial_doc: Optional[DocumentUpload],
    emd_doc: Optional[DocumentUpload],
    amount: Decimal,
    warranty_text: Optional[str] = None,
    no_deviation: bool = False,
    terms_accepted: bool = False,
) -> Bid:
    tender = get_tender_or_404(db, tender_id)

    if not TenderStateMachine.can_receive_bids(tender.status):
        raise InvalidTransition(
            f"Tender is '{tender.status}'. Bids can only be submitted when tender is '{TenderStatus.PUBLISHED}'."
        )
    ensure_tender_open(tender)

    if amount is None or amount <= 0:
        raise ValidationFailed("Bid amount must be greater than zero.")
    validate_upload(technical_doc, "Technical bid")
    validate_upload(financial_doc, "Financial bid")
    validate_upload(emd_doc, "EMD proof")

    existing = db.query(Bid).filter(Bid.tender_id == tender_id, Bid.supplier_id == supplier_id).first()
    if existing:
        raise DuplicateBid("A bid from this supplier already exists for this tender.")

    batch = UploadBatch(store)
    try:
        technical = batch.put(_document_path(tender_id, supplier_id, "technical", technical_doc), technical_doc)
        financial = batch.put(_document_path(tender_id, supplier_id, "financial", financial_doc), financial_doc)
        emd = batch.put(_document_path(tender_id, supplier_id, "emd", emd_doc), emd_doc)

        # Uploads can be slow; the deadline is judged again at insert time
        ensure_tender_open(tender)
        _lock_published_tender(db, tender_id)

        bid = Bid(
            tender_id=tender_id,
            supplier_id=supplier_id,
            technical_doc_path=technical.path,
            financial_doc_path=financial.path,
            emd_doc_path=emd.path,
            amount=amount,
            warranty_text=warranty_text,
            no_deviation=no_deviation,
            terms_accepted=terms_accepted,
        )
        db.add(bid)
        db.commit()
    except IntegrityError:
        db.rollback()
        batch.discard()
        logger.warning(f"Duplicate bid rejected by constraint: tender={tender_id} supplier={supplier_id}")
        raise DuplicateBid("A bid from this supplier already exists for this tender.")
    except Exception:
        db.rollback()
        batch.discard()
        raise

    db.refresh(bid)
    logger.info(f"Bid submitted: bid={bid.id} tender={tender_id} supplier={supplier_id}")
    return bid


def read_financials(bid: Bid):
    """
    Return (amount, financial_doc_path) for a bid past technical evaluation.

    Raises FinancialsLocked for any caller while the bid is below TECH_QUALIFIED.
    """
    if not BidStateMachine.financials_unlocked(bid.status):
        raise FinancialsLocked(
            "Financial envelope is LOCKED. Bid must pass Technical Evaluation first."
        )
    return bid.amount, bid.financial_doc_path


def bid_view(bid: Bid) -> dict:
    """Bid fields safe to return to any caller; financials only once unlocked."""
    unlocked = BidStateMachine.financials_unlocked(bid.status)
    amount, financial_doc_path = read_financials(bid) if unlocked else (None, None)
    return {
        "id": bid.id,
        "tender_id": bid.tender_id,
        "supplier_id": bid.supplier_id,
        "status": bid.status,
        "warranty_text": bid.warranty_text,
        "no_deviation": bid.no_deviation,
        "terms_accepted": bid.terms_accepted,
        "technical_doc_path": bid.technical_doc_path,
        "emd_doc_path": bid.emd_doc_path,
        "financials_locked": not unlocked,
        "amount": amount,
        "financial_doc_path": financial_doc_path,
        "submitted_at": bid.submitted_at,
        "updated_at": bid.updated_at,
    }


def document_extension(path: Optional[str]) -> str:
    return path.rsplit(".", 1)[-1] if path and "." in path else "pdf"


def document_urls(store, bid: Bid) -> dict:
    urls = {
        "technical": store.signed_url(bid.technical_doc_path, f"Technical_Proposal.{document_extension(bid.technical_doc_path)}"),
        "emd": store.signed_url(bid.emd_doc_path, f"EMD_Proof.{document_extension(bid.emd_doc_path)}"),
        "financial": None,
    }
    if BidStateMachine.financials_unlocked(bid.status):
        _, financial_doc_path = read_financials(bid)
        urls["financial"] = store.signed_url(financial_doc_path, f"Financial_Quote.{document_extension(financial_doc_path)}")
    return urls


def get_bid_status(db: Session, store, tender_id, supplier_id) -> dict:
    """Idempotent status lookup for one (tender, supplier) pair; safe to poll."""
    tender = get_tender_or_404(db, tender_id)
    bid = db.query(Bid).filter(Bid.tender_id == tender_id, Bid.supplier_id == supplier_id).first()
    return {
        "bid": bid_view(bid) if bid else None,
        "download_urls": document_urls(store, bid) if bid else None,
        "deadline": tender.submission_deadline,
        "tender_status": tender.status,
    }


def list_supplier_bids(db: Session, supplier_id) -> list:
    bids = (
        db.query(Bid)
        .filter(Bid.supplier_id == supplier_id)
        .order_by(Bid.submitted_at.desc())
        .all()
    )
    result = []
    for bid in bids:
        view = bid_view(bid)
        result.append({
            "id": bid.id,
            "tender_id": bid.tender_id,
            "title": bid.tender.title if bid.tender else "Unknown Tender",
            "status": bid.status,
            "amount": view["amount"],
            "financials_locked": view["financials_locked"],
            "submitted_at": bid.submitted_at,
        })
    return result


def list_tender_bids(db: Session, store, tender_id) -> dict:
    """
    Every bid on a tender, oldest first, for the evaluation committee.

    Financial fields and the financial download link stay hidden until a bid
    is TECH_QUALIFIED, the same as in every other view.
    """
    tender = get_tender_or_404(db, tender_id)
    bids = (
        db.query(Bid)
        .filter(Bid.tender_id == tender_id)
        .order_by(Bid.submitted_at.asc())
        .all()
    )
    return {
        "tender_id": tender.id,
        "tender_status": tender.status,
        "items": [{"bid": bid_view(bid), "download_urls": document_urls(store, bid)} for bid in bids],
        "total": len(bids),
    }
