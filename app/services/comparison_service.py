"""
Comparison Engine - read-only view over technically qualified bids.

Only visibility is decided here; ordering is left to the caller
(`sort="amount"` gives the L1 view).
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import ValidationFailed
from app.db.models import Bid, Tender
from app.services.bid_store import document_extension, get_tender_or_404, read_financials
from app.utils.cache import comparison_key, get_cached, set_cached
from app.utils.tender_state import BidStatus

logger = logging.getLogger(__name__)

SORT_FIELDS = ("submitted_at", "amount", "score")


def _summary(store, bid: Bid) -> dict:
    amount, financial_doc_path = read_financials(bid)
    evaluation = bid.evaluation
    return {
        "bid_id": str(bid.id),
        "supplier_id": str(bid.supplier_id),
        "status": bid.status,
        "amount": str(amount),
        "technical_score": evaluation.score if evaluation else None,
        "remarks": evaluation.remarks if evaluation else None,
        "submitted_at": bid.submitted_at.isoformat() if bid.submitted_at else None,
        "technical_url": store.signed_url(
            bid.technical_doc_path, f"Technical_Proposal.{document_extension(bid.technical_doc_path)}"
        ),
        "financial_url": store.signed_url(
            financial_doc_path, f"Financial_Bid.{document_extension(financial_doc_path)}"
        ),
    }


def comparison_version(db: Session, tender_id) -> str:
    """
    Fingerprint of the rows a comparison is built from.

    Awarding moves the tender's status_updated_at and every bid's updated_at;
    scoring moves the scored bid's updated_at. A comparison built from a read
    taken before such a change is cached under the old fingerprint, which no
    later request looks up.
    """
    status, status_updated_at = (
        db.query(Tender.status, Tender.status_updated_at).filter(Tender.id == tender_id).one()
    )
    latest, count = (
        db.query(func.max(Bid.updated_at), func.count(Bid.id)).filter(Bid.tender_id == tender_id).one()
    )
    stamps = [value.isoformat() if value else "-" for value in (status_updated_at, latest)]
    return f"{status}.{stamps[0]}.{stamps[1]}.{count}"


def get_comparison(db: Session, store, tender_id, sort: Optional[str] = None) -> list:
    """
    Summaries of every bid with status TECH_QUALIFIED, WON or LOST.

    Results are cached per tender and per comparison_version; scoring and
    award also drop every cached version.
    """
    if sort is not None and sort not in SORT_FIELDS:
        raise ValidationFailed(f"Unknown sort '{sort}'. Allowed: {list(SORT_FIELDS)}")

    get_tender_or_404(db, tender_id)

    key = comparison_key(tender_id, comparison_version(db, tender_id))
    summaries = get_cached(key)
    if summaries is None:
        bids = (
            db.query(Bid)
            .filter(Bid.tender_id == tender_id, Bid.status.in_(BidStatus.FINANCIALS_UNLOCKED))
            .order_by(Bid.submitted_at.asc())
            .all()
        )
        summaries = [_summary(store, bid) for bid in bids]
        set_cached(key, summaries)
        logger.debug(f"Comparison built for tender {tender_id}: {len(summaries)} bids")

    if sort == "amount":
        summaries = sorted(summaries, key=lambda s: Decimal(s["amount"]))
    elif sort == "score":
        summaries = sorted(summaries, key=lambda s: s["technical_score"] or 0, reverse=True)
    return summaries
