"""
Technical Evaluation Gate.

SUBMITTED → TECH_QUALIFIED | REJECTED, exactly once per bid. The status flip
is a conditional UPDATE on status == SUBMITTED and the evaluation row has a
unique bid_id, so a second or racing call can never overwrite a score.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AlreadyEvaluated, InvalidTransition, NotFound, ValidationFailed
from app.db.models import Bid, Evaluation
from app.services.bid_store import document_extension, read_financials
from app.utils.cache import invalidate_comparison_cache
from app.utils.deadline import utcnow
from app.utils.tender_state import BidStatus, TenderStateMachine

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100


def qualification_outcome(score: float, threshold: float) -> str:
    return BidStatus.TECH_QUALIFIED if score >= threshold else BidStatus.REJECTED


def get_bid_or_404(db: Session, bid_id) -> Bid:
    bid = db.query(Bid).filter(Bid.id == bid_id).first()
    if not bid:
        raise NotFound("Bid not found")
    return bid


def submit_score(
    db: Session,
    bid_id,
    score: float,
    remarks: Optional[str],
    evaluator_id,
    threshold: Optional[float] = None,
) -> Evaluation:
    """
    Record the technical score for a bid and qualify or reject it.

    Args:
        bid_id: Bid being evaluated
        score: Technical score, 0-100
        remarks: Evaluator remarks, stored verbatim
        evaluator_id: Admin user recording the score
        threshold: Qualifying score; defaults to TECH_QUALIFY_THRESHOLD

    Raises:
        AlreadyEvaluated: the bid already carries an evaluation
    """
    if score is None or not (MIN_SCORE <= score <= MAX_SCORE):
        raise ValidationFailed(f"Score must be between {MIN_SCORE} and {MAX_SCORE}.")
    threshold = settings.TECH_QUALIFY_THRESHOLD if threshold is None else threshold

    bid = get_bid_or_404(db, bid_id)
    tender = bid.tender
    if not TenderStateMachine.can_evaluate_bids(tender.status):
        raise InvalidTransition(f"Cannot evaluate bids on a tender in '{tender.status}' status.")

    if bid.status != BidStatus.SUBMITTED or bid.evaluation is not None:
        raise AlreadyEvaluated(f"Bid has already been evaluated (status '{bid.status}').")

    outcome = qualification_outcome(score, threshold)
    try:
        flipped = (
            db.query(Bid)
            .filter(Bid.id == bid_id, Bid.status == BidStatus.SUBMITTED)
            .update({Bid.status: outcome, Bid.updated_at: utcnow()}, synchronize_session=False)
        )
        if flipped != 1:
            raise AlreadyEvaluated("Bid has already been evaluated.")

        evaluation = Evaluation(
            bid_id=bid_id,
            evaluator_id=evaluator_id,
            score=score,
            remarks=remarks,
            threshold=threshold,
            outcome=outcome,
        )
        db.add(evaluation)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Concurrent evaluation lost for bid {bid_id}")
        raise AlreadyEvaluated("Bid has already been evaluated.")
    except Exception:
        db.rollback()
        raise

    db.refresh(evaluation)
    invalidate_comparison_cache(tender.id)
    logger.info(f"Bid {bid_id} evaluated by {evaluator_id}: score={score} threshold={threshold} -> {outcome}")
    return evaluation


def view_technical_document(db: Session, store, bid_id) -> dict:
    """The technical envelope is always open to evaluators."""
    bid = get_bid_or_404(db, bid_id)
    return {
        "bid_id": bid.id,
        "view_url": store.signed_url(
            bid.technical_doc_path, f"Technical_Proposal.{document_extension(bid.technical_doc_path)}"
        ),
    }


def view_financial_envelope(db: Session, store, bid_id) -> dict:
    """Second envelope; raises FinancialsLocked until the bid is technically qualified."""
    bid = get_bid_or_404(db, bid_id)
    amount, financial_doc_path = read_financials(bid)
    return {
        "bid_id": bid.id,
        "status": bid.status,
        "total_quoted_amount": amount,
        "view_url": store.signed_url(financial_doc_path, f"Financial_Quote.{document_extension(financial_doc_path)}"),
    }
