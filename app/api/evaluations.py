from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from app.db.session import get_db
from app.schemas.evaluation import ScoreRequest, ScoreResult, TechnicalDocumentOut, FinancialEnvelopeOut
from app.core.deps import Caller, get_current_user
from app.services import evaluation_service
from app.services.storage_service import get_document_store
from app.utils.tender_state import BidStatus
from app.utils.permissions import require_admin

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


@router.post("/score", response_model=ScoreResult)
def submit_score(
    payload: ScoreRequest,
    db: Session = Depends(get_db),
    current_user: Caller = Depends(get_current_user),
):
    """
    Record the technical score of a bid.
    The bid is qualified or rejected against the configured threshold, exactly once.
    """
    require_admin(current_user)
    evaluation = evaluation_service.submit_score(
        db,
        bid_id=payload.bid_id,
        score=payload.score,
        remarks=payload.remarks,
        evaluator_id=current_user.user_id,
    )
    if evaluation.outcome == BidStatus.TECH_QUALIFIED:
        message = "Bid technically qualified; financial envelope unlocked."
    else:
        message = "Bid rejected at technical evaluation."
    return {"status": evaluation.outcome, "message": message, "evaluation": evaluation}


@router.get("/{bid_id}/technical", response_model=TechnicalDocumentOut)
def view_technical_document(
    bid_id: UUID,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    require_admin(current_user)
    return evaluation_service.view_technical_document(db, store, bid_id)


@router.get("/{bid_id}/financial", response_model=FinancialEnvelopeOut)
def view_financial_envelope(
    bid_id: UUID,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    """Second envelope. 403 FINANCIALS_LOCKED until the bid passes technical evaluation."""
    require_admin(current_user)
    return evaluation_service.view_financial_envelope(db, store, bid_id)
