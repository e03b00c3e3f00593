from fastapi import APIRouter, Depends, UploadFile, File, Form, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.db.session import get_db
from app.schemas.carnival import (
    CarnivalCreate, CarnivalOut, CarnivalStatusUpdate, CarnivalBidSubmitted,
    CarnivalBidStatusOut, CarnivalDecisionResult, CarnivalDetailsOut
)
from app.core.deps import Caller, get_current_user
from app.core.limiter import limiter
from app.api.bids import parse_amount
from app.services import carnival_service
from app.services.storage_service import get_document_store, read_upload
from app.utils.permissions import require_admin, require_bidder

router = APIRouter(prefix="/carnivals", tags=["carnivals"])


@router.post("/", response_model=CarnivalOut)
def create_carnival(
    data: CarnivalCreate,
    db: Session = Depends(get_db),
    current_user: Caller = Depends(get_current_user),
):
    require_admin(current_user)
    return carnival_service.create_carnival(
        db,
        event_title=data.event_title,
        event_date=data.event_date,
        bid_deadline=data.bid_deadline,
        total_stalls=data.total_stalls,
        base_stall_price=data.base_stall_price,
        extra_stall_price=data.extra_stall_price,
        created_by=current_user.user_id,
    )


@router.get("/active", response_model=List[CarnivalOut])
def list_active_carnivals(
    db: Session = Depends(get_db),
    current_user: Caller = Depends(get_current_user),
):
    """Carnivals still accepting stall bids, soonest event first"""
    return carnival_service.list_active_carnivals(db)


@router.post("/submit-bid", response_model=CarnivalBidSubmitted)
@limiter.limit("20/minute")
async def submit_carnival_bid(
    request: Request,
    carnival_id: UUID = Form(...),
    bid_amount: str = Form(...),
    proposal_description: Optional[str] = Form(None),
    technical_doc: Optional[UploadFile] = File(None),
    financial_doc: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    """
    Bid for a stall. The amount must be at least the event's base stall price.
    """
    require_bidder(current_user)
    bid = carnival_service.submit_carnival_bid(
        db,
        store,
        carnival_id=carnival_id,
        supplier_id=current_user.supplier_id,
        technical_doc=await read_upload(technical_doc, "Technical document"),
        financial_doc=await read_upload(financial_doc, "Financial document"),
        bid_amount=parse_amount(bid_amount),
        proposal_description=proposal_description,
    )
    return CarnivalBidSubmitted(bid_id=bid.id, status=bid.status)


@router.get("/my-status/{carnival_id}", response_model=CarnivalBidStatusOut)
def get_my_carnival_bid(
    carnival_id: UUID,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    require_bidder(current_user)
    return carnival_service.get_carnival_bid_status(db, store, carnival_id, current_user.supplier_id)


@router.put("/update-status", response_model=CarnivalDecisionResult)
def update_carnival_bid_status(
    payload: CarnivalStatusUpdate,
    db: Session = Depends(get_db),
    current_user: Caller = Depends(get_current_user),
):
    """
    Approve or reject a pending stall bid.

    Other bids for the same carnival are unaffected; the response carries the
    stall capacity after the decision.
    """
    require_admin(current_user)
    return carnival_service.update_bid_status(db, payload.bid_id, payload.status, decided_by=current_user.user_id)


@router.get("/admin/details/{carnival_id}", response_model=CarnivalDetailsOut)
def get_carnival_details(
    carnival_id: UUID,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    require_admin(current_user)
    return carnival_service.get_carnival_details(db, store, carnival_id)
