from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Request
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from decimal import Decimal, InvalidOperation

from app.db.session import get_db
from app.schemas.bid import BidStatusOut, BidSubmitted, SupplierBidList, TenderBidList
from app.core.deps import Caller, get_current_user
from app.core.limiter import limiter
from app.services import bid_store
from app.services.storage_service import get_document_store, read_upload
from app.utils.permissions import can_view_supplier, require_admin, require_bidder

router = APIRouter(prefix="/bids", tags=["bids"])


def parse_amount(amount: str) -> Decimal:
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError):
        raise HTTPException(status_code=400, detail="Invalid amount format")
    if not value.is_finite():
        raise HTTPException(status_code=400, detail="Invalid amount format")
    return value


@router.post("/submit", response_model=BidSubmitted)
@limiter.limit("20/minute")
async def submit_bid(
    request: Request,
    tender_id: UUID = Form(...),
    amount: str = Form(...),
    warranty_text: Optional[str] = Form(None),
    no_deviation: bool = Form(False),
    terms_accepted: bool = Form(False),
    technical_bid: Optional[UploadFile] = File(None),
    financial_bid: Optional[UploadFile] = File(None),
    emd_proof: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    """
    Submit the complete bid package: technical bid, financial bid and EMD proof.
    Only allowed while the tender is PUBLISHED and before its submission deadline.
    """
    require_bidder(current_user)

    bid = bid_store.submit_bid(
        db,
        store,
        tender_id=tender_id,
        supplier_id=current_user.supplier_id,
        technical_doc=await read_upload(technical_bid, "Technical bid"),
        financial_doc=await read_upload(financial_bid, "Financial bid"),
        emd_doc=await read_upload(emd_proof, "EMD proof"),
        amount=parse_amount(amount),
        warranty_text=warranty_text,
        no_deviation=no_deviation,
        terms_accepted=terms_accepted,
    )
    return BidSubmitted(bid_id=bid.id, status=bid.status)


@router.get("/status", response_model=BidStatusOut)
def get_bid_status(
    tender_id: UUID,
    supplier_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    """
    Current bid of a supplier on a tender, with signed download links.
    Suppliers may omit supplier_id; admins must name one.
    """
    supplier_id = supplier_id or current_user.supplier_id
    if supplier_id is None:
        raise HTTPException(status_code=400, detail="supplier_id is required")
    if not can_view_supplier(current_user, supplier_id):
        raise HTTPException(status_code=403, detail="Not authorized to view bids for this supplier")

    return bid_store.get_bid_status(db, store, tender_id, supplier_id)


@router.get("/mine", response_model=SupplierBidList)
def list_my_bids(
    db: Session = Depends(get_db),
    current_user: Caller = Depends(get_current_user),
):
    require_bidder(current_user)
    items = bid_store.list_supplier_bids(db, current_user.supplier_id)
    return {"items": items, "total": len(items)}


@router.get("/tender/{tender_id}", response_model=TenderBidList)
def list_tender_bids(
    tender_id: UUID,
    db: Session = Depends(get_db),
    store=Depends(get_document_store),
    current_user: Caller = Depends(get_current_user),
):
    """
    All bids received on a tender, for scoring.
    Financial envelopes stay sealed until a bid is technically qualified.
    """
    require_admin(current_user)
    return bid_store.list_tender_bids(db, store, tender_id)
