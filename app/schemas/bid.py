# app/schemas/bid.py
from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class BidOut(BaseModel):
    """
    Bid as seen by any caller.

    amount and financial_doc_path stay null while financials_locked is true.
    """
    id: UUID
    tender_id: UUID
    supplier_id: UUID
    status: str
    warranty_text: Optional[str] = None
    no_deviation: bool = False
    terms_accepted: bool = False
    technical_doc_path: str
    emd_doc_path: str
    financials_locked: bool
    amount: Optional[Decimal] = None
    financial_doc_path: Optional[str] = None
    submitted_at: datetime
    updated_at: datetime


class BidDownloadUrls(BaseModel):
    technical: Optional[str] = None
    financial: Optional[str] = None
    emd: Optional[str] = None


class BidStatusOut(BaseModel):
    bid: Optional[BidOut] = None
    download_urls: Optional[BidDownloadUrls] = None
    deadline: datetime
    tender_status: str


class BidSubmitted(BaseModel):
    bid_id: UUID
    status: str
    message: str = "Complete bid package submitted successfully!"


class SupplierBidOut(BaseModel):
    id: UUID
    tender_id: UUID
    title: str
    status: str
    amount: Optional[Decimal] = None
    financials_locked: bool
    submitted_at: datetime


class SupplierBidList(BaseModel):
    items: List[SupplierBidOut]
    total: int


class TenderBidEntry(BaseModel):
    bid: BidOut
    download_urls: BidDownloadUrls


class TenderBidList(BaseModel):
    tender_id: UUID
    tender_status: str
    items: List[TenderBidEntry]
    total: int
