from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class BidSummary(BaseModel):
    """One technically qualified (or already decided) bid in the comparison view"""
    bid_id: UUID
    supplier_id: UUID
    status: str
    amount: Decimal
    technical_score: Optional[float] = None
    remarks: Optional[str] = None
    submitted_at: Optional[datetime] = None
    technical_url: Optional[str] = None
    financial_url: Optional[str] = None


class ComparisonOut(BaseModel):
    tender_id: UUID
    qualified_bids: List[BidSummary]


class AwardRequest(BaseModel):
    """Request schema for awarding a tender to a winning bid"""
    tender_id: UUID
    winning_bid_id: UUID


class AwardResult(BaseModel):
    """Authoritative state right after the award commits"""
    award_id: UUID
    tender_id: UUID
    tender_status: str
    winning_bid_id: UUID
    supplier_id: UUID
    lost_bid_ids: List[UUID]
    awarded_at: datetime


class AwardOut(BaseModel):
    id: UUID
    tender_id: UUID
    bid_id: UUID
    supplier_id: UUID
    awarded_by: UUID
    awarded_at: datetime
    loi_doc_path: Optional[str] = None
    contract_doc_path: Optional[str] = None
    finalized_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AwardDocumentUrls(BaseModel):
    loi: Optional[str] = None
    contract: Optional[str] = None


class AwardDetail(BaseModel):
    award: AwardOut
    download_urls: AwardDocumentUrls
