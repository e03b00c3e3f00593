from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from app.utils.deadline import as_naive_utc


class CarnivalCreate(BaseModel):
    event_title: str = Field(min_length=1)
    event_date: datetime
    bid_deadline: datetime
    total_stalls: int = Field(gt=0)
    base_stall_price: Decimal = Field(ge=0)
    extra_stall_price: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("event_date", "bid_deadline")
    @classmethod
    def store_as_utc(cls, v):
        return as_naive_utc(v)

    @model_validator(mode="after")
    def deadline_before_event(self):
        if self.bid_deadline >= self.event_date:
            raise ValueError("bid_deadline must be strictly before event_date")
        return self


class CarnivalOut(BaseModel):
    id: UUID
    event_title: str
    event_date: datetime
    bid_deadline: datetime
    total_stalls: int
    base_stall_price: Decimal
    extra_stall_price: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CarnivalStatusUpdate(BaseModel):
    """status is matched exactly against APPROVED / REJECTED by the service"""
    bid_id: UUID
    status: str


class CarnivalBidOut(BaseModel):
    id: UUID
    carnival_id: UUID
    supplier_id: UUID
    bid_amount: Decimal
    proposal_description: Optional[str] = None
    technical_doc_path: str
    financial_doc_path: str
    status: str
    submitted_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CarnivalDownloadUrls(BaseModel):
    technical: Optional[str] = None
    financial: Optional[str] = None


class CarnivalBidSubmitted(BaseModel):
    bid_id: UUID
    status: str
    message: str = "Bid submitted successfully!"


class CarnivalBidStatusOut(BaseModel):
    bid: Optional[CarnivalBidOut] = None
    download_urls: Optional[CarnivalDownloadUrls] = None
    bid_deadline: datetime


class CapacityOut(BaseModel):
    total_stalls: int
    approved_count: int
    remaining_stalls: int
    over_capacity: bool


class CarnivalDecisionResult(CapacityOut):
    bid_id: UUID
    carnival_id: UUID
    status: str


class CarnivalBidWithUrls(BaseModel):
    bid: CarnivalBidOut
    download_urls: CarnivalDownloadUrls


class CarnivalDetailsOut(BaseModel):
    carnival: CarnivalOut
    bids: List[CarnivalBidWithUrls]
    capacity: CapacityOut
