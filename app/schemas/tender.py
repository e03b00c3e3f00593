from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from app.utils.deadline import as_naive_utc


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return as_naive_utc(value) if value is not None else None


# ------------------------
# Tender Schemas
# ------------------------
class TenderBase(BaseModel):
    title: str = Field(min_length=1)
    description: str
    scope_of_work: Optional[str] = None
    quantity: Optional[str] = None
    delivery_timeline: Optional[str] = None
    budget_estimate: Optional[Decimal] = Field(default=None, ge=0)
    emd_amount: Optional[Decimal] = Field(default=None, ge=0)
    price_weightage: int = Field(default=70, ge=0, le=100)
    technical_weightage: int = Field(default=30, ge=0, le=100)
    bid_validity_days: Optional[int] = Field(default=None, gt=0)
    penalty_clauses: Optional[str] = None

    # Timeline
    clarification_deadline: Optional[datetime] = None
    submission_deadline: datetime
    opening_date: Optional[datetime] = None

    # Eligibility criteria
    min_experience_years: Optional[int] = Field(default=None, ge=0)
    min_turnover: Optional[Decimal] = Field(default=None, ge=0)
    required_certifications: Optional[str] = None

    @field_validator("clarification_deadline", "submission_deadline", "opening_date")
    @classmethod
    def store_as_utc(cls, v):
        return _naive(v)

    @model_validator(mode="after")
    def check_weightage_and_timeline(self):
        if self.price_weightage + self.technical_weightage != 100:
            raise ValueError("price_weightage and technical_weightage must sum to 100")
        if self.clarification_deadline and self.clarification_deadline > self.submission_deadline:
            raise ValueError("clarification_deadline must not be after submission_deadline")
        if self.opening_date and self.opening_date < self.submission_deadline:
            raise ValueError("opening_date must not be before submission_deadline")
        return self


class TenderCreate(TenderBase):
    pass  # created_by will come from current_user


class TenderUpdate(BaseModel):
    """Schema for updating tender details (only in DRAFT/PUBLISHED state)"""
    title: Optional[str] = None
    description: Optional[str] = None
    scope_of_work: Optional[str] = None
    quantity: Optional[str] = None
    delivery_timeline: Optional[str] = None
    budget_estimate: Optional[Decimal] = Field(default=None, ge=0)
    emd_amount: Optional[Decimal] = Field(default=None, ge=0)
    price_weightage: Optional[int] = Field(default=None, ge=0, le=100)
    technical_weightage: Optional[int] = Field(default=None, ge=0, le=100)
    bid_validity_days: Optional[int] = Field(default=None, gt=0)
    penalty_clauses: Optional[str] = None
    clarification_deadline: Optional[datetime] = None
    submission_deadline: Optional[datetime] = None
    opening_date: Optional[datetime] = None
    min_experience_years: Optional[int] = Field(default=None, ge=0)
    min_turnover: Optional[Decimal] = Field(default=None, ge=0)
    required_certifications: Optional[str] = None

    @field_validator("clarification_deadline", "submission_deadline", "opening_date")
    @classmethod
    def store_as_utc(cls, v):
        return _naive(v)


class TenderStatusTarget(str, Enum):
    """Statuses an admin may set directly; AWARDED is reserved for the award flow"""
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"


class TenderStatusUpdate(BaseModel):
    status: TenderStatusTarget


class TenderDocumentOut(BaseModel):
    id: UUID
    document_type: str
    file_name: str
    file_size: int
    uploaded_at: datetime
    download_url: Optional[str] = None

    class Config:
        from_attributes = True


class TenderDocumentLink(BaseModel):
    document_id: UUID
    file_name: str
    url: str


class TenderOut(TenderBase):
    id: UUID
    status: str
    created_by: UUID
    created_at: datetime
    updated_at: datetime
    status_updated_at: datetime
    documents: List[TenderDocumentOut] = []

    class Config:
        from_attributes = True
