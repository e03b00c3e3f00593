from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class ScoreRequest(BaseModel):
    bid_id: UUID
    score: float = Field(ge=0, le=100)
    remarks: Optional[str] = None


class EvaluationOut(BaseModel):
    id: UUID
    bid_id: UUID
    evaluator_id: UUID
    score: float
    remarks: Optional[str] = None
    threshold: float
    outcome: str
    evaluated_at: datetime

    class Config:
        from_attributes = True


class ScoreResult(BaseModel):
    status: str
    message: str
    evaluation: EvaluationOut


class TechnicalDocumentOut(BaseModel):
    bid_id: UUID
    view_url: Optional[str] = None


class FinancialEnvelopeOut(BaseModel):
    bid_id: UUID
    status: str
    total_quoted_amount: Decimal
    view_url: Optional[str] = None
