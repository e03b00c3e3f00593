from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Integer, Text, Numeric, Float, Boolean, Uuid, UniqueConstraint
)
from sqlalchemy.orm import relationship
import uuid

from app.db.session import Base
from app.utils.deadline import utcnow
from app.utils.tender_state import TenderStatus, BidStatus, CarnivalBidStatus


class Tender(Base):
    __tablename__ = "tenders"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    scope_of_work = Column(Text, nullable=True)
    quantity = Column(String, nullable=True)
    delivery_timeline = Column(String, nullable=True)
    budget_estimate = Column(Numeric, nullable=True)
    emd_amount = Column(Numeric, nullable=True)
    price_weightage = Column(Integer, nullable=False, default=70)
    technical_weightage = Column(Integer, nullable=False, default=30)
    bid_validity_days = Column(Integer, nullable=True)
    penalty_clauses = Column(Text, nullable=True)

    # Timeline
    clarification_deadline = Column(DateTime, nullable=True)
    submission_deadline = Column(DateTime, nullable=False)
    opening_date = Column(DateTime, nullable=True)

    # Eligibility criteria
    min_experience_years = Column(Integer, nullable=True)
    min_turnover = Column(Numeric, nullable=True)
    required_certifications = Column(Text, nullable=True)

    created_by = Column(Uuid, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Status: DRAFT, PUBLISHED, AWARDED, CLOSED
    status = Column(String, nullable=False, default=TenderStatus.DRAFT)
    status_updated_at = Column(DateTime, default=utcnow)

    bids = relationship("Bid", back_populates="tender")
    award = relationship("Award", back_populates="tender", uselist=False)
    documents = relationship("TenderDocument", back_populates="tender", order_by="TenderDocument.uploaded_at")


class TenderDocument(Base):
    """Document published with a tender: drawings, BOQ, terms"""
    __tablename__ = "tender_documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tender_id = Column(Uuid, ForeignKey("tenders.id"), nullable=False, index=True)
    document_type = Column(String, nullable=False, default="general")
    file_name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    file_hash = Column(String, nullable=False)  # SHA256
    uploaded_by = Column(Uuid, nullable=False)
    uploaded_at = Column(DateTime, default=utcnow)

    tender = relationship("Tender", back_populates="documents")


class Bid(Base):
    __tablename__ = "bids"
    __table_args__ = (
        UniqueConstraint("tender_id", "supplier_id", name="uq_bid_tender_supplier"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tender_id = Column(Uuid, ForeignKey("tenders.id"), nullable=False, index=True)
    supplier_id = Column(Uuid, nullable=False, index=True)

    technical_doc_path = Column(String, nullable=False)
    financial_doc_path = Column(String, nullable=False)
    emd_doc_path = Column(String, nullable=False)

    amount = Column(Numeric, nullable=False)
    warranty_text = Column(Text, nullable=True)
    no_deviation = Column(Boolean, default=False)
    terms_accepted = Column(Boolean, default=False)

    # Status: SUBMITTED, TECH_QUALIFIED, REJECTED, WON, LOST
    status = Column(String, nullable=False, default=BidStatus.SUBMITTED)
    submitted_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tender = relationship("Tender", back_populates="bids")
    evaluation = relationship("Evaluation", back_populates="bid", uselist=False)


class Evaluation(Base):
    """Technical evaluation of one bid, written exactly once"""
    __tablename__ = "technical_evaluations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_id = Column(Uuid, ForeignKey("bids.id"), nullable=False, unique=True)
    evaluator_id = Column(Uuid, nullable=False)
    score = Column(Float, nullable=False)
    remarks = Column(Text, nullable=True)
    threshold = Column(Float, nullable=False)
    outcome = Column(String, nullable=False)  # TECH_QUALIFIED or REJECTED
    evaluated_at = Column(DateTime, default=utcnow)

    bid = relationship("Bid", back_populates="evaluation")


class Award(Base):
    __tablename__ = "tender_awards"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tender_id = Column(Uuid, ForeignKey("tenders.id"), nullable=False, unique=True)
    bid_id = Column(Uuid, ForeignKey("bids.id"), nullable=False)
    supplier_id = Column(Uuid, nullable=False)
    awarded_by = Column(Uuid, nullable=False)
    awarded_at = Column(DateTime, default=utcnow)

    # Closing documents, attached by the finalize step
    loi_doc_path = Column(String, nullable=True)
    contract_doc_path = Column(String, nullable=True)
    loi_doc_hash = Column(String, nullable=True)
    contract_doc_hash = Column(String, nullable=True)
    finalized_at = Column(DateTime, nullable=True)

    tender = relationship("Tender", back_populates="award")
    bid = relationship("Bid")


class CarnivalEvent(Base):
    __tablename__ = "carnivals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_title = Column(String, nullable=False)
    event_date = Column(DateTime, nullable=False)
    bid_deadline = Column(DateTime, nullable=False)
    total_stalls = Column(Integer, nullable=False)
    base_stall_price = Column(Numeric, nullable=False)
    extra_stall_price = Column(Numeric, nullable=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    bids = relationship("CarnivalBid", back_populates="carnival")


class CarnivalBid(Base):
    __tablename__ = "carnival_bids"
    __table_args__ = (
        UniqueConstraint("carnival_id", "supplier_id", name="uq_carnival_bid_supplier"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    carnival_id = Column(Uuid, ForeignKey("carnivals.id"), nullable=False, index=True)
    supplier_id = Column(Uuid, nullable=False, index=True)
    bid_amount = Column(Numeric, nullable=False)
    proposal_description = Column(Text, nullable=True)
    technical_doc_path = Column(String, nullable=False)
    financial_doc_path = Column(String, nullable=False)

    # Status: PENDING, APPROVED, REJECTED
    status = Column(String, nullable=False, default=CarnivalBidStatus.PENDING)
    decided_by = Column(Uuid, nullable=True)
    submitted_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    carnival = relationship("CarnivalEvent", back_populates="bids")
