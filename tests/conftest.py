"""
Shared fixtures: a throwaway SQLite database, a temporary document store,
caller tokens and tender/bid factories.

Settings are read from the environment at import time, so the environment
is prepared before anything under app/ is imported.
"""
import os
import tempfile
import uuid
from datetime import timedelta
from decimal import Decimal

_TEST_ROOT = tempfile.mkdtemp(prefix="tenderaward-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_ROOT, 'test.db')}"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_ROOT, "uploads")
os.environ["STORAGE_RETRY_BACKOFF"] = "0"
os.environ["CACHE_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["PUBLIC_BASE_URL"] = "http://testserver"

import pytest
from fastapi.testclient import TestClient

from app.core.deps import Caller
from app.db.models import Bid, Tender, CarnivalEvent, CarnivalBid
from app.db.session import Base, SessionLocal, engine
from app.main import app
from app.services.storage_service import (
    DocumentUpload, LocalDocumentStore, StorageUnavailable, get_document_store
)
from app.utils.deadline import utcnow
from app.utils.permissions import ADMIN, SUPPLIER
from app.utils.security import create_access_token
from app.utils.tender_state import BidStatus, CarnivalBidStatus, TenderStatus


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(tmp_path):
    return LocalDocumentStore(str(tmp_path / "store"))


class FlakyStore(LocalDocumentStore):
    """
    Store whose put() raises StorageUnavailable for selected calls.

    fail_on: 1-based put() call numbers that fail; fail_always makes every call fail.
    """

    def __init__(self, root, fail_on=(), fail_always=False):
        super().__init__(root)
        self.fail_on = set(fail_on)
        self.fail_always = fail_always
        self.put_calls = 0

    def put(self, path, content, content_type=None):
        self.put_calls += 1
        if self.fail_always or self.put_calls in self.fail_on:
            raise StorageUnavailable("connection timed out")
        return super().put(path, content, content_type)

    def stored_files(self):
        found = []
        for dirpath, _, filenames in os.walk(self.root):
            found.extend(os.path.join(dirpath, name) for name in filenames)
        return found


@pytest.fixture
def flaky_store_factory(tmp_path):
    def make(**kwargs):
        return FlakyStore(str(tmp_path / f"flaky-{uuid.uuid4().hex[:8]}"), **kwargs)
    return make


@pytest.fixture
def client(store):
    app.dependency_overrides[get_document_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ------------------------
# Callers
# ------------------------
@pytest.fixture
def admin():
    return Caller(user_id=uuid.uuid4(), role=ADMIN)


@pytest.fixture
def supplier():
    return Caller(user_id=uuid.uuid4(), role=SUPPLIER, supplier_id=uuid.uuid4())


def make_supplier() -> Caller:
    return Caller(user_id=uuid.uuid4(), role=SUPPLIER, supplier_id=uuid.uuid4())


def auth_headers(caller: Caller) -> dict:
    claims = {"sub": str(caller.user_id), "role": caller.role}
    if caller.supplier_id:
        claims["supplier_id"] = str(caller.supplier_id)
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


# ------------------------
# Documents
# ------------------------
def pdf(name="doc.pdf", body=b"%PDF-1.4 test document") -> DocumentUpload:
    return DocumentUpload(filename=name, content=body, content_type="application/pdf")


def bid_documents():
    return {
        "technical_doc": pdf("technical.pdf", b"technical proposal"),
        "financial_doc": pdf("financial.pdf", b"financial quote"),
        "emd_doc": pdf("emd.pdf", b"emd receipt"),
    }


# ------------------------
# Factories
# ------------------------
def create_tender(db, status=TenderStatus.PUBLISHED, deadline_in=timedelta(days=7), **fields) -> Tender:
    values = {
        "title": "Supply of office furniture",
        "description": "Desks and chairs for the new wing",
        "submission_deadline": utcnow() + deadline_in,
        "created_by": uuid.uuid4(),
        "status": status,
    }
    values.update(fields)
    tender = Tender(**values)
    db.add(tender)
    db.commit()
    db.refresh(tender)
    return tender


def create_bid(db, tender, supplier_id=None, status=BidStatus.SUBMITTED, amount="1000.00") -> Bid:
    supplier_id = supplier_id or uuid.uuid4()
    prefix = f"tenders/{tender.id}/{supplier_id}"
    bid = Bid(
        tender_id=tender.id,
        supplier_id=supplier_id,
        technical_doc_path=f"{prefix}/technical.pdf",
        financial_doc_path=f"{prefix}/financial.pdf",
        emd_doc_path=f"{prefix}/emd.pdf",
        amount=Decimal(amount),
        status=status,
    )
    db.add(bid)
    db.commit()
    db.refresh(bid)
    return bid


def create_carnival(db, total_stalls=2, base_stall_price="2000", deadline_in=timedelta(days=3)) -> CarnivalEvent:
    now = utcnow()
    event = CarnivalEvent(
        event_title="Spring Carnival",
        event_date=now + deadline_in + timedelta(days=7),
        bid_deadline=now + deadline_in,
        total_stalls=total_stalls,
        base_stall_price=Decimal(base_stall_price),
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def create_carnival_bid(db, event, supplier_id=None, status=CarnivalBidStatus.PENDING, amount="2500") -> CarnivalBid:
    supplier_id = supplier_id or uuid.uuid4()
    bid = CarnivalBid(
        carnival_id=event.id,
        supplier_id=supplier_id,
        bid_amount=Decimal(amount),
        technical_doc_path=f"carnivals/{event.id}/{supplier_id}/technical.pdf",
        financial_doc_path=f"carnivals/{event.id}/{supplier_id}/financial.pdf",
        status=status,
    )
    db.add(bid)
    db.commit()
    db.refresh(bid)
    return bid
