"""
Carnival stall bidding: base price floor, independent decisions, capacity.
"""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.config import settings
from app.core.errors import (
    CapacityExceeded, DuplicateBid, InvalidTransition, NotFound, UpstreamStorageFailure, ValidationFailed
)
from app.db.models import CarnivalBid
from app.services import carnival_service
from app.utils.deadline import utcnow
from app.utils.tender_state import CarnivalBidStatus

from conftest import create_carnival, create_carnival_bid, pdf


def submit(db, store, event, supplier_id, amount):
    return carnival_service.submit_carnival_bid(
        db, store, event.id, supplier_id,
        technical_doc=pdf("stall-plan.pdf", b"stall layout"),
        financial_doc=pdf("offer.pdf", b"price offer"),
        bid_amount=Decimal(amount),
        proposal_description="Food stall",
    )


def test_bid_below_base_price_is_rejected(db, store, supplier):
    event = create_carnival(db, base_stall_price="2000")

    with pytest.raises(ValidationFailed):
        submit(db, store, event, supplier.supplier_id, "1500")

    assert db.query(CarnivalBid).count() == 0


def test_bid_at_base_price_is_accepted(db, store, supplier):
    event = create_carnival(db, base_stall_price="2000")

    bid = submit(db, store, event, supplier.supplier_id, "2000")

    assert bid.status == CarnivalBidStatus.PENDING
    assert store.exists(bid.technical_doc_path)
    assert store.exists(bid.financial_doc_path)


def test_one_bid_per_supplier_per_carnival(db, store, supplier):
    event = create_carnival(db)
    submit(db, store, event, supplier.supplier_id, "2500")

    with pytest.raises(DuplicateBid):
        submit(db, store, event, supplier.supplier_id, "2600")


def test_failed_upload_leaves_nothing_behind(db, flaky_store_factory, supplier):
    event = create_carnival(db)
    flaky = flaky_store_factory(fail_on={2, 3, 4})

    with pytest.raises(UpstreamStorageFailure):
        submit(db, flaky, event, supplier.supplier_id, "2500")

    assert db.query(CarnivalBid).count() == 0
    assert flaky.stored_files() == []


def test_create_carnival_validates_dates_and_stalls(db):
    now = utcnow()
    with pytest.raises(ValidationFailed):
        carnival_service.create_carnival(db, "Late", now + timedelta(days=1), now + timedelta(days=2), 5, Decimal("100"))
    with pytest.raises(ValidationFailed):
        carnival_service.create_carnival(db, "Empty", now + timedelta(days=5), now + timedelta(days=1), 0, Decimal("100"))

    event = carnival_service.create_carnival(
        db, "Summer Fair", now + timedelta(days=10), now + timedelta(days=3), 12, Decimal("1500")
    )
    assert event.total_stalls == 12


def test_active_carnivals_exclude_closed_events(db):
    open_event = create_carnival(db, deadline_in=timedelta(days=2))
    create_carnival(db, deadline_in=timedelta(hours=-1))

    active = carnival_service.list_active_carnivals(db)

    assert [e.id for e in active] == [open_event.id]


def test_decisions_are_independent(db):
    event = create_carnival(db, total_stalls=5)
    first = create_carnival_bid(db, event)
    second = create_carnival_bid(db, event)
    third = create_carnival_bid(db, event)

    carnival_service.update_bid_status(db, first.id, CarnivalBidStatus.APPROVED, uuid.uuid4())
    result = carnival_service.update_bid_status(db, second.id, CarnivalBidStatus.APPROVED, uuid.uuid4())
    carnival_service.update_bid_status(db, third.id, CarnivalBidStatus.REJECTED, uuid.uuid4())

    assert result["status"] == CarnivalBidStatus.APPROVED
    assert result["approved_count"] == 2
    assert result["remaining_stalls"] == 3
    db.expire_all()
    assert db.get(CarnivalBid, third.id).status == CarnivalBidStatus.REJECTED


def test_reapplying_same_status_is_noop(db):
    event = create_carnival(db)
    bid = create_carnival_bid(db, event)
    carnival_service.update_bid_status(db, bid.id, CarnivalBidStatus.APPROVED, uuid.uuid4())

    result = carnival_service.update_bid_status(db, bid.id, CarnivalBidStatus.APPROVED, uuid.uuid4())

    assert result["status"] == CarnivalBidStatus.APPROVED
    assert result["approved_count"] == 1


def test_decided_bid_cannot_flip(db):
    event = create_carnival(db)
    bid = create_carnival_bid(db, event)
    carnival_service.update_bid_status(db, bid.id, CarnivalBidStatus.REJECTED, uuid.uuid4())

    with pytest.raises(InvalidTransition):
        carnival_service.update_bid_status(db, bid.id, CarnivalBidStatus.APPROVED, uuid.uuid4())


@pytest.mark.parametrize("status", ["Approved", "approved", "PENDING", "WON"])
def test_invalid_status_strings_are_rejected(db, status):
    event = create_carnival(db)
    bid = create_carnival_bid(db, event)

    with pytest.raises(ValidationFailed):
        carnival_service.update_bid_status(db, bid.id, status, uuid.uuid4())

    db.expire_all()
    assert db.get(CarnivalBid, bid.id).status == CarnivalBidStatus.PENDING


def test_unknown_bid_is_not_found(db):
    with pytest.raises(NotFound):
        carnival_service.update_bid_status(db, uuid.uuid4(), CarnivalBidStatus.APPROVED, uuid.uuid4())


def test_capacity_is_advisory_by_default(db):
    event = create_carnival(db, total_stalls=1)
    first = create_carnival_bid(db, event)
    second = create_carnival_bid(db, event)

    carnival_service.update_bid_status(db, first.id, CarnivalBidStatus.APPROVED, uuid.uuid4())
    result = carnival_service.update_bid_status(db, second.id, CarnivalBidStatus.APPROVED, uuid.uuid4())

    assert result["approved_count"] == 2
    assert result["remaining_stalls"] == 0
    assert result["over_capacity"] is True


def test_capacity_enforced_when_configured(db, monkeypatch):
    monkeypatch.setattr(settings, "CARNIVAL_ENFORCE_CAPACITY", True)
    event = create_carnival(db, total_stalls=1)
    first = create_carnival_bid(db, event)
    second = create_carnival_bid(db, event)
    carnival_service.update_bid_status(db, first.id, CarnivalBidStatus.APPROVED, uuid.uuid4())

    with pytest.raises(CapacityExceeded):
        carnival_service.update_bid_status(db, second.id, CarnivalBidStatus.APPROVED, uuid.uuid4())

    # rejections are always possible
    result = carnival_service.update_bid_status(db, second.id, CarnivalBidStatus.REJECTED, uuid.uuid4())
    assert result["status"] == CarnivalBidStatus.REJECTED


def test_details_include_every_bid_with_urls(db, store):
    event = create_carnival(db, total_stalls=3)
    create_carnival_bid(db, event)
    create_carnival_bid(db, event)

    details = carnival_service.get_carnival_details(db, store, event.id)

    assert details["carnival"].id == event.id
    assert len(details["bids"]) == 2
    assert all(entry["download_urls"]["financial"] for entry in details["bids"])
    assert details["capacity"]["remaining_stalls"] == 3


def test_supplier_status_view(db, store, supplier):
    event = create_carnival(db)
    submit(db, store, event, supplier.supplier_id, "3000")

    status = carnival_service.get_carnival_bid_status(db, store, event.id, supplier.supplier_id)

    assert status["bid"].bid_amount == Decimal("3000")
    assert status["download_urls"]["technical"]
    assert status["bid_deadline"] == event.bid_deadline
