"""
Technical evaluation gate and the comparison view built on top of it.
"""
import threading
import uuid
from decimal import Decimal

import pytest

from app.core.errors import (
    AlreadyEvaluated, FinancialsLocked, InvalidTransition, NotFound, ValidationFailed
)
from app.db.models import Bid, Evaluation
from app.db.session import SessionLocal
from app.services import award_service, comparison_service, evaluation_service
from app.utils.tender_state import BidStatus, TenderStatus

from conftest import create_bid, create_tender


def score(db, bid, value, threshold=None, remarks=None):
    return evaluation_service.submit_score(
        db, bid.id, value, remarks, evaluator_id=uuid.uuid4(), threshold=threshold
    )


def test_threshold_scenario_qualifies_and_rejects(db, store):
    tender = create_tender(db)
    strong = create_bid(db, tender, amount="1200")
    weak = create_bid(db, tender, amount="900")

    assert score(db, strong, 70, threshold=50).outcome == BidStatus.TECH_QUALIFIED
    assert score(db, weak, 40, threshold=50).outcome == BidStatus.REJECTED

    db.expire_all()
    assert db.get(Bid, strong.id).status == BidStatus.TECH_QUALIFIED
    assert db.get(Bid, weak.id).status == BidStatus.REJECTED

    comparison = comparison_service.get_comparison(db, store, tender.id)
    assert [row["bid_id"] for row in comparison] == [str(strong.id)]
    assert Decimal(comparison[0]["amount"]) == Decimal("1200")
    assert comparison[0]["technical_score"] == 70


def test_default_threshold_is_seventy(db):
    tender = create_tender(db)
    borderline = create_bid(db, tender)
    below = create_bid(db, tender)

    assert score(db, borderline, 70).outcome == BidStatus.TECH_QUALIFIED
    assert score(db, below, 69.5).outcome == BidStatus.REJECTED


def test_scoring_twice_is_already_evaluated(db):
    tender = create_tender(db)
    bid = create_bid(db, tender)
    first = score(db, bid, 80, remarks="solid method statement")

    with pytest.raises(AlreadyEvaluated):
        score(db, bid, 20, remarks="changed my mind")

    db.expire_all()
    assert db.get(Bid, bid.id).status == BidStatus.TECH_QUALIFIED
    evaluations = db.query(Evaluation).filter(Evaluation.bid_id == bid.id).all()
    assert len(evaluations) == 1
    assert evaluations[0].id == first.id
    assert evaluations[0].score == 80
    assert evaluations[0].remarks == "solid method statement"


def test_concurrent_scoring_records_one_evaluation(db):
    tender = create_tender(db)
    bid = create_bid(db, tender)
    outcomes = []
    start = threading.Barrier(3)

    def worker(value):
        session = SessionLocal()
        try:
            start.wait()
            evaluation_service.submit_score(session, bid.id, value, None, evaluator_id=uuid.uuid4())
            outcomes.append("ok")
        except AlreadyEvaluated:
            outcomes.append("already")
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(v,)) for v in (90, 30, 75)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    assert db.query(Evaluation).filter(Evaluation.bid_id == bid.id).count() == 1


@pytest.mark.parametrize("value", [-1, 100.5])
def test_score_out_of_range(db, value):
    tender = create_tender(db)
    bid = create_bid(db, tender)
    with pytest.raises(ValidationFailed):
        score(db, bid, value)


def test_unknown_bid_is_not_found(db):
    with pytest.raises(NotFound):
        evaluation_service.submit_score(db, uuid.uuid4(), 50, None, evaluator_id=uuid.uuid4())


def test_cannot_evaluate_on_draft_tender(db):
    tender = create_tender(db, status=TenderStatus.DRAFT)
    bid = create_bid(db, tender)
    with pytest.raises(InvalidTransition):
        score(db, bid, 80)


def test_financial_envelope_opens_after_qualification(db, store):
    tender = create_tender(db)
    bid = create_bid(db, tender, amount="4321.50")

    with pytest.raises(FinancialsLocked):
        evaluation_service.view_financial_envelope(db, store, bid.id)

    score(db, bid, 85)
    envelope = evaluation_service.view_financial_envelope(db, store, bid.id)

    assert envelope["status"] == BidStatus.TECH_QUALIFIED
    assert envelope["total_quoted_amount"] == Decimal("4321.50")
    assert "token=" in envelope["view_url"]


def test_rejected_bid_financials_stay_locked(db, store):
    tender = create_tender(db)
    bid = create_bid(db, tender)
    score(db, bid, 10)

    with pytest.raises(FinancialsLocked):
        evaluation_service.view_financial_envelope(db, store, bid.id)


def test_technical_document_always_viewable(db, store):
    tender = create_tender(db)
    bid = create_bid(db, tender)

    view = evaluation_service.view_technical_document(db, store, bid.id)

    assert view["bid_id"] == bid.id
    assert view["view_url"]


def test_comparison_excludes_submitted_bids(db, store):
    tender = create_tender(db)
    create_bid(db, tender, status=BidStatus.SUBMITTED)
    create_bid(db, tender, status=BidStatus.REJECTED)

    assert comparison_service.get_comparison(db, store, tender.id) == []


def test_comparison_sorts_by_amount(db, store):
    tender = create_tender(db)
    dear = create_bid(db, tender, status=BidStatus.TECH_QUALIFIED, amount="5000")
    cheap = create_bid(db, tender, status=BidStatus.TECH_QUALIFIED, amount="3000")

    rows = comparison_service.get_comparison(db, store, tender.id, sort="amount")

    assert [r["bid_id"] for r in rows] == [str(cheap.id), str(dear.id)]
    assert all(r["financial_url"] for r in rows)


def test_comparison_rejects_unknown_sort(db, store):
    tender = create_tender(db)
    with pytest.raises(ValidationFailed):
        comparison_service.get_comparison(db, store, tender.id, sort="supplier_name")


def test_comparison_cached_after_a_concurrent_award_is_not_served(db, store, monkeypatch):
    tender = create_tender(db)
    bid = create_bid(db, tender, status=BidStatus.TECH_QUALIFIED, amount="500")
    cache = {}

    def set_after_award(key, value, ttl=None):
        # the award commits and invalidates between the read and the cache write
        if not cache:
            session = SessionLocal()
            try:
                award_service.award_winner(session, tender.id, bid.id, uuid.uuid4())
            finally:
                session.close()
        cache[key] = value
        return True

    monkeypatch.setattr(comparison_service, "get_cached", cache.get)
    monkeypatch.setattr(comparison_service, "set_cached", set_after_award)

    stale = comparison_service.get_comparison(db, store, tender.id)
    assert [row["status"] for row in stale] == [BidStatus.TECH_QUALIFIED]

    db.expire_all()
    fresh = comparison_service.get_comparison(db, store, tender.id)

    assert [row["status"] for row in fresh] == [BidStatus.WON]
    assert len(cache) == 2


def test_comparison_version_moves_with_scoring(db):
    tender = create_tender(db)
    bid = create_bid(db, tender)
    before = comparison_service.comparison_version(db, tender.id)

    evaluation_service.submit_score(db, bid.id, 91, None, evaluator_id=uuid.uuid4())

    assert comparison_service.comparison_version(db, tender.id) != before
