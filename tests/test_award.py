"""
Award finalizer: a single irreversible winner per tender.
"""
import threading
import uuid

import pytest

from app.core.errors import AlreadyAwarded, InvalidTransition, NotFound, ValidationFailed
from app.db.models import Award, Bid, Tender
from app.db.session import SessionLocal
from app.services import award_service
from app.services.storage_service import LocalDocumentStore, calculate_hash
from app.utils.tender_state import BidStatus, TenderStatus

from conftest import create_bid, create_tender, pdf


@pytest.fixture
def qualified_field(db):
    """Published tender with three qualified bids and one rejected bid"""
    tender = create_tender(db)
    qualified = [
        create_bid(db, tender, status=BidStatus.TECH_QUALIFIED, amount=amount)
        for amount in ("3000", "2500", "4100")
    ]
    rejected = create_bid(db, tender, status=BidStatus.REJECTED)
    return tender, qualified, rejected


def statuses(db, tender_id):
    db.expire_all()
    return {b.id: b.status for b in db.query(Bid).filter(Bid.tender_id == tender_id)}


def test_award_marks_winner_and_losers(db, qualified_field, admin):
    tender, qualified, rejected = qualified_field
    winner = qualified[1]

    result = award_service.award_winner(db, tender.id, winner.id, admin.user_id)

    assert result["tender_status"] == TenderStatus.AWARDED
    assert result["winning_bid_id"] == winner.id
    assert result["supplier_id"] == winner.supplier_id
    assert set(result["lost_bid_ids"]) == {qualified[0].id, qualified[2].id}

    current = statuses(db, tender.id)
    assert current[winner.id] == BidStatus.WON
    assert current[qualified[0].id] == BidStatus.LOST
    assert current[qualified[2].id] == BidStatus.LOST
    assert current[rejected.id] == BidStatus.REJECTED
    assert db.get(Tender, tender.id).status == TenderStatus.AWARDED


def test_second_award_is_blocked(db, qualified_field, admin):
    tender, qualified, _ = qualified_field
    award_service.award_winner(db, tender.id, qualified[0].id, admin.user_id)

    with pytest.raises(AlreadyAwarded):
        award_service.award_winner(db, tender.id, qualified[1].id, admin.user_id)

    assert db.query(Award).filter(Award.tender_id == tender.id).count() == 1
    assert statuses(db, tender.id)[qualified[0].id] == BidStatus.WON


def test_concurrent_awards_produce_one_winner(db, qualified_field):
    tender, qualified, _ = qualified_field
    results = []
    start = threading.Barrier(len(qualified))

    def worker(bid_id):
        session = SessionLocal()
        try:
            start.wait()
            award_service.award_winner(session, tender.id, bid_id, uuid.uuid4())
            results.append(("ok", bid_id))
        except AlreadyAwarded:
            results.append(("already", bid_id))
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(b.id,)) for b in qualified]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [bid_id for outcome, bid_id in results if outcome == "ok"]
    assert len(winners) == 1
    assert len(results) == len(qualified)

    current = statuses(db, tender.id)
    assert [bid_id for bid_id, s in current.items() if s == BidStatus.WON] == winners
    assert db.query(Award).filter(Award.tender_id == tender.id).count() == 1


def test_only_qualified_bid_can_win(db, qualified_field, admin):
    tender, _, rejected = qualified_field
    with pytest.raises(InvalidTransition):
        award_service.award_winner(db, tender.id, rejected.id, admin.user_id)
    assert db.get(Tender, tender.id).status == TenderStatus.PUBLISHED


def test_bid_from_another_tender_cannot_win(db, qualified_field, admin):
    tender, _, _ = qualified_field
    other = create_tender(db)
    stranger = create_bid(db, other, status=BidStatus.TECH_QUALIFIED)

    with pytest.raises(InvalidTransition):
        award_service.award_winner(db, tender.id, stranger.id, admin.user_id)


def test_closed_tender_cannot_be_awarded(db, admin):
    tender = create_tender(db, status=TenderStatus.CLOSED)
    bid = create_bid(db, tender, status=BidStatus.TECH_QUALIFIED)
    with pytest.raises(InvalidTransition):
        award_service.award_winner(db, tender.id, bid.id, admin.user_id)


def test_get_award_for_unawarded_tender(db):
    tender = create_tender(db)
    with pytest.raises(NotFound):
        award_service.get_award_for_tender(db, tender.id)


def test_finalize_is_idempotent_for_identical_documents(db, store, qualified_field, admin):
    tender, qualified, _ = qualified_field
    result = award_service.award_winner(db, tender.id, qualified[0].id, admin.user_id)
    award_id = result["award_id"]

    first = award_service.finalize_award(
        db, store, award_id, pdf("loi.pdf", b"letter of intent"), pdf("contract.pdf", b"signed contract")
    )
    loi_path, contract_path, finalized_at = first.loi_doc_path, first.contract_doc_path, first.finalized_at

    again = award_service.finalize_award(
        db, store, award_id, pdf("loi.pdf", b"letter of intent"), pdf("contract.pdf", b"signed contract")
    )

    assert again.loi_doc_path == loi_path
    assert again.contract_doc_path == contract_path
    assert again.finalized_at == finalized_at
    assert store.exists(loi_path) and store.exists(contract_path)
    assert db.query(Award).filter(Award.tender_id == tender.id).count() == 1


def test_finalize_with_different_documents_is_rejected(db, store, qualified_field, admin):
    tender, qualified, _ = qualified_field
    award_id = award_service.award_winner(db, tender.id, qualified[0].id, admin.user_id)["award_id"]
    award_service.finalize_award(db, store, award_id, pdf("loi.pdf", b"v1"), pdf("contract.pdf", b"v1"))

    with pytest.raises(InvalidTransition):
        award_service.finalize_award(db, store, award_id, pdf("loi.pdf", b"v2"), pdf("contract.pdf", b"v1"))

    award = award_service.get_award_or_404(db, award_id)
    assert store.exists(award.loi_doc_path)


def test_finalize_requires_both_documents(db, store, qualified_field, admin):
    tender, qualified, _ = qualified_field
    award_id = award_service.award_winner(db, tender.id, qualified[0].id, admin.user_id)["award_id"]

    with pytest.raises(ValidationFailed):
        award_service.finalize_award(db, store, award_id, pdf("loi.pdf"), None)


class RivalFinalizeStore(LocalDocumentStore):
    """Store that lets another admin finalize the award just before the first upload lands"""

    def __init__(self, root, award_id, loi_doc, contract_doc):
        super().__init__(root)
        self.award_id = award_id
        self.rival_documents = (loi_doc, contract_doc)
        self.rival_done = False

    def put(self, path, content, content_type=None):
        if not self.rival_done:
            self.rival_done = True
            session = SessionLocal()
            try:
                award_service.finalize_award(session, LocalDocumentStore(self.root), self.award_id, *self.rival_documents)
            finally:
                session.close()
        return super().put(path, content, content_type)


def test_losing_concurrent_finalize_keeps_the_winners_shared_document(db, tmp_path, qualified_field, admin):
    tender, qualified, _ = qualified_field
    award_id = award_service.award_winner(db, tender.id, qualified[0].id, admin.user_id)["award_id"]
    rival = RivalFinalizeStore(
        str(tmp_path / "rival"), award_id, pdf("loi.pdf", b"shared letter"), pdf("contract.pdf", b"winning contract")
    )

    with pytest.raises(InvalidTransition):
        award_service.finalize_award(
            db, rival, award_id, pdf("loi.pdf", b"shared letter"), pdf("contract.pdf", b"late contract")
        )

    award = award_service.get_award_or_404(db, award_id)
    assert award.contract_doc_hash == calculate_hash(b"winning contract")
    assert rival.exists(award.loi_doc_path)
    assert rival.exists(award.contract_doc_path)
    assert not rival.exists(f"awards/{award_id}/contract_{calculate_hash(b'late contract')[:16]}.pdf")
