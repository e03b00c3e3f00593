"""
Deadline gate consulted by every mutating submission path.

All timestamps are naive UTC, matching how the models store them. `now`
always comes from the server clock; request payloads never carry it.
"""
from datetime import datetime, timezone

from app.core.errors import DeadlinePassed


def utcnow() -> datetime:
    """Server clock as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def can_submit_tender_bid(tender, now: datetime) -> bool:
    """A tender accepts bids strictly before its submission deadline."""
    return as_naive_utc(now) < as_naive_utc(tender.submission_deadline)


def can_submit_carnival_bid(event, now: datetime) -> bool:
    """A carnival event accepts stall bids strictly before its bid deadline."""
    return as_naive_utc(now) < as_naive_utc(event.bid_deadline)


def ensure_tender_open(tender, now: datetime = None):
    now = now or utcnow()
    if not can_submit_tender_bid(tender, now):
        raise DeadlinePassed(
            f"Tender has been closed. The submission deadline ({tender.submission_deadline.isoformat()}) has passed."
        )


def ensure_carnival_open(event, now: datetime = None):
    now = now or utcnow()
    if not can_submit_carnival_bid(event, now):
        raise DeadlinePassed(
            f"Bidding closed. The bid deadline ({event.bid_deadline.isoformat()}) has passed."
        )
