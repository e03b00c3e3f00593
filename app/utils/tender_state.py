"""
Lifecycle state machines for tenders, tender bids and carnival stall bids.

Statuses are closed sets of upper-case strings. Anything outside a set is
rejected; there is no case folding.
"""
from typing import List, Tuple


class TenderStatus:
    """Valid tender status values"""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    AWARDED = "AWARDED"
    CLOSED = "CLOSED"

    ALL = (DRAFT, PUBLISHED, AWARDED, CLOSED)


class BidStatus:
    """Valid tender bid status values"""
    SUBMITTED = "SUBMITTED"
    TECH_QUALIFIED = "TECH_QUALIFIED"
    REJECTED = "REJECTED"
    WON = "WON"
    LOST = "LOST"

    ALL = (SUBMITTED, TECH_QUALIFIED, REJECTED, WON, LOST)

    # Financial amount and envelope are readable only in these states
    FINANCIALS_UNLOCKED = (TECH_QUALIFIED, WON, LOST)


class CarnivalBidStatus:
    """Valid carnival stall bid status values"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    ALL = (PENDING, APPROVED, REJECTED)


class StateMachine:
    """
    Transition table lookup shared by the three lifecycles.
    Subclasses only declare STATES and TRANSITIONS.
    """
    STATES: Tuple[str, ...] = ()
    TRANSITIONS: dict = {}

    @classmethod
    def is_valid_status(cls, status: str) -> bool:
        return status in cls.STATES

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if transition from one status to another is valid"""
        if from_status not in cls.TRANSITIONS:
            return False
        return to_status in cls.TRANSITIONS[from_status]

    @classmethod
    def get_allowed_transitions(cls, current_status: str) -> List[str]:
        """Get list of allowed status transitions from current status"""
        return list(cls.TRANSITIONS.get(current_status, []))

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> Tuple[bool, str]:
        """
        Validate a status transition.

        Returns:
            (is_valid, error_message)
        """
        if not cls.is_valid_status(to_status):
            return False, f"Unknown status '{to_status}'. Allowed: {list(cls.STATES)}"

        if from_status == to_status:
            return True, "Status unchanged"

        if not cls.can_transition(from_status, to_status):
            allowed = cls.get_allowed_transitions(from_status)
            return False, f"Cannot transition from '{from_status}' to '{to_status}'. Allowed: {allowed}"

        return True, "Valid transition"

    @classmethod
    def is_terminal_status(cls, status: str) -> bool:
        return not cls.TRANSITIONS.get(status)


class TenderStateMachine(StateMachine):
    """
    State flow:
    DRAFT → PUBLISHED → AWARDED
         ↘          ↘ CLOSED
          CLOSED

    PUBLISHED → AWARDED is only taken by the award finalizer.
    """
    STATES = TenderStatus.ALL
    TRANSITIONS = {
        TenderStatus.DRAFT: [TenderStatus.PUBLISHED, TenderStatus.CLOSED],
        TenderStatus.PUBLISHED: [TenderStatus.AWARDED, TenderStatus.CLOSED],
        TenderStatus.AWARDED: [],  # Terminal state
        TenderStatus.CLOSED: [],  # Terminal state
    }
    EDITABLE = (TenderStatus.DRAFT, TenderStatus.PUBLISHED)

    @classmethod
    def can_receive_bids(cls, status: str) -> bool:
        return status == TenderStatus.PUBLISHED

    @classmethod
    def can_edit_tender(cls, status: str) -> bool:
        return status in cls.EDITABLE

    @classmethod
    def can_evaluate_bids(cls, status: str) -> bool:
        return status in (TenderStatus.PUBLISHED, TenderStatus.CLOSED)

    @classmethod
    def can_award(cls, status: str) -> bool:
        return status == TenderStatus.PUBLISHED


class BidStateMachine(StateMachine):
    """
    SUBMITTED → TECH_QUALIFIED → WON
             ↘ REJECTED       ↘ LOST
    """
    STATES = BidStatus.ALL
    TRANSITIONS = {
        BidStatus.SUBMITTED: [BidStatus.TECH_QUALIFIED, BidStatus.REJECTED],
        BidStatus.TECH_QUALIFIED: [BidStatus.WON, BidStatus.LOST],
        BidStatus.REJECTED: [],
        BidStatus.WON: [],
        BidStatus.LOST: [],
    }

    @classmethod
    def financials_unlocked(cls, status: str) -> bool:
        return status in BidStatus.FINANCIALS_UNLOCKED


class CarnivalBidStateMachine(StateMachine):
    """PENDING → APPROVED | REJECTED, single direct decision."""
    STATES = CarnivalBidStatus.ALL
    TRANSITIONS = {
        CarnivalBidStatus.PENDING: [CarnivalBidStatus.APPROVED, CarnivalBidStatus.REJECTED],
        CarnivalBidStatus.APPROVED: [],
        CarnivalBidStatus.REJECTED: [],
    }
