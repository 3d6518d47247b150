"""
Gig and Bid State Machine Validation

Prevents invalid status transitions. The stores consult these tables before
issuing a conditional UPDATE, so an impossible transition is a programming
error (ValueError) rather than a silently failed write.
"""

from typing import Dict, Set

from gigflow.api.models import BidStatus, GigStatus
from gigflow.utils.logger import get_logger

logger = get_logger(__name__)


class GigStateMachine:
    """
    Validates gig status transitions.

    open -> assigned is the hire; assigned -> open only happens when a
    non-transactional hire is compensated.
    """

    VALID_TRANSITIONS: Dict[GigStatus, Set[GigStatus]] = {
        GigStatus.OPEN: {GigStatus.ASSIGNED},
        GigStatus.ASSIGNED: {GigStatus.OPEN},
    }

    @staticmethod
    def is_valid_transition(current_status: GigStatus, new_status: GigStatus) -> bool:
        """
        Check if transition is valid.

        Args:
            current_status: Current gig status
            new_status: Desired new status

        Returns:
            True if transition is allowed
        """
        if current_status not in GigStateMachine.VALID_TRANSITIONS:
            return False

        return new_status in GigStateMachine.VALID_TRANSITIONS[current_status]

    @staticmethod
    def validate_transition(current_status: GigStatus, new_status: GigStatus) -> None:
        """
        Validate transition and raise exception if invalid.

        Raises:
            ValueError: If transition is invalid
        """
        if not GigStateMachine.is_valid_transition(current_status, new_status):
            raise ValueError(
                f"Invalid gig status transition: "
                f"{current_status.value} → {new_status.value}"
            )


class BidStateMachine:
    """Validates bid status transitions. hired and rejected are terminal."""

    VALID_TRANSITIONS: Dict[BidStatus, Set[BidStatus]] = {
        BidStatus.PENDING: {BidStatus.HIRED, BidStatus.REJECTED},
        BidStatus.HIRED: set(),  # Terminal
        BidStatus.REJECTED: set(),  # Terminal
    }

    @staticmethod
    def is_valid_transition(current_status: BidStatus, new_status: BidStatus) -> bool:
        if current_status not in BidStateMachine.VALID_TRANSITIONS:
            return False
        return new_status in BidStateMachine.VALID_TRANSITIONS[current_status]

    @staticmethod
    def validate_transition(current_status: BidStatus, new_status: BidStatus) -> None:
        if not BidStateMachine.is_valid_transition(current_status, new_status):
            raise ValueError(
                f"Invalid bid status transition: "
                f"{current_status.value} → {new_status.value}"
            )


def validate_gig_transition(
    gig_id: str, current_status: GigStatus, new_status: GigStatus
) -> None:
    """
    Validate and log gig status transition.

    Raises:
        ValueError: If transition is invalid
    """
    try:
        GigStateMachine.validate_transition(current_status, new_status)
        logger.debug(f"Gig {gig_id}: {current_status.value} → {new_status.value}")
    except ValueError as e:
        logger.error(f"Gig {gig_id}: {e}")
        raise


def validate_bid_transition(
    bid_id: str, current_status: BidStatus, new_status: BidStatus
) -> None:
    """
    Validate and log bid status transition.

    Raises:
        ValueError: If transition is invalid
    """
    try:
        BidStateMachine.validate_transition(current_status, new_status)
        logger.debug(f"Bid {bid_id}: {current_status.value} → {new_status.value}")
    except ValueError as e:
        logger.error(f"Bid {bid_id}: {e}")
        raise
