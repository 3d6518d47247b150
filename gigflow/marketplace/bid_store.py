"""
Bid Store

Bid submission with its business checks, the per-freelancer counters, and
the two conditional transitions used by a hire: ``try_hire`` (one bid,
pending -> hired) and ``reject_siblings`` (every other pending bid on the
gig, pending -> rejected).
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

from gigflow.api.models import Bid, BidStatus, Gig, GigStatus, utcnow
from gigflow.api.state_machine import validate_bid_transition
from gigflow.marketplace.errors import (
    BidConflictError,
    LimitExceededError,
    NotFoundError,
    PartialTransitionError,
    ValidationError,
)
from gigflow.marketplace.gig_store import _require_amount, _require_text
from gigflow.marketplace.store import SessionScopedStore
from gigflow.utils.logger import get_logger

logger = get_logger(__name__)

DUPLICATE_BID_MESSAGE = "You have already bid on this gig"


class BidStore(SessionScopedStore):
    """Persistence, counters and conditional transitions for bids."""

    def __init__(self, sessions: async_sessionmaker, max_bids_per_freelancer: int = 3):
        """
        Args:
            sessions: AsyncSession factory
            max_bids_per_freelancer: Lifetime submissions allowed per freelancer
        """
        super().__init__(sessions)
        self.max_bids_per_freelancer = max_bids_per_freelancer

    async def create(
        self, freelancer_id: str, gig_id: str, message: str, price: float
    ) -> Bid:
        """
        Submit a bid.

        Checks run in order: gig exists, gig open, not the owner, not a
        duplicate, lifetime limit. A bid racing a hire may still land pending
        on a gig that was assigned between the check and the insert; the hire
        never sees it and it stays pending.

        Raises:
            ValidationError: Missing gig id, blank message or negative price
            NotFoundError: Gig does not exist
            BidConflictError: Gig closed, own gig, or already bid
            LimitExceededError: Lifetime bid limit reached
        """
        if not gig_id:
            raise ValidationError("Gig ID is required")
        message = _require_text(message, "Message")
        price = _require_amount(price, "Price")

        async with self._sessions() as session:
            gig = await session.get(Gig, gig_id)
            if gig is None:
                raise NotFoundError("Gig not found")
            if gig.status != GigStatus.OPEN:
                raise BidConflictError("Gig is no longer open for bidding")
            if gig.owner_id == freelancer_id:
                raise BidConflictError("You cannot bid on your own gig")

            existing = await session.scalar(
                select(Bid.id).where(
                    Bid.gig_id == gig_id, Bid.freelancer_id == freelancer_id
                )
            )
            if existing is not None:
                raise BidConflictError(DUPLICATE_BID_MESSAGE)

            submitted = await session.scalar(
                select(func.count())
                .select_from(Bid)
                .where(Bid.freelancer_id == freelancer_id)
            )
            if submitted >= self.max_bids_per_freelancer:
                raise LimitExceededError(
                    f"You have reached the maximum limit of "
                    f"{self.max_bids_per_freelancer} bids. You cannot submit more bids."
                )

            bid = Bid(
                gig_id=gig_id,
                freelancer_id=freelancer_id,
                message=message,
                price=price,
                status=BidStatus.PENDING,
            )
            session.add(bid)
            try:
                await session.commit()
            except IntegrityError as e:
                # Concurrent duplicate hit the unique constraint
                await session.rollback()
                raise BidConflictError(DUPLICATE_BID_MESSAGE, original_error=e)

            bid = await session.get(Bid, bid.id, populate_existing=True)

        logger.info(f"Bid {bid.id} placed on gig {gig_id} by {freelancer_id}")
        return bid

    async def find_by_id(
        self, bid_id: str, session: Optional[AsyncSession] = None
    ) -> Optional[Bid]:
        async with self._session_scope(session) as s:
            return await s.get(Bid, bid_id)

    async def find_by_gig(self, gig_id: str) -> List[Bid]:
        async with self._session_scope() as session:
            result = await session.execute(
                select(Bid).where(Bid.gig_id == gig_id).order_by(Bid.created_at.desc())
            )
            return list(result.scalars().all())

    async def find_by_freelancer(self, freelancer_id: str) -> List[Bid]:
        """Bids by a freelancer, newest first, each with its gig loaded."""
        async with self._session_scope() as session:
            result = await session.execute(
                select(Bid)
                .options(joinedload(Bid.gig).joinedload(Gig.owner))
                .where(Bid.freelancer_id == freelancer_id)
                .order_by(Bid.created_at.desc())
            )
            return list(result.scalars().all())

    async def count_by_freelancer(self, freelancer_id: str) -> int:
        async with self._session_scope() as session:
            return await session.scalar(
                select(func.count())
                .select_from(Bid)
                .where(Bid.freelancer_id == freelancer_id)
            )

    async def count_by_freelancer_and_status(
        self, freelancer_id: str, status: BidStatus
    ) -> int:
        async with self._session_scope() as session:
            return await session.scalar(
                select(func.count())
                .select_from(Bid)
                .where(Bid.freelancer_id == freelancer_id, Bid.status == status)
            )

    async def try_hire(
        self,
        bid_id: str,
        gig_id: str,
        expected_status: BidStatus = BidStatus.PENDING,
        session: Optional[AsyncSession] = None,
    ) -> Optional[Bid]:
        """
        Atomically mark a bid hired if it still has ``expected_status``.

        Returns:
            The updated bid, or None if the bid was already processed

        Raises:
            PartialTransitionError: The row was updated in ``session`` but
                could not be read back
        """
        validate_bid_transition(bid_id, expected_status, BidStatus.HIRED)

        async with self._session_scope(session) as s:
            result = await s.execute(
                update(Bid)
                .where(
                    Bid.id == bid_id,
                    Bid.gig_id == gig_id,
                    Bid.status == expected_status,
                )
                .values(status=BidStatus.HIRED)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.debug(f"Bid {bid_id}: hire lost, not {expected_status.value}")
                return None
            try:
                return await s.get(Bid, bid_id, populate_existing=True)
            except Exception as e:
                raise PartialTransitionError(
                    f"Bid {bid_id} was hired but could not be reloaded",
                    original_error=e,
                )

    async def reject_siblings(
        self,
        gig_id: str,
        exclude_bid_id: str,
        rejected_at: Optional[datetime] = None,
        session: Optional[AsyncSession] = None,
    ) -> int:
        """
        Reject every other pending bid on a gig.

        Args:
            gig_id: Gig whose bids are closed out
            exclude_bid_id: The hired bid
            rejected_at: Timestamp stamped on every rejected bid
            session: Optional caller session

        Returns:
            Number of bids rejected
        """
        validate_bid_transition(
            f"siblings of {exclude_bid_id}", BidStatus.PENDING, BidStatus.REJECTED
        )
        rejected_at = rejected_at or utcnow()

        async with self._session_scope(session) as s:
            result = await s.execute(
                update(Bid)
                .where(
                    Bid.gig_id == gig_id,
                    Bid.id != exclude_bid_id,
                    Bid.status == BidStatus.PENDING,
                )
                .values(status=BidStatus.REJECTED, rejected_at=rejected_at)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def find_rejected_at(self, gig_id: str, rejected_at: datetime) -> List[Bid]:
        """Bids on ``gig_id`` rejected by the reject_siblings call stamped ``rejected_at``."""
        async with self._session_scope() as session:
            result = await session.execute(
                select(Bid).where(
                    Bid.gig_id == gig_id,
                    Bid.status == BidStatus.REJECTED,
                    Bid.rejected_at == rejected_at,
                )
            )
            return list(result.scalars().all())
