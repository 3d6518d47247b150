"""
Hire Coordinator

Moves a gig open -> assigned and one of its bids pending -> hired as a unit,
then rejects the remaining pending bids and tells everyone involved.

Each hire attempt walks these stages, logging as it goes:

    VALIDATING -> GIG_LOCKING -> BID_LOCKING -> REJECTING -> NOTIFYING -> DONE
                                                 (any stage) -> FAILED

Correctness rests on the conditional single-row UPDATEs in the stores, not on
in-process locks: for any gig exactly one ``try_assign`` can win, so the
first writer wins and every later attempt gets a ConflictError.

Two realizations share one code path, selected at startup:

- transactional: the gig and bid transitions run inside one transaction; a
  failed bid transition rolls the gig back with it.
- compensating: each statement autocommits; a bid transition that conflicts
  or raises is followed by a conditional revert of the gig, on a fresh
  connection, before the error is raised. A gig whose update landed but
  could not be read back is reverted the same way.

Once the gig transition has started the remainder runs in a shielded task,
so a cancelled caller cannot leave a gig assigned without a hired bid.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum as PyEnum
from typing import AsyncIterator, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gigflow.api.models import Bid, BidStatus, Gig, NotificationType, utcnow
from gigflow.marketplace.bid_store import BidStore
from gigflow.marketplace.errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    MarketplaceError,
    NotFoundError,
    PartialTransitionError,
    wrap_exception,
)
from gigflow.marketplace.gig_store import GigStore
from gigflow.marketplace.notification_store import NotificationStore
from gigflow.utils.logger import HireLogger
from gigflow.utils.notifications import NotificationEvent, Notifier

GIG_TAKEN_MESSAGE = (
    "This gig has already been assigned to another freelancer. "
    "Please refresh the page."
)
BID_TAKEN_MESSAGE = "This bid has already been processed. Please refresh the page."
HIRE_SUCCESS_MESSAGE = "Freelancer hired successfully"


class HireStage(PyEnum):
    VALIDATING = "validating"
    GIG_LOCKING = "gig_locking"
    BID_LOCKING = "bid_locking"
    REJECTING = "rejecting"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class HireResult:
    """Outcome of a successful hire."""

    bid: Bid
    gig: Gig
    rejected_count: int

    def to_dict(self):
        return {
            "message": HIRE_SUCCESS_MESSAGE,
            "bid": self.bid.to_dict(),
            "rejectedBidsCount": self.rejected_count,
        }


def _consume_result(task: asyncio.Task) -> None:
    # The caller may have been cancelled and never await the shielded task
    if not task.cancelled():
        task.exception()


class HireCoordinator:
    """Orchestrates the multi-row hire transition."""

    def __init__(
        self,
        gigs: GigStore,
        bids: BidStore,
        notifications: NotificationStore,
        notifier: Notifier,
        sessions: async_sessionmaker,
        autocommit_sessions: async_sessionmaker,
        supports_transactions: bool,
        max_active_hires: int = 3,
    ):
        """
        Args:
            gigs: Gig store
            bids: Bid store
            notifications: Durable notification records
            notifier: Real-time push dispatcher
            sessions: Session factory for the transactional realization
            autocommit_sessions: Session factory bound to an AUTOCOMMIT engine
            supports_transactions: Result of the startup capability probe
            max_active_hires: Hired bids a freelancer may hold at once
        """
        self.gigs = gigs
        self.bids = bids
        self.notifications = notifications
        self.notifier = notifier
        self._sessions = sessions
        self._autocommit_sessions = autocommit_sessions
        self.supports_transactions = supports_transactions
        self.max_active_hires = max_active_hires

    async def hire(self, bid_id: str, requester_id: str) -> HireResult:
        """
        Hire the freelancer behind ``bid_id``.

        Args:
            bid_id: Bid to accept
            requester_id: Authenticated user; must own the bid's gig

        Returns:
            HireResult with the hired bid, the assigned gig and the number of
            sibling bids rejected

        Raises:
            NotFoundError: Bid or gig missing
            ForbiddenError: Requester does not own the gig
            CapacityExceededError: Freelancer already holds the maximum hires
            ConflictError: Gig already assigned or bid already processed
        """
        log = HireLogger(bid_id)
        log.stage(HireStage.VALIDATING.value)

        try:
            bid, gig = await self._validate(bid_id, requester_id)
        except MarketplaceError as e:
            log.stage(f"{HireStage.FAILED.value} ({e.error_type})")
            raise

        commit = asyncio.create_task(self._commit(bid, gig, log))
        commit.add_done_callback(_consume_result)
        return await asyncio.shield(commit)

    async def _validate(self, bid_id: str, requester_id: str) -> Tuple[Bid, Gig]:
        bid = await self.bids.find_by_id(bid_id)
        if bid is None:
            raise NotFoundError("Bid not found")

        gig = await self.gigs.find_by_id(bid.gig_id)
        if gig is None:
            raise NotFoundError("Gig not found")

        if gig.owner_id != requester_id:
            raise ForbiddenError("Only the gig owner can hire freelancers")

        # Advisory: concurrent hires of one freelancer on different gigs can
        # both pass this check
        active = await self.bids.count_by_freelancer_and_status(
            bid.freelancer_id, BidStatus.HIRED
        )
        if active >= self.max_active_hires:
            raise CapacityExceededError(
                f"This freelancer already has {self.max_active_hires} active gigs. "
                f"They cannot be hired for more gigs simultaneously."
            )

        return bid, gig

    @asynccontextmanager
    async def _transition_scope(self) -> AsyncIterator[AsyncSession]:
        if self.supports_transactions:
            async with self._sessions() as session:
                async with session.begin():
                    yield session
        else:
            async with self._autocommit_sessions() as session:
                yield session

    async def _commit(self, bid: Bid, gig: Gig, log: HireLogger) -> HireResult:
        try:
            log.stage(HireStage.GIG_LOCKING.value)
            async with self._transition_scope() as session:
                assigned_gig = await self._assign_gig(gig.id, session, log)

                log.stage(HireStage.BID_LOCKING.value)
                hired_bid = await self._hire_bid(bid.id, gig.id, session, log)
        except Exception as e:
            log.stage(f"{HireStage.FAILED.value} ({wrap_exception(e).error_type})")
            raise

        log.stage(HireStage.REJECTING.value)
        rejected_at = utcnow()
        rejected_count = await self._reject_siblings(gig.id, bid.id, rejected_at, log)

        log.stage(HireStage.NOTIFYING.value)
        await self._notify(hired_bid, assigned_gig, rejected_at, rejected_count, log)

        log.completed(gig.id, rejected_count, self.supports_transactions)
        log.stage(HireStage.DONE.value)
        return HireResult(bid=hired_bid, gig=assigned_gig, rejected_count=rejected_count)

    async def _assign_gig(
        self, gig_id: str, session: AsyncSession, log: HireLogger
    ) -> Gig:
        try:
            assigned_gig = await self.gigs.try_assign(gig_id, session=session)
        except PartialTransitionError:
            # Autocommitted: the gig is assigned with no bid behind it
            if not self.supports_transactions:
                await self._compensate(gig_id, log)
            raise

        if assigned_gig is None:
            log.conflict(f"gig {gig_id} is no longer open")
            raise ConflictError(GIG_TAKEN_MESSAGE)
        return assigned_gig

    async def _hire_bid(
        self, bid_id: str, gig_id: str, session: AsyncSession, log: HireLogger
    ) -> Bid:
        try:
            hired_bid = await self.bids.try_hire(bid_id, gig_id, session=session)
        except PartialTransitionError as e:
            if self.supports_transactions:
                raise
            # Autocommitted: the hire landed, only the read-back failed
            log.warning(f"re-reading hired bid - {e.message}")
            hired_bid = await self.bids.find_by_id(bid_id)
            if hired_bid is None:
                raise
            return hired_bid
        except Exception as e:
            if not self.supports_transactions:
                log.error(f"bid transition failed - {e}")
                await self._compensate(gig_id, log)
            raise

        if hired_bid is None:
            log.conflict("bid is no longer pending")
            if not self.supports_transactions:
                await self._compensate(gig_id, log)
            raise ConflictError(BID_TAKEN_MESSAGE)
        return hired_bid

    async def _compensate(self, gig_id: str, log: HireLogger):
        # Own connection: the one that just failed may be unusable
        try:
            async with self._autocommit_sessions() as session:
                reverted = await self.gigs.revert_assignment(gig_id, session=session)
        except Exception as e:
            log.error(f"compensation of gig {gig_id} failed - {e}")
            raise
        log.compensated(gig_id, reverted)

    async def _reject_siblings(
        self, gig_id: str, bid_id: str, rejected_at: datetime, log: HireLogger
    ) -> int:
        try:
            return await self.bids.reject_siblings(
                gig_id, bid_id, rejected_at=rejected_at
            )
        except Exception as e:
            log.side_effect_failed("rejecting sibling bids", e)
            return 0

    async def _notify(
        self,
        bid: Bid,
        gig: Gig,
        rejected_at: datetime,
        rejected_count: int,
        log: HireLogger,
    ):
        title = gig.title
        freelancer_name = bid.freelancer.name if bid.freelancer else "a freelancer"

        try:
            await self.notifications.create(
                bid.freelancer_id,
                NotificationType.HIRED,
                f'Congratulations! You have been hired for "{title}"',
                gig_id=gig.id,
                bid_id=bid.id,
            )
        except Exception as e:
            log.side_effect_failed("hired notification", e)

        if rejected_count:
            try:
                for rejected in await self.bids.find_rejected_at(gig.id, rejected_at):
                    await self.notifications.create(
                        rejected.freelancer_id,
                        NotificationType.BID_REJECTED,
                        f'Your bid for "{title}" was not selected',
                        gig_id=gig.id,
                        bid_id=rejected.id,
                    )
            except Exception as e:
                log.side_effect_failed("rejection notifications", e)

        try:
            self.notifier.notify(
                bid.freelancer_id,
                NotificationEvent.BID_HIRED,
                {
                    "bidId": bid.id,
                    "freelancerId": bid.freelancer_id,
                    "gigId": gig.id,
                    "gigTitle": title,
                    "message": f'You have been hired for "{title}"!',
                    "timestamp": utcnow().isoformat(),
                },
            )
            self.notifier.notify(
                gig.owner_id,
                NotificationEvent.GIG_ASSIGNED,
                {
                    "gigId": gig.id,
                    "gigTitle": title,
                    "freelancerName": freelancer_name,
                    "message": f'You have hired {freelancer_name} for "{title}"',
                },
            )
        except Exception as e:
            log.side_effect_failed("real-time push", e)
