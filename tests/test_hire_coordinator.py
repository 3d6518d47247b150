"""
Tests for the hire transition.

Every test runs twice: once with the gig/bid transitions inside a single
transaction and once with autocommitted statements plus compensation. Both
realizations must give identical observable results:

- exactly one hire per gig, even under concurrent requests
- a failed bid transition never leaves the gig assigned
- sibling bids are rejected and everyone involved is notified
- a cancelled caller cannot interrupt a hire halfway through
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from gigflow.api.models import (
    Bid,
    BidStatus,
    Gig,
    GigStatus,
    NotificationType,
    utcnow,
)
from gigflow.marketplace.errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PartialTransitionError,
)
from gigflow.marketplace.hire_coordinator import (
    BID_TAKEN_MESSAGE,
    GIG_TAKEN_MESSAGE,
    HireResult,
)
from gigflow.utils.notifications import NotificationEvent

pytestmark = pytest.mark.parametrize(
    "context", [True, False], ids=["transactional", "compensating"], indirect=True
)


async def _statuses(context, gig, bids):
    gig_row = await context.gigs.find_by_id(gig.id)
    bid_rows = {bid.id: (await context.bids.find_by_id(bid.id)).status for bid in bids}
    return gig_row, bid_rows


async def _mark_bid_processed(context, bid):
    """Reject a bid behind the coordinator's back while its gig stays open."""
    async with context.sessions() as session:
        await session.execute(
            update(Bid)
            .where(Bid.id == bid.id)
            .values(status=BidStatus.REJECTED, rejected_at=utcnow())
        )
        await session.commit()


def _locked(statement):
    return OperationalError(statement, {}, Exception("database is locked"))


def _fail_reload(monkeypatch, entity):
    """Make the read-back after a conditional update of ``entity`` fail."""
    original_get = AsyncSession.get

    async def get(self, model, ident, **kwargs):
        if model is entity and kwargs.get("populate_existing"):
            raise _locked(f"SELECT {entity.__tablename__}")
        return await original_get(self, model, ident, **kwargs)

    monkeypatch.setattr(AsyncSession, "get", get)


# ============================================================================
# HAPPY PATH
# ============================================================================


class TestSuccessfulHire:
    async def test_hire_assigns_gig_and_rejects_siblings(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(3)

        result = await context.coordinator.hire(bids[0].id, owner.id)

        assert isinstance(result, HireResult)
        assert result.rejected_count == 2
        assert result.bid.status == BidStatus.HIRED
        assert result.gig.status == GigStatus.ASSIGNED
        assert result.gig.assigned_at is not None

        gig_row, statuses = await _statuses(context, gig, bids)
        assert gig_row.status == GigStatus.ASSIGNED
        assert statuses == {
            bids[0].id: BidStatus.HIRED,
            bids[1].id: BidStatus.REJECTED,
            bids[2].id: BidStatus.REJECTED,
        }

    async def test_result_serializes_for_the_client(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(2)

        data = (await context.coordinator.hire(bids[1].id, owner.id)).to_dict()

        assert data["message"] == "Freelancer hired successfully"
        assert data["rejectedBidsCount"] == 1
        assert data["bid"]["id"] == bids[1].id
        assert data["bid"]["status"] == "hired"
        assert data["bid"]["freelancer"]["id"] == bids[1].freelancer_id

    async def test_hire_without_siblings(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(1)

        result = await context.coordinator.hire(bids[0].id, owner.id)

        assert result.rejected_count == 0

    async def test_notification_records_written(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(2)
        hired, rejected = bids

        await context.coordinator.hire(hired.id, owner.id)

        hired_notes = await context.notifications.find_by_user(hired.freelancer_id)
        assert [note.type for note in hired_notes] == [NotificationType.HIRED]
        assert hired_notes[0].message == (
            f'Congratulations! You have been hired for "{gig.title}"'
        )
        assert hired_notes[0].bid_id == hired.id
        assert hired_notes[0].read is False

        rejected_notes = await context.notifications.find_by_user(
            rejected.freelancer_id
        )
        assert [note.type for note in rejected_notes] == [NotificationType.BID_REJECTED]
        assert rejected_notes[0].bid_id == rejected.id

    async def test_real_time_events_pushed(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(1)
        context.coordinator.notifier = Mock()

        await context.coordinator.hire(bids[0].id, owner.id)

        calls = context.coordinator.notifier.notify.call_args_list
        assert len(calls) == 2

        freelancer_call, owner_call = calls
        user_id, event, payload = freelancer_call.args
        assert user_id == bids[0].freelancer_id
        assert event == NotificationEvent.BID_HIRED
        assert payload["bidId"] == bids[0].id
        assert payload["gigTitle"] == gig.title

        user_id, event, payload = owner_call.args
        assert user_id == owner.id
        assert event == NotificationEvent.GIG_ASSIGNED
        assert payload["freelancerName"] == bids[0].freelancer.name
        assert payload["message"] == (
            f'You have hired {bids[0].freelancer.name} for "{gig.title}"'
        )


# ============================================================================
# VALIDATION FAILURES (NO STATE CHANGES)
# ============================================================================


class TestHireValidation:
    async def test_unknown_bid(self, context, factory):
        owner = await factory.user()
        with pytest.raises(NotFoundError, match="Bid not found"):
            await context.coordinator.hire("missing-bid", owner.id)

    async def test_only_owner_can_hire(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(2)
        stranger = await factory.user()

        with pytest.raises(ForbiddenError) as exc_info:
            await context.coordinator.hire(bids[0].id, stranger.id)
        assert exc_info.value.status_code == 403

        gig_row, statuses = await _statuses(context, gig, bids)
        assert gig_row.status == GigStatus.OPEN
        assert set(statuses.values()) == {BidStatus.PENDING}

    async def test_capacity_exceeded(self, context, factory):
        context.bids.max_bids_per_freelancer = 10
        freelancer = await factory.user("Busy Freelancer")
        owners = [await factory.user(), await factory.user()]
        gigs = [await factory.gig(owners[i // 3], title=f"Gig {i}") for i in range(4)]
        bids = [await factory.bid(freelancer, gig) for gig in gigs]

        for gig, bid in zip(gigs[:3], bids[:3]):
            await context.coordinator.hire(bid.id, gig.owner_id)

        with pytest.raises(CapacityExceededError, match="already has 3 active gigs") as e:
            await context.coordinator.hire(bids[3].id, gigs[3].owner_id)
        assert e.value.status_code == 400

        gig_row = await context.gigs.find_by_id(gigs[3].id)
        assert gig_row.status == GigStatus.OPEN
        assert (await context.bids.find_by_id(bids[3].id)).status == BidStatus.PENDING


# ============================================================================
# CONFLICTS
# ============================================================================


class TestHireConflicts:
    async def test_second_hire_on_same_gig_conflicts(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(2)
        await context.coordinator.hire(bids[0].id, owner.id)

        with pytest.raises(ConflictError) as exc_info:
            await context.coordinator.hire(bids[1].id, owner.id)

        assert exc_info.value.message == GIG_TAKEN_MESSAGE
        assert exc_info.value.status_code == 409
        assert exc_info.value.retryable

        gig_row, statuses = await _statuses(context, gig, bids)
        assert gig_row.status == GigStatus.ASSIGNED
        assert statuses[bids[0].id] == BidStatus.HIRED
        assert statuses[bids[1].id] == BidStatus.REJECTED

    async def test_retrying_a_successful_hire_conflicts(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(1)
        await context.coordinator.hire(bids[0].id, owner.id)

        with pytest.raises(ConflictError, match="already been assigned"):
            await context.coordinator.hire(bids[0].id, owner.id)

    async def test_concurrent_hires_have_exactly_one_winner(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(3)

        results = await asyncio.gather(
            *[context.coordinator.hire(bid.id, owner.id) for bid in bids],
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, HireResult)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 2
        assert all(isinstance(loser, ConflictError) for loser in losers)

        gig_row, statuses = await _statuses(context, gig, bids)
        assert gig_row.status == GigStatus.ASSIGNED
        assert list(statuses.values()).count(BidStatus.HIRED) == 1
        assert statuses[winners[0].bid.id] == BidStatus.HIRED

    async def test_concurrent_hires_of_same_bid(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(1)

        results = await asyncio.gather(
            *[context.coordinator.hire(bids[0].id, owner.id) for _ in range(4)],
            return_exceptions=True,
        )

        assert sum(isinstance(r, HireResult) for r in results) == 1
        assert sum(isinstance(r, ConflictError) for r in results) == 3

    async def test_processed_bid_leaves_gig_open(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(2)
        await _mark_bid_processed(context, bids[0])

        with pytest.raises(ConflictError) as exc_info:
            await context.coordinator.hire(bids[0].id, owner.id)

        assert exc_info.value.message == BID_TAKEN_MESSAGE
        gig_row, statuses = await _statuses(context, gig, bids)
        assert gig_row.status == GigStatus.OPEN
        assert gig_row.assigned_at is None
        assert statuses[bids[1].id] == BidStatus.PENDING

        # The gig is still hireable through another bid
        result = await context.coordinator.hire(bids[1].id, owner.id)
        assert result.gig.status == GigStatus.ASSIGNED

    async def test_compensation_only_without_transactions(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(1)
        await _mark_bid_processed(context, bids[0])
        revert = AsyncMock(wraps=context.gigs.revert_assignment)
        context.gigs.revert_assignment = revert

        with pytest.raises(ConflictError):
            await context.coordinator.hire(bids[0].id, owner.id)

        if context.supports_transactions:
            revert.assert_not_called()
        else:
            revert.assert_awaited_once()
            assert revert.await_args.args == (gig.id,)


# ============================================================================
# STORE ERRORS BETWEEN THE GIG AND BID TRANSITIONS
# ============================================================================


class TestTransitionFailures:
    async def test_bid_transition_error_reopens_gig(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(2)
        context.bids.try_hire = AsyncMock(side_effect=_locked("UPDATE bids"))

        with pytest.raises(OperationalError, match="database is locked"):
            await context.coordinator.hire(bids[0].id, owner.id)

        gig_row, statuses = await _statuses(context, gig, bids)
        assert gig_row.status == GigStatus.OPEN
        assert gig_row.assigned_at is None
        assert BidStatus.HIRED not in statuses.values()

        # Once the store recovers the same bid can be hired
        del context.bids.try_hire
        result = await context.coordinator.hire(bids[0].id, owner.id)
        assert result.gig.status == GigStatus.ASSIGNED

    async def test_bid_transition_error_reverts_on_fresh_session(
        self, context, factory
    ):
        owner, gig, bids = await factory.gig_with_bids(1)
        context.bids.try_hire = AsyncMock(side_effect=_locked("UPDATE bids"))
        revert = AsyncMock(wraps=context.gigs.revert_assignment)
        context.gigs.revert_assignment = revert

        with pytest.raises(OperationalError):
            await context.coordinator.hire(bids[0].id, owner.id)

        if context.supports_transactions:
            revert.assert_not_called()
        else:
            revert.assert_awaited_once()
            hire_session = context.bids.try_hire.await_args.kwargs["session"]
            assert revert.await_args.kwargs["session"] is not hire_session

    async def test_gig_reload_failure_reopens_gig(self, context, factory, monkeypatch):
        owner, gig, bids = await factory.gig_with_bids(2)
        _fail_reload(monkeypatch, Gig)

        with pytest.raises(PartialTransitionError) as exc_info:
            await context.coordinator.hire(bids[0].id, owner.id)
        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.original_error, OperationalError)

        gig_row, statuses = await _statuses(context, gig, bids)
        assert gig_row.status == GigStatus.OPEN
        assert gig_row.assigned_at is None
        assert set(statuses.values()) == {BidStatus.PENDING}

    async def test_bid_reload_failure_keeps_gig_and_bid_consistent(
        self, context, factory, monkeypatch
    ):
        owner, gig, bids = await factory.gig_with_bids(2)
        _fail_reload(monkeypatch, Bid)

        if context.supports_transactions:
            # Both updates roll back together
            with pytest.raises(PartialTransitionError):
                await context.coordinator.hire(bids[0].id, owner.id)
        else:
            # The hire persisted, only its read-back failed
            result = await context.coordinator.hire(bids[0].id, owner.id)
            assert result.bid.id == bids[0].id
            assert result.bid.status == BidStatus.HIRED

        gig_row, statuses = await _statuses(context, gig, bids)
        hired = list(statuses.values()).count(BidStatus.HIRED)
        if gig_row.status == GigStatus.ASSIGNED:
            assert hired == 1
            assert statuses[bids[0].id] == BidStatus.HIRED
        else:
            assert gig_row.status == GigStatus.OPEN
            assert gig_row.assigned_at is None
            assert hired == 0
        assert (gig_row.status == GigStatus.ASSIGNED) != context.supports_transactions


# ============================================================================
# BEST-EFFORT SIDE EFFECTS
# ============================================================================


class TestSideEffectFailures:
    async def test_sibling_rejection_failure_is_not_fatal(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(2)
        context.bids.reject_siblings = AsyncMock(side_effect=RuntimeError("db gone"))

        result = await context.coordinator.hire(bids[0].id, owner.id)

        assert result.rejected_count == 0
        assert result.bid.status == BidStatus.HIRED
        assert result.gig.status == GigStatus.ASSIGNED

    async def test_notification_failures_are_not_fatal(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(2)
        context.notifications.create = AsyncMock(side_effect=RuntimeError("down"))
        context.coordinator.notifier = Mock()
        context.coordinator.notifier.notify.side_effect = RuntimeError("socket down")

        result = await context.coordinator.hire(bids[0].id, owner.id)

        assert result.bid.status == BidStatus.HIRED
        assert result.rejected_count == 1


# ============================================================================
# CANCELLATION
# ============================================================================


class TestCancellation:
    async def test_cancelled_caller_does_not_interrupt_hire(self, context, factory):
        owner, gig, bids = await factory.gig_with_bids(2)
        gig_locked = asyncio.Event()
        original_try_hire = context.bids.try_hire

        async def slow_try_hire(*args, **kwargs):
            gig_locked.set()
            await asyncio.sleep(0.2)
            return await original_try_hire(*args, **kwargs)

        context.bids.try_hire = slow_try_hire

        caller = asyncio.create_task(context.coordinator.hire(bids[0].id, owner.id))
        await gig_locked.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        # The shielded commit keeps running; its last write is the rejection note
        for _ in range(100):
            if await context.notifications.find_by_user(bids[1].freelancer_id):
                break
            await asyncio.sleep(0.05)

        gig_row, statuses = await _statuses(context, gig, bids)
        assert gig_row.status == GigStatus.ASSIGNED
        assert statuses == {
            bids[0].id: BidStatus.HIRED,
            bids[1].id: BidStatus.REJECTED,
        }
