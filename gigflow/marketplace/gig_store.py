"""
Gig Store

CRUD for gig rows plus the conditional status transition the hire
coordinator relies on. ``try_assign`` is a single
``UPDATE ... WHERE id = ? AND status = ?``; exactly one concurrent caller
sees an affected row, everybody else gets ``None``.
"""

from numbers import Real
from typing import List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gigflow.api.models import Gig, GigStatus, utcnow
from gigflow.api.state_machine import validate_gig_transition
from gigflow.marketplace.errors import (
    LimitExceededError,
    PartialTransitionError,
    ValidationError,
)
from gigflow.marketplace.store import SessionScopedStore
from gigflow.utils.logger import get_logger

logger = get_logger(__name__)


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _require_amount(value, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"{field} must be a number")
    if value < 0:
        raise ValidationError(f"{field} must be a positive number")
    return float(value)


class GigStore(SessionScopedStore):
    """Persistence and conditional transitions for gigs."""

    def __init__(self, sessions: async_sessionmaker, max_gigs_per_owner: int = 3):
        """
        Args:
            sessions: AsyncSession factory
            max_gigs_per_owner: Soft limit checked on creation
        """
        super().__init__(sessions)
        self.max_gigs_per_owner = max_gigs_per_owner

    async def create(
        self, owner_id: str, title: str, description: str, budget: float
    ) -> Gig:
        """
        Create a gig owned by ``owner_id``.

        The per-owner limit is a check-then-insert and is not atomic against
        concurrent creates by the same owner.

        Raises:
            ValidationError: Blank title/description or negative budget
            LimitExceededError: Owner already has max_gigs_per_owner gigs
        """
        title = _require_text(title, "Title")
        description = _require_text(description, "Description")
        budget = _require_amount(budget, "Budget")

        async with self._session_scope() as session:
            owned = await session.scalar(
                select(func.count()).select_from(Gig).where(Gig.owner_id == owner_id)
            )
            if owned >= self.max_gigs_per_owner:
                raise LimitExceededError(
                    f"You have reached the maximum limit of {self.max_gigs_per_owner} "
                    f"gigs. Please delete an existing gig before creating a new one."
                )

            gig = Gig(
                title=title,
                description=description,
                budget=budget,
                owner_id=owner_id,
                status=GigStatus.OPEN,
            )
            session.add(gig)
            await session.flush()
            gig = await session.get(Gig, gig.id, populate_existing=True)

        logger.info(f"Gig {gig.id} created by {owner_id}")
        return gig

    async def find_by_id(
        self, gig_id: str, session: Optional[AsyncSession] = None
    ) -> Optional[Gig]:
        async with self._session_scope(session) as s:
            return await s.get(Gig, gig_id)

    async def list_open(self, search: Optional[str] = None) -> List[Gig]:
        """
        Open gigs, newest first.

        Args:
            search: Case-insensitive substring matched against title or
                description
        """
        query = select(Gig).where(Gig.status == GigStatus.OPEN)
        if search and search.strip():
            term = search.strip()
            query = query.where(
                or_(
                    Gig.title.icontains(term, autoescape=True),
                    Gig.description.icontains(term, autoescape=True),
                )
            )
        query = query.order_by(Gig.created_at.desc())

        async with self._session_scope() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_by_owner(self, owner_id: str) -> List[Gig]:
        async with self._session_scope() as session:
            result = await session.execute(
                select(Gig)
                .where(Gig.owner_id == owner_id)
                .order_by(Gig.created_at.desc())
            )
            return list(result.scalars().all())

    async def count_by_owner(self, owner_id: str) -> int:
        async with self._session_scope() as session:
            return await session.scalar(
                select(func.count()).select_from(Gig).where(Gig.owner_id == owner_id)
            )

    async def try_assign(
        self,
        gig_id: str,
        expected_status: GigStatus = GigStatus.OPEN,
        session: Optional[AsyncSession] = None,
    ) -> Optional[Gig]:
        """
        Atomically move a gig to ASSIGNED if it is still ``expected_status``.

        Args:
            gig_id: Gig to assign
            expected_status: Status the gig must currently have
            session: Caller's session (transaction or autocommit connection)

        Returns:
            The updated gig, or None if another writer got there first

        Raises:
            PartialTransitionError: The row was updated in ``session`` but
                could not be read back
        """
        validate_gig_transition(gig_id, expected_status, GigStatus.ASSIGNED)

        async with self._session_scope(session) as s:
            result = await s.execute(
                update(Gig)
                .where(Gig.id == gig_id, Gig.status == expected_status)
                .values(status=GigStatus.ASSIGNED, assigned_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.debug(f"Gig {gig_id}: assign lost, not {expected_status.value}")
                return None
            try:
                return await s.get(Gig, gig_id, populate_existing=True)
            except Exception as e:
                raise PartialTransitionError(
                    f"Gig {gig_id} was assigned but could not be reloaded",
                    original_error=e,
                )

    async def revert_assignment(
        self, gig_id: str, session: Optional[AsyncSession] = None
    ) -> bool:
        """
        Compensate a hire whose bid transition failed.

        Only used when no transaction wraps the hire. Conditional on the gig
        still being ASSIGNED.

        Returns:
            True if the gig was reopened
        """
        validate_gig_transition(gig_id, GigStatus.ASSIGNED, GigStatus.OPEN)

        async with self._session_scope(session) as s:
            result = await s.execute(
                update(Gig)
                .where(Gig.id == gig_id, Gig.status == GigStatus.ASSIGNED)
                .values(status=GigStatus.OPEN, assigned_at=None)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
