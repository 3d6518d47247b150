"""Shared session handling for the marketplace stores."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class SessionScopedStore:
    """
    Base for stores whose methods either join a caller's session or open
    their own short-lived one.

    Passing ``session`` lets the hire coordinator run several store calls
    inside one transaction (or on one autocommit connection); without it the
    store commits its own work.
    """

    def __init__(self, sessions: async_sessionmaker):
        """
        Args:
            sessions: AsyncSession factory used when no session is supplied
        """
        self._sessions = sessions

    @asynccontextmanager
    async def _session_scope(
        self, session: Optional[AsyncSession] = None
    ) -> AsyncIterator[AsyncSession]:
        if session is not None:
            yield session
            return

        async with self._sessions() as own:
            try:
                yield own
                await own.commit()
            except Exception:
                await own.rollback()
                raise
