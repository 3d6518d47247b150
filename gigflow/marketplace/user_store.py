from typing import Optional

from sqlalchemy import select

from gigflow.api.models import User
from gigflow.marketplace.store import SessionScopedStore


class UserStore(SessionScopedStore):
    """Lookup of identity records. Accounts are only created by seeding."""

    async def find_by_id(self, user_id: str) -> Optional[User]:
        async with self._session_scope() as session:
            return await session.get(User, user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        async with self._session_scope() as session:
            return await session.scalar(select(User).where(User.email == email))

    async def create(self, name: str, email: str) -> User:
        async with self._session_scope() as session:
            user = User(name=name, email=email.lower())
            session.add(user)
            await session.flush()
            return user
