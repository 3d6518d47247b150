from typing import List, Optional

from sqlalchemy import select

from gigflow.api.models import Notification, NotificationType
from gigflow.marketplace.store import SessionScopedStore


class NotificationStore(SessionScopedStore):
    """Durable notification records written after hires and bid submissions."""

    async def create(
        self,
        user_id: str,
        type: NotificationType,
        message: str,
        gig_id: Optional[str] = None,
        bid_id: Optional[str] = None,
    ) -> Notification:
        async with self._session_scope() as session:
            notification = Notification(
                user_id=user_id,
                type=type,
                message=message,
                gig_id=gig_id,
                bid_id=bid_id,
            )
            session.add(notification)
            await session.flush()
            return notification

    async def find_by_user(self, user_id: str) -> List[Notification]:
        """Notifications for a user, newest first."""
        async with self._session_scope() as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
            )
            return list(result.scalars().all())
