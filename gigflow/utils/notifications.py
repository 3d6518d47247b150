"""
Real-Time Notifications Module

Fire-and-forget push of marketplace events to a user's WebSocket room.
``notify`` schedules delivery on the running event loop and returns at once;
a failed delivery is logged and dropped. There is no retry and no ordering
guarantee between events.

Usage:
    from gigflow.utils.notifications import Notifier, NotificationEvent

    notifier = Notifier(websocket_manager)
    notifier.notify(user_id, NotificationEvent.BID_HIRED, {"gigId": gig.id})
    ...
    await notifier.close()
"""

import asyncio
from enum import Enum as PyEnum
from typing import Any, Dict, Set, Union

from gigflow.api.websocket_manager import user_room

from .logger import get_logger


class NotificationEvent(PyEnum):
    """Events pushed to users."""

    BID_HIRED = "bidHired"
    GIG_ASSIGNED = "gigAssigned"
    NEW_BID = "newBid"


class Notifier:
    """
    Best-effort dispatcher over a WebSocket room manager.

    Never blocks and never raises into the caller; the hire and bid flows
    call it after their own writes have committed.
    """

    def __init__(self, websocket_manager, drain_timeout: float = 5.0):
        """
        Args:
            websocket_manager: Object exposing ``emit_to_room(room, event, data)``
            drain_timeout: Seconds ``close`` waits for pending deliveries
        """
        self.websocket_manager = websocket_manager
        self.drain_timeout = drain_timeout
        self.logger = get_logger(__name__)
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def notify(
        self,
        user_id: str,
        event: Union[NotificationEvent, str],
        payload: Dict[str, Any],
    ) -> None:
        """
        Schedule delivery of ``event`` to every socket of ``user_id``.

        Args:
            user_id: Recipient
            event: Event name
            payload: JSON-serializable event data
        """
        event_name = event.value if isinstance(event, NotificationEvent) else event
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning(
                f"No running event loop, dropping {event_name} for {user_id}"
            )
            return

        task = loop.create_task(self._deliver(user_id, event_name, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, user_id: str, event: str, payload: Dict[str, Any]) -> bool:
        try:
            delivered = await self.websocket_manager.emit_to_room(
                user_room(user_id), event, payload
            )
        except Exception as e:
            self.logger.error(f"Failed to deliver {event} to {user_id}: {e}")
            return False

        self.logger.debug(f"{event} delivered to {delivered} socket(s) of {user_id}")
        return True

    async def close(self) -> None:
        """Wait (bounded) for in-flight deliveries, cancelling stragglers."""
        if not self._pending:
            return

        pending = set(self._pending)
        done, not_done = await asyncio.wait(pending, timeout=self.drain_timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            self.logger.warning(f"Cancelled {len(not_done)} undelivered notification(s)")
