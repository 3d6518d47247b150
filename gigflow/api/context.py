"""
Application Context

Process-wide wiring of engines, session factories, stores, the notifier and
the hire coordinator. Opened once in the FastAPI lifespan and handed to
request handlers through ``app.state.context``; business objects receive
their collaborators through their constructors.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from gigflow.api.database import (
    build_async_engine,
    build_autocommit_engine,
    build_session_factory,
    init_db,
)
from gigflow.api.identity import IdentityProvider
from gigflow.api.websocket_manager import WebSocketManager
from gigflow.config import ConfigManager, get_config
from gigflow.marketplace.bid_store import BidStore
from gigflow.marketplace.bidding import BidSubmissionService
from gigflow.marketplace.capabilities import detect_transaction_support
from gigflow.marketplace.gig_store import GigStore
from gigflow.marketplace.hire_coordinator import HireCoordinator
from gigflow.marketplace.notification_store import NotificationStore
from gigflow.marketplace.user_store import UserStore
from gigflow.utils.logger import get_logger
from gigflow.utils.notifications import Notifier

logger = get_logger(__name__)


@dataclass
class AppContext:
    config: ConfigManager
    engine: AsyncEngine
    autocommit_engine: AsyncEngine
    sessions: async_sessionmaker
    autocommit_sessions: async_sessionmaker
    supports_transactions: bool
    identity: IdentityProvider
    websocket_manager: WebSocketManager
    notifier: Notifier
    users: UserStore
    gigs: GigStore
    bids: BidStore
    notifications: NotificationStore
    submissions: BidSubmissionService
    coordinator: HireCoordinator

    @classmethod
    async def open(
        cls,
        config: Optional[ConfigManager] = None,
        supports_transactions: Optional[bool] = None,
    ) -> "AppContext":
        """
        Build and start every process-wide collaborator.

        Creates missing tables, runs the capability probe (unless
        ``supports_transactions`` is given) and starts the WebSocket manager.

        Args:
            config: Settings; defaults to the ConfigManager singleton
            supports_transactions: Skip the probe and force a hire realization
        """
        config = config or get_config()

        engine = build_async_engine(config.DATABASE_URL, config.SQLITE_BUSY_TIMEOUT)
        autocommit_engine = build_autocommit_engine(engine)
        sessions = build_session_factory(engine)
        autocommit_sessions = build_session_factory(autocommit_engine)

        try:
            await init_db(engine)
            if supports_transactions is None:
                supports_transactions = await detect_transaction_support(
                    engine, config.TRANSACTION_MODE
                )
        except Exception:
            await engine.dispose()
            raise

        users = UserStore(sessions)
        gigs = GigStore(sessions, max_gigs_per_owner=config.MAX_GIGS_PER_OWNER)
        bids = BidStore(sessions, max_bids_per_freelancer=config.MAX_BIDS_PER_FREELANCER)
        notifications = NotificationStore(sessions)

        identity = IdentityProvider(users, config.JWT_SECRET_KEY, config.JWT_ALGORITHM)
        websocket_manager = WebSocketManager(
            identity,
            heartbeat_interval=config.WS_HEARTBEAT_INTERVAL,
            max_messages_per_minute=config.WS_MAX_MESSAGES_PER_MINUTE,
        )
        notifier = Notifier(websocket_manager)

        coordinator = HireCoordinator(
            gigs,
            bids,
            notifications,
            notifier,
            sessions=sessions,
            autocommit_sessions=autocommit_sessions,
            supports_transactions=supports_transactions,
            max_active_hires=config.MAX_ACTIVE_HIRES_PER_FREELANCER,
        )

        await websocket_manager.start()
        logger.info(
            f"Application context opened (transactions={supports_transactions})"
        )

        return cls(
            config=config,
            engine=engine,
            autocommit_engine=autocommit_engine,
            sessions=sessions,
            autocommit_sessions=autocommit_sessions,
            supports_transactions=supports_transactions,
            identity=identity,
            websocket_manager=websocket_manager,
            notifier=notifier,
            users=users,
            gigs=gigs,
            bids=bids,
            notifications=notifications,
            submissions=BidSubmissionService(bids, notifications, notifier),
            coordinator=coordinator,
        )

    async def close(self) -> None:
        """Drain notifications, stop the WebSocket manager, dispose engines."""
        await self.notifier.close()
        await self.websocket_manager.stop()
        await self.engine.dispose()
        logger.info("Application context closed")


def get_context(request: Request) -> AppContext:
    """Dependency for the process-wide application context."""
    return request.app.state.context
