"""
Pytest configuration and shared fixtures for GigFlow tests.

This module provides:
- A file-backed temporary SQLite database per test (async connections only
  share state through a file)
- A freshly loaded ConfigManager pointing at that database
- An opened AppContext (probe result by default, or forced through
  ``indirect`` parametrization with True/False)
- MarketplaceFactory for creating users, gigs and bids
"""

import itertools

import pytest

from gigflow.api.context import AppContext
from gigflow.api.models import Bid, Gig, User
from gigflow.config import ConfigManager, get_config

TEST_JWT_SECRET = "test-secret-key-for-gigflow-tests-0123456789"

CONFIG_ENV_VARS = [
    "DATABASE_URL",
    "TRANSACTION_MODE",
    "SQLITE_BUSY_TIMEOUT",
    "MAX_GIGS_PER_OWNER",
    "MAX_BIDS_PER_FREELANCER",
    "MAX_ACTIVE_HIRES_PER_FREELANCER",
    "JWT_SECRET_KEY",
    "JWT_ALGORITHM",
    "WS_HEARTBEAT_INTERVAL",
    "WS_MAX_MESSAGES_PER_MINUTE",
    "CORS_ORIGINS",
    "LOG_LEVEL",
    "LOG_DIR",
    "ENV",
]


# =============================================================================
# CONFIGURATION
# =============================================================================


@pytest.fixture
def database_url(tmp_path):
    """SQLite file unique to the test."""
    return f"sqlite:///{tmp_path / 'gigflow_test.db'}"


@pytest.fixture
def config(database_url, tmp_path, monkeypatch):
    """ConfigManager loaded from a clean, test-only environment."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("JWT_SECRET_KEY", TEST_JWT_SECRET)
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))

    ConfigManager.reset_instance()
    yield get_config()
    ConfigManager.reset_instance()


# =============================================================================
# APPLICATION CONTEXT
# =============================================================================


@pytest.fixture
async def context(request, config):
    """
    Opened AppContext.

    Parametrize indirectly with True/False to force the transactional or the
    compensating hire realization; otherwise the startup probe decides.
    """
    supports_transactions = getattr(request, "param", None)
    ctx = await AppContext.open(config, supports_transactions=supports_transactions)
    yield ctx
    await ctx.close()


class MarketplaceFactory:
    """Creates marketplace rows through the real stores."""

    def __init__(self, context: AppContext):
        self.context = context
        self._sequence = itertools.count(1)

    async def user(self, name: str = None) -> User:
        number = next(self._sequence)
        name = name or f"User {number}"
        email = f"{name.lower().replace(' ', '.')}.{number}@example.com"
        return await self.context.users.create(name, email)

    async def gig(
        self,
        owner: User,
        title: str = "Logo design",
        description: str = "Need a clean logo for a coffee shop",
        budget: float = 250.0,
    ) -> Gig:
        return await self.context.gigs.create(owner.id, title, description, budget)

    async def bid(
        self,
        freelancer: User,
        gig: Gig,
        price: float = 200.0,
        message: str = "I can do this in three days",
    ) -> Bid:
        return await self.context.bids.create(freelancer.id, gig.id, message, price)

    async def gig_with_bids(self, bid_count: int = 3):
        """An owner, one open gig and ``bid_count`` bids from distinct freelancers."""
        owner = await self.user("Owner")
        gig = await self.gig(owner)
        bids = []
        for index in range(bid_count):
            freelancer = await self.user(f"Freelancer {index}")
            bids.append(await self.bid(freelancer, gig, price=100.0 + index))
        return owner, gig, bids

    def token(self, user: User) -> str:
        return self.context.identity.issue_token(user.id)

    def auth_headers(self, user: User) -> dict:
        return {"Authorization": f"Bearer {self.token(user)}"}


@pytest.fixture
def factory(context):
    """MarketplaceFactory bound to the test's AppContext."""
    return MarketplaceFactory(context)
