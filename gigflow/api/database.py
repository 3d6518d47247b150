import os

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base


def to_async_url(database_url: str) -> str:
    """Convert a sync SQLAlchemy URL to its async driver equivalent."""
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite+aiosqlite:///")
    return database_url.replace("postgresql://", "postgresql+asyncpg://")


def _ensure_sqlite_dir(async_url: str) -> None:
    """Create the parent directory of a file-based SQLite database."""
    database = make_url(async_url).database
    if database and database != ":memory:":
        directory = os.path.dirname(os.path.abspath(database))
        os.makedirs(directory, exist_ok=True)


def build_async_engine(database_url: str, busy_timeout: int = 30) -> AsyncEngine:
    """
    Create the async engine for a database URL.

    Args:
        database_url: Sync or async SQLAlchemy URL
        busy_timeout: Seconds a SQLite writer waits for a competing lock

    Returns:
        AsyncEngine
    """
    async_url = to_async_url(database_url)

    if async_url.startswith("sqlite"):
        _ensure_sqlite_dir(async_url)
        return create_async_engine(
            async_url,
            connect_args={"timeout": busy_timeout},
            echo=False,
        )

    return create_async_engine(async_url, echo=False, pool_pre_ping=True)


def build_autocommit_engine(engine: AsyncEngine) -> AsyncEngine:
    """
    Derive an engine whose every statement commits on its own.

    Shares the pool of ``engine``; used by the non-transactional hire path.
    """
    return engine.execution_options(isolation_level="AUTOCOMMIT")


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create an AsyncSession factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine, autoflush=False, expire_on_commit=False, class_=AsyncSession
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(engine: AsyncEngine) -> None:
    """Drop all tables (tests and seed --reset)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

