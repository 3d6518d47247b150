"""
Backing-store capability detection.

Run once at startup; the result fixes which hire realization the process
uses for its whole lifetime.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from gigflow.marketplace.errors import (
    TransactionUnsupportedError,
    is_transaction_unsupported,
)
from gigflow.utils.logger import get_logger

logger = get_logger(__name__)


async def _probe_transaction(engine: AsyncEngine) -> None:
    """
    Open a transaction plus a savepoint and roll both back.

    Raises:
        TransactionUnsupportedError: The store refused the transaction
    """
    try:
        async with engine.connect() as conn:
            trans = await conn.begin()
            try:
                savepoint = await conn.begin_nested()
                await conn.execute(text("SELECT 1"))
                await savepoint.rollback()
            finally:
                await trans.rollback()
    except Exception as e:
        if is_transaction_unsupported(e):
            raise TransactionUnsupportedError(str(e), original_error=e)
        raise


async def detect_transaction_support(engine: AsyncEngine, mode: str = "auto") -> bool:
    """
    Decide whether hires run inside multi-statement transactions.

    Args:
        engine: Engine the hire coordinator will use
        mode: "on" or "off" force the answer; "auto" probes the store

    Returns:
        True if transactions are available

    Raises:
        Exception: Probe failures other than "unsupported" (startup fails)
    """
    mode = (mode or "auto").lower()
    if mode == "on":
        logger.info("Transactions forced on by TRANSACTION_MODE")
        return True
    if mode == "off":
        logger.info("Transactions forced off by TRANSACTION_MODE, using compensation")
        return False

    try:
        await _probe_transaction(engine)
    except TransactionUnsupportedError as e:
        logger.warning(
            f"Transactions not supported ({e.message}), falling back to compensation"
        )
        return False

    logger.info("Transactions supported by backing store")
    return True
