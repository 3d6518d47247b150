"""
Logging Configuration

Provides centralized logging with:
- Rotating file handler (prevents huge log files)
- Console handler for development
- Module-specific loggers
- HireLogger for tracing a single hire attempt through its stages

Usage:
    from gigflow.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Gig created")
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


def setup_logging(
    log_dir: Optional[str] = None,
    log_file: str = "gigflow.log",
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
    log_level: Optional[int] = None,
) -> logging.Logger:
    """
    Setup logging with rotating file handler and console output.

    Args:
        log_dir: Directory for log files (defaults to LOG_DIR or "logs")
        log_file: Name of the log file
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of backup files to keep
        log_level: Minimum log level to record (defaults to LOG_LEVEL or INFO)

    Returns:
        Configured root logger
    """
    if log_dir is None:
        log_dir = os.getenv("LOG_DIR", "logs")
    if log_level is None:
        log_level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    detailed_formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    simple_formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = RotatingFileHandler(
        filename=log_path / log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(detailed_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(simple_formatter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the specified module.

    Args:
        name: Usually __name__ from the calling module

    Returns:
        Logger instance
    """
    # Lazy initialization
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        setup_logging()

    return logging.getLogger(name)


class HireLogger:
    """
    Specialized logger for a single hire attempt.

    Every line is prefixed with the bid being hired so concurrent attempts
    on the same gig can be told apart in the log.
    """

    def __init__(self, bid_id: str = None):
        self.logger = get_logger("gigflow.hire")
        self.bid_id = bid_id

    def _format_message(self, message: str) -> str:
        if self.bid_id:
            return f"Hire {self.bid_id}: {message}"
        return message

    def info(self, message: str):
        self.logger.info(self._format_message(message))

    def warning(self, message: str):
        self.logger.warning(self._format_message(message))

    def error(self, message: str):
        self.logger.error(self._format_message(message))

    def debug(self, message: str):
        self.logger.debug(self._format_message(message))

    def stage(self, stage: str):
        """Log entry into a hire stage."""
        self.debug(f"-> {stage}")

    def conflict(self, reason: str):
        """Log a lost race."""
        self.warning(f"conflict - {reason}")

    def compensated(self, gig_id: str, reverted: bool):
        """Log the outcome of a gig compensation."""
        if reverted:
            self.warning(f"reverted gig {gig_id} to open")
        else:
            self.error(f"could not revert gig {gig_id}, it is no longer assigned")

    def completed(self, gig_id: str, rejected_count: int, transactional: bool):
        """Log a successful hire."""
        mode = "transactional" if transactional else "compensating"
        self.info(
            f"hired for gig {gig_id} ({mode}), "
            f"rejected {rejected_count} sibling bid(s)"
        )

    def side_effect_failed(self, what: str, error: Exception):
        """Log a swallowed post-commit failure."""
        self.error(f"{what} failed after commit - {error}")
