"""Configuration module for GigFlow."""

from .manager import (
    ConfigManager,
    get_config,
    ValidationError,
    TRANSACTION_MODES,
)

__all__ = [
    "ConfigManager",
    "get_config",
    "ValidationError",
    "TRANSACTION_MODES",
]
