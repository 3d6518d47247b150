"""
Configuration Manager Module

This module provides a centralized ConfigManager class to load and validate
all configuration from environment variables.

Features:
- Type validation (ensure numeric values are numbers)
- Range validation (e.g., limits > 0, timeouts bounded)
- Singleton pattern for global access
- Documentation of every threshold with its purpose
"""

import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class ValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


TRANSACTION_MODES = ("auto", "on", "off")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
INSECURE_JWT_SECRET = "CHANGE_ME_IN_PRODUCTION_use_a_random_32_byte_key"


class ConfigManager:
    """
    Centralized configuration manager for all limits and infrastructure settings.

    Loads configuration from environment variables with sensible defaults and
    validates all values against type and range constraints.

    Uses singleton pattern to ensure only one instance exists globally.
    """

    _instance: Optional["ConfigManager"] = None

    # ==========================================================================
    # PERSISTENCE
    # ==========================================================================

    # SQLAlchemy database URL (sync form; converted to the async driver)
    # Default: SQLite file under ./data
    DATABASE_URL: str

    # Whether the hire transition wraps its writes in a transaction
    # Purpose: "auto" probes the store once at startup, "on"/"off" force it
    # Default: auto
    TRANSACTION_MODE: str

    # SQLite busy timeout (in seconds)
    # Purpose: Concurrent writers wait for the lock instead of failing
    # Default: 30 seconds
    # Validation: Must be > 0 and <= 600
    SQLITE_BUSY_TIMEOUT: int

    # ==========================================================================
    # MARKETPLACE LIMITS
    # ==========================================================================

    # Maximum gigs one owner may post
    # Default: 3
    # Validation: Must be > 0 and <= 100
    MAX_GIGS_PER_OWNER: int

    # Maximum lifetime bid submissions per freelancer (any status)
    # Default: 3
    # Validation: Must be > 0 and <= 1000
    MAX_BIDS_PER_FREELANCER: int

    # Maximum simultaneously hired bids per freelancer
    # Purpose: Advisory capacity check before a hire
    # Default: 3
    # Validation: Must be > 0 and <= 100
    MAX_ACTIVE_HIRES_PER_FREELANCER: int

    # ==========================================================================
    # AUTHENTICATION & REAL-TIME CHANNEL
    # ==========================================================================

    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str

    # WebSocket heartbeat interval (in seconds)
    # Default: 30 seconds
    # Validation: Must be > 0 and <= 3600
    WS_HEARTBEAT_INTERVAL: int

    # Inbound WebSocket messages allowed per client per minute
    # Default: 60
    # Validation: Must be > 0 and <= 10000
    WS_MAX_MESSAGES_PER_MINUTE: int

    # ==========================================================================
    # GENERAL
    # ==========================================================================

    CORS_ORIGINS: List[str]
    LOG_LEVEL: str
    LOG_DIR: str
    ENV: str

    def __init__(self):
        """Initialize ConfigManager with environment variables."""
        self._load_and_validate()

    def _load_and_validate(self) -> None:
        """Load all configuration from environment and validate."""
        self.DATABASE_URL = self._load_str(
            "DATABASE_URL", "sqlite:///./data/gigflow.db"
        )
        if not self.DATABASE_URL:
            raise ValidationError("DATABASE_URL: must not be empty")

        self.TRANSACTION_MODE = self._load_choice(
            "TRANSACTION_MODE", "auto", TRANSACTION_MODES
        )
        self.SQLITE_BUSY_TIMEOUT = self._load_int(
            "SQLITE_BUSY_TIMEOUT",
            30,
            min_val=1,
            max_val=600,
            description="SQLite busy timeout (seconds)",
        )

        self.MAX_GIGS_PER_OWNER = self._load_int(
            "MAX_GIGS_PER_OWNER",
            3,
            min_val=1,
            max_val=100,
            description="Max gigs per owner",
        )
        self.MAX_BIDS_PER_FREELANCER = self._load_int(
            "MAX_BIDS_PER_FREELANCER",
            3,
            min_val=1,
            max_val=1000,
            description="Max lifetime bids per freelancer",
        )
        self.MAX_ACTIVE_HIRES_PER_FREELANCER = self._load_int(
            "MAX_ACTIVE_HIRES_PER_FREELANCER",
            3,
            min_val=1,
            max_val=100,
            description="Max simultaneous hires per freelancer",
        )

        self.ENV = self._load_str("ENV", "development").lower()
        self.JWT_SECRET_KEY = self._load_str("JWT_SECRET_KEY", INSECURE_JWT_SECRET)
        if self.ENV == "production" and self.JWT_SECRET_KEY == INSECURE_JWT_SECRET:
            raise ValidationError(
                "JWT_SECRET_KEY using insecure default in production. "
                "Generate a secure key: openssl rand -hex 32"
            )
        self.JWT_ALGORITHM = self._load_str("JWT_ALGORITHM", "HS256")

        self.WS_HEARTBEAT_INTERVAL = self._load_int(
            "WS_HEARTBEAT_INTERVAL",
            30,
            min_val=1,
            max_val=3600,
            description="WebSocket heartbeat interval (seconds)",
        )
        self.WS_MAX_MESSAGES_PER_MINUTE = self._load_int(
            "WS_MAX_MESSAGES_PER_MINUTE",
            60,
            min_val=1,
            max_val=10000,
            description="WebSocket messages per minute",
        )

        origins = self._load_str("CORS_ORIGINS", "http://localhost:5173")
        self.CORS_ORIGINS = [o.strip() for o in origins.split(",") if o.strip()]

        self.LOG_LEVEL = self._load_choice("LOG_LEVEL", "INFO", LOG_LEVELS, upper=True)
        self.LOG_DIR = self._load_str("LOG_DIR", "logs")

    @staticmethod
    def _load_str(env_var: str, default: str) -> str:
        value = os.environ.get(env_var)
        return default if value is None else value.strip()

    @staticmethod
    def _load_choice(
        env_var: str, default: str, choices: tuple, upper: bool = False
    ) -> str:
        """Load a string that must be one of a fixed set of values."""
        value = os.environ.get(env_var, default).strip()
        value = value.upper() if upper else value.lower()
        if value not in choices:
            raise ValidationError(
                f"{env_var}: '{value}' is not one of {', '.join(choices)}"
            )
        return value

    @staticmethod
    def _load_int(
        env_var: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
        description: str = "",
    ) -> int:
        """
        Load and validate an integer configuration value.

        Args:
            env_var: Environment variable name
            default: Default value if not set
            min_val: Minimum allowed value (inclusive)
            max_val: Maximum allowed value (inclusive)
            description: Human-readable description for error messages

        Returns:
            Validated integer value

        Raises:
            ValidationError: If value fails type or range validation
        """
        value_str = os.environ.get(env_var)

        if value_str is None:
            value = default
        else:
            try:
                value = int(value_str)
            except ValueError:
                raise ValidationError(
                    f"{env_var}: Expected integer, got '{value_str}' "
                    f"({description})"
                )

        if min_val is not None and value < min_val:
            raise ValidationError(
                f"{env_var}: {value} is below minimum {min_val} "
                f"({description})"
            )

        if max_val is not None and value > max_val:
            raise ValidationError(
                f"{env_var}: {value} exceeds maximum {max_val} "
                f"({description})"
            )

        return value

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert all configuration to dictionary (secrets masked).

        Returns:
            Dictionary of all configuration values
        """
        return {
            # Persistence
            "DATABASE_URL": self.DATABASE_URL,
            "TRANSACTION_MODE": self.TRANSACTION_MODE,
            "SQLITE_BUSY_TIMEOUT": self.SQLITE_BUSY_TIMEOUT,
            # Marketplace limits
            "MAX_GIGS_PER_OWNER": self.MAX_GIGS_PER_OWNER,
            "MAX_BIDS_PER_FREELANCER": self.MAX_BIDS_PER_FREELANCER,
            "MAX_ACTIVE_HIRES_PER_FREELANCER": self.MAX_ACTIVE_HIRES_PER_FREELANCER,
            # Auth & real-time
            "JWT_SECRET_KEY": "***" + self.JWT_SECRET_KEY[-4:],
            "JWT_ALGORITHM": self.JWT_ALGORITHM,
            "WS_HEARTBEAT_INTERVAL": self.WS_HEARTBEAT_INTERVAL,
            "WS_MAX_MESSAGES_PER_MINUTE": self.WS_MAX_MESSAGES_PER_MINUTE,
            # General
            "CORS_ORIGINS": ",".join(self.CORS_ORIGINS),
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_DIR": self.LOG_DIR,
            "ENV": self.ENV,
        }

    @classmethod
    def get_instance(cls) -> "ConfigManager":
        """
        Get or create singleton instance of ConfigManager.

        Raises:
            ValidationError: If configuration validation fails
        """
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)."""
        cls._instance = None


def get_config() -> ConfigManager:
    """Get the global ConfigManager instance."""
    return ConfigManager.get_instance()
