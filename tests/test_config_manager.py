"""
Tests for ConfigManager class.

Tests configuration loading, defaults, choice and range validation, and the
production guard on the JWT secret.
"""

import pytest

from gigflow.config import ConfigManager, ValidationError, get_config
from gigflow.config.manager import INSECURE_JWT_SECRET

from .conftest import CONFIG_ENV_VARS


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test from an environment without config variables."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


class TestConfigManagerLoading:
    """Test basic configuration loading."""

    def test_config_loads_with_defaults(self):
        config = get_config()
        assert config.DATABASE_URL == "sqlite:///./data/gigflow.db"
        assert config.TRANSACTION_MODE == "auto"
        assert config.SQLITE_BUSY_TIMEOUT == 30
        assert config.MAX_GIGS_PER_OWNER == 3
        assert config.MAX_BIDS_PER_FREELANCER == 3
        assert config.MAX_ACTIVE_HIRES_PER_FREELANCER == 3
        assert config.JWT_ALGORITHM == "HS256"
        assert config.WS_HEARTBEAT_INTERVAL == 30
        assert config.LOG_LEVEL == "INFO"

    def test_config_singleton_behavior(self):
        assert get_config() is get_config()

    def test_reset_instance_reloads_environment(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("MAX_GIGS_PER_OWNER", "5")
        assert get_config().MAX_GIGS_PER_OWNER == 3

        ConfigManager.reset_instance()
        second = get_config()
        assert second is not first
        assert second.MAX_GIGS_PER_OWNER == 5

    def test_cors_origins_split_on_commas(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test,")
        assert get_config().CORS_ORIGINS == ["http://a.test", "http://b.test"]

    def test_to_dict_masks_secret(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET_KEY", "super-secret-value-abcd")
        config_dict = get_config().to_dict()

        assert config_dict["JWT_SECRET_KEY"] == "***abcd"
        assert "super-secret" not in str(config_dict)
        assert config_dict["MAX_BIDS_PER_FREELANCER"] == 3


class TestConfigManagerValidation:
    """Test choice and range validation."""

    @pytest.mark.parametrize("mode", ["auto", "on", "off", "ON", " Off "])
    def test_transaction_mode_accepts_known_values(self, monkeypatch, mode):
        monkeypatch.setenv("TRANSACTION_MODE", mode)
        assert get_config().TRANSACTION_MODE == mode.strip().lower()

    def test_transaction_mode_rejects_unknown_value(self, monkeypatch):
        monkeypatch.setenv("TRANSACTION_MODE", "sometimes")
        with pytest.raises(ValidationError, match="TRANSACTION_MODE"):
            get_config()

    def test_non_integer_rejected(self, monkeypatch):
        monkeypatch.setenv("SQLITE_BUSY_TIMEOUT", "soon")
        with pytest.raises(ValidationError, match="Expected integer"):
            get_config()

    @pytest.mark.parametrize(
        "name,value",
        [
            ("SQLITE_BUSY_TIMEOUT", "0"),
            ("SQLITE_BUSY_TIMEOUT", "601"),
            ("MAX_GIGS_PER_OWNER", "0"),
            ("MAX_ACTIVE_HIRES_PER_FREELANCER", "101"),
            ("WS_MAX_MESSAGES_PER_MINUTE", "0"),
        ],
    )
    def test_out_of_range_rejected(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValidationError, match=name):
            get_config()

    def test_log_level_normalized(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert get_config().LOG_LEVEL == "DEBUG"

    def test_production_requires_real_jwt_secret(self, monkeypatch):
        monkeypatch.setenv("ENV", "production")
        with pytest.raises(ValidationError, match="JWT_SECRET_KEY"):
            get_config()

    def test_production_with_real_secret_loads(self, monkeypatch):
        monkeypatch.setenv("ENV", "production")
        monkeypatch.setenv("JWT_SECRET_KEY", "a-real-secret-" + "x" * 32)
        config = get_config()
        assert config.JWT_SECRET_KEY != INSECURE_JWT_SECRET
