"""
Unit tests for configuration constants.
"""

import pytest

from core.config import (
    APP_UTC_OFFSET_HOURS,
    AUTO_CANCEL_REARM_AFTER_REJECTION,
    DATABASE_URL,
    SWEEP_INTERVAL_MINUTES,
    TRANSACTION_TIMEOUT_SECONDS,
    _get_bool,
)


class TestConfigConstants:
    """Test cases for configuration constants."""

    def test_default_values(self):
        """Test default configuration values (test env pins the offset and database)."""
        assert DATABASE_URL.startswith(("postgresql://", "sqlite://"))
        assert APP_UTC_OFFSET_HOURS == 0
        assert AUTO_CANCEL_REARM_AFTER_REJECTION is False
        assert TRANSACTION_TIMEOUT_SECONDS > 0
        assert SWEEP_INTERVAL_MINUTES >= 1


class TestGetBool:
    """Boolean flags read from the environment."""

    @pytest.mark.parametrize("raw", ["1", "true", "TRUE", " yes ", "on"])
    def test_truthy(self, monkeypatch, raw):
        monkeypatch.setenv("SOME_FLAG", raw)
        assert _get_bool("SOME_FLAG", False) is True

    @pytest.mark.parametrize("raw", ["0", "false", "no", ""])
    def test_falsy(self, monkeypatch, raw):
        monkeypatch.setenv("SOME_FLAG", raw)
        assert _get_bool("SOME_FLAG", True) is False

    def test_unset_uses_default(self, monkeypatch):
        monkeypatch.delenv("SOME_FLAG", raising=False)
        assert _get_bool("SOME_FLAG", True) is True
