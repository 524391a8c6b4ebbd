"""Tests for settings."""

import pytest
from pydantic import ValidationError

from memoredis.config import Settings


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch) -> None:
        monkeypatch.delenv("REDIS_URL", raising=False)
        settings = Settings()

        assert settings.redis_url == "redis://localhost:6379/0"
        assert settings.prefix is None
        assert settings.empty_mode is False
        assert settings.default_ttl == 60.0
        assert settings.default_lock_timeout == 5.0
        assert settings.scan_count == 1000

    def test_env_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/4")
        monkeypatch.setenv("MEMOREDIS_PREFIX", "svc")
        monkeypatch.setenv("MEMOREDIS_EMPTY_MODE", "1")
        monkeypatch.setenv("MEMOREDIS_DEFAULT_LOCK_TIMEOUT", "2.5")
        settings = Settings()

        assert settings.redis_url == "redis://cache:6379/4"
        assert settings.prefix == "svc"
        assert settings.empty_mode is True
        assert settings.default_lock_timeout == 2.5

    @pytest.mark.parametrize(
        "name", ["MEMOREDIS_DEFAULT_TTL", "MEMOREDIS_DEFAULT_LOCK_TIMEOUT", "MEMOREDIS_SCAN_COUNT"]
    )
    def test_rejects_non_positive(self, monkeypatch, name) -> None:
        monkeypatch.setenv(name, "0")
        with pytest.raises(ValidationError):
            Settings()
