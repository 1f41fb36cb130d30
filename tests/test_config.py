"""Tests for environment configuration helpers."""

import pytest

from promo_pipeline.config import (
    get_crossfade_seconds,
    get_database_url,
    get_max_concurrent_provider_calls,
    get_poll_interval_seconds,
    get_public_base_url,
    get_retention_days,
    get_runware_api_key,
    get_storage_backend,
    get_video_poll_budget_seconds,
)
from promo_pipeline.exceptions import ConfigurationError


class TestSecrets:
    def test_database_url_converted_to_asyncpg(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/promo")
        assert get_database_url() == "postgresql+asyncpg://u:p@db:5432/promo"

    def test_database_url_required(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(ValueError, match="DATABASE_URL"):
            get_database_url()

    def test_runware_key_required(self, monkeypatch):
        monkeypatch.delenv("RUNWARE_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="RUNWARE_API_KEY"):
            get_runware_api_key()

    def test_runware_key_read(self, monkeypatch):
        monkeypatch.setenv("RUNWARE_API_KEY", "rw-key")
        assert get_runware_api_key() == "rw-key"


class TestTunables:
    def test_defaults(self, monkeypatch):
        for name in (
            "POLL_INTERVAL_SECONDS",
            "VIDEO_POLL_BUDGET_SECONDS",
            "CROSSFADE_SECONDS",
            "MAX_CONCURRENT_PROVIDER_CALLS",
            "RETENTION_DAYS",
            "STORAGE_BACKEND",
            "PUBLIC_BASE_URL",
        ):
            monkeypatch.delenv(name, raising=False)

        assert get_poll_interval_seconds() == 3.0
        assert get_video_poll_budget_seconds() == 600.0
        assert get_crossfade_seconds() == 0.5
        assert get_max_concurrent_provider_calls() == 2
        assert get_retention_days() == 60
        assert get_storage_backend() == "local"
        assert get_public_base_url() == "http://localhost:8000"

    def test_values_are_clamped(self, monkeypatch):
        monkeypatch.setenv("POLL_INTERVAL_SECONDS", "0")
        monkeypatch.setenv("CROSSFADE_SECONDS", "9")
        monkeypatch.setenv("MAX_CONCURRENT_PROVIDER_CALLS", "100")
        assert get_poll_interval_seconds() == 0.1
        assert get_crossfade_seconds() == 2.0
        assert get_max_concurrent_provider_calls() == 16

    def test_invalid_values_fall_back_to_default(self, monkeypatch):
        monkeypatch.setenv("POLL_INTERVAL_SECONDS", "often")
        monkeypatch.setenv("MAX_CONCURRENT_PROVIDER_CALLS", "many")
        assert get_poll_interval_seconds() == 3.0
        assert get_max_concurrent_provider_calls() == 2

    def test_public_base_url_strips_trailing_slash(self, monkeypatch):
        monkeypatch.setenv("PUBLIC_BASE_URL", "https://promo.example.com/")
        assert get_public_base_url() == "https://promo.example.com"
