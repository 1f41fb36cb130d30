"""Configuration management for the promo video pipeline.

This module provides centralized configuration loading from environment variables.
Secrets are cached with lru_cache; tunables are read on every call so tests can
override them with monkeypatch.setenv.

Environment Variables:
    DATABASE_URL: PostgreSQL connection URL (required for production)
    RUNWARE_API_KEY: Video/music provider API key (required to generate)
    RUNWARE_API_URL: Provider endpoint (default: https://api.runware.ai/v1)
    GOOGLE_TTS_API_KEY: Google Cloud Text-to-Speech API key (optional, narration)
    PUBLIC_BASE_URL: Base URL used to absolutize relative image URLs and to
        build public URLs for locally stored artifacts
    WORKSPACE_ROOT: Scratch directory for per-job compositing files
    STORAGE_BACKEND: "local" or "catbox" (default: local)
    STORAGE_DIR: Directory for the local storage backend

Usage:
    from promo_pipeline.config import get_poll_interval_seconds, get_runware_api_key

    interval = get_poll_interval_seconds()  # 3.0 unless overridden
    api_key = get_runware_api_key()  # Raises ConfigurationError if not set
"""

import os
from functools import lru_cache

import structlog

from promo_pipeline.exceptions import ConfigurationError

log = structlog.get_logger(__name__)


def _get_clamped_float(name: str, default: float, minimum: float, maximum: float) -> float:
    """Read a float env var and clamp it into [minimum, maximum].

    Invalid values are logged and replaced by the default.
    """
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        log.warning("invalid_config_value", name=name, value=raw, using_default=default)
        return default
    return max(minimum, min(maximum, value))


@lru_cache
def get_database_url() -> str:
    """Get database URL from environment.

    Converts postgresql:// to postgresql+asyncpg:// for async SQLAlchemy.

    Raises:
        ValueError: If DATABASE_URL not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise ValueError("DATABASE_URL environment variable is required")

    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


@lru_cache
def get_runware_api_key() -> str:
    """Get the generation provider API key.

    Raises:
        ConfigurationError: If RUNWARE_API_KEY is not set.
    """
    key = os.getenv("RUNWARE_API_KEY")
    if not key:
        raise ConfigurationError("RUNWARE_API_KEY environment variable is required")
    return key


def get_runware_api_url() -> str:
    return os.getenv("RUNWARE_API_URL", "https://api.runware.ai/v1")


def get_google_tts_api_key() -> str | None:
    """Get Google Text-to-Speech API key.

    Returns None when unset; narration is then skipped and videos are
    produced without a synthesized voice track.
    """
    return os.getenv("GOOGLE_TTS_API_KEY")


def get_public_base_url() -> str:
    """Get the public base URL of this service, without trailing slash.

    Environment Variable:
        PUBLIC_BASE_URL: e.g. "https://promo.example.com" (default: http://localhost:8000)
    """
    return os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")


def get_workspace_root() -> str:
    """Get workspace root directory for temporary compositing files.

    Environment Variable:
        WORKSPACE_ROOT: Base path for workspace files (default: "/app/workspace")
    """
    return os.getenv("WORKSPACE_ROOT", "/app/workspace")


def get_storage_backend() -> str:
    """Get artifact storage backend name ("local" or "catbox")."""
    return os.getenv("STORAGE_BACKEND", "local").lower()


def get_storage_dir() -> str:
    """Get directory used by the local artifact storage backend.

    Environment Variable:
        STORAGE_DIR: Path served under /media (default: "/app/storage")
    """
    return os.getenv("STORAGE_DIR", "/app/storage")


def get_poll_interval_seconds() -> float:
    """Get provider status polling interval.

    Environment Variable:
        POLL_INTERVAL_SECONDS: Seconds between status checks (default: 3)

    Returns:
        Interval clamped between 0.1s and 60s.
    """
    return _get_clamped_float("POLL_INTERVAL_SECONDS", 3.0, 0.1, 60.0)


def get_video_poll_budget_seconds() -> float:
    """Get the wall-clock budget for scene video generation.

    Environment Variable:
        VIDEO_POLL_BUDGET_SECONDS: Default 600 (10 minutes), clamped to [1, 3600].
    """
    return _get_clamped_float("VIDEO_POLL_BUDGET_SECONDS", 600.0, 1.0, 3600.0)


def get_music_poll_budget_seconds() -> float:
    """Get the wall-clock budget for background music generation.

    Environment Variable:
        MUSIC_POLL_BUDGET_SECONDS: Default 120 (2 minutes), clamped to [1, 900].
    """
    return _get_clamped_float("MUSIC_POLL_BUDGET_SECONDS", 120.0, 1.0, 900.0)


def get_crossfade_seconds() -> float:
    """Get crossfade duration between consecutive scenes (default 0.5s, max 2s)."""
    return _get_clamped_float("CROSSFADE_SECONDS", 0.5, 0.0, 2.0)


# Provider allows few parallel generations per key
DEFAULT_MAX_CONCURRENT_PROVIDER_CALLS = 2


def get_max_concurrent_provider_calls() -> int:
    """Get max concurrent in-flight calls to the generation provider.

    Environment Variable:
        MAX_CONCURRENT_PROVIDER_CALLS: Default 2, clamped to [1, 16].
    """
    try:
        value = int(
            os.getenv("MAX_CONCURRENT_PROVIDER_CALLS", str(DEFAULT_MAX_CONCURRENT_PROVIDER_CALLS))
        )
    except ValueError:
        log.warning(
            "invalid_config_value",
            name="MAX_CONCURRENT_PROVIDER_CALLS",
            value=os.getenv("MAX_CONCURRENT_PROVIDER_CALLS"),
            using_default=DEFAULT_MAX_CONCURRENT_PROVIDER_CALLS,
        )
        return DEFAULT_MAX_CONCURRENT_PROVIDER_CALLS
    return max(1, min(16, value))


def get_reconcile_interval_seconds() -> float:
    """Get interval of the background reconciliation loop (default 15s, [1, 600])."""
    return _get_clamped_float("RECONCILE_INTERVAL_SECONDS", 15.0, 1.0, 600.0)


def get_retention_days() -> int:
    """Get job retention period in days.

    Environment Variable:
        RETENTION_DAYS: Jobs older than this are purged (default: 60, minimum 1).
    """
    return int(_get_clamped_float("RETENTION_DAYS", 60, 1, 3650))


def get_ffmpeg_timeout_seconds() -> int:
    """Get timeout applied to each ffmpeg invocation (default 300s)."""
    return int(_get_clamped_float("FFMPEG_TIMEOUT_SECONDS", 300, 10, 3600))
