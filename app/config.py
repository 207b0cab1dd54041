"""Podcast Ad Orchestrator - Configuration.

Path constants and environment-derived settings. No external config libraries.
All paths are relative to the repository root unless PODCAST_AD_DATA_DIR is set.

Provider settings are collected into an explicit ProviderConfig that is passed
into the dispatcher, rather than read from the process environment at call time.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from app.jobs import ConfigError

# Repository root (parent of app/)
REPO_ROOT = Path(__file__).parent.parent.resolve()


def _get_data_dir() -> Path:
    """Get the data directory, honoring PODCAST_AD_DATA_DIR."""
    env_val = os.environ.get("PODCAST_AD_DATA_DIR")
    if env_val:
        return Path(env_val).expanduser().resolve()
    return REPO_ROOT / "data"


DATA_DIR = _get_data_dir()

# Database path
DB_PATH = DATA_DIR / "podcast_ad.db"

# Queue directory and Huey database path
QUEUE_DIR = DATA_DIR / "queue"
HUEY_DB_PATH = QUEUE_DIR / "huey.db"


def _get_job_timeout() -> int:
    """Get the running-job deadline from environment or use default.

    Environment variable PODCAST_AD_JOB_TIMEOUT_SEC allows override.

    Returns:
        Timeout in seconds.
    """
    env_val = os.environ.get("PODCAST_AD_JOB_TIMEOUT_SEC")
    if env_val:
        try:
            timeout = int(env_val)
            if timeout > 0:
                return timeout
        except ValueError:
            pass
    return 900  # Default: 15 minutes


# Running jobs older than this are failed by the supervisory sweep
JOB_TIMEOUT_SECONDS = _get_job_timeout()

# How often the supervisory sweep runs (minutes, crontab syntax)
STALE_JOB_SWEEP_MINUTES = "*/5"

# Outbound provider request timeout
DEFAULT_PROVIDER_TIMEOUT_SECONDS = 30.0

# Provider variants understood by build_provider()
PROVIDER_HTTP = "http"
PROVIDER_FAKE = "fake"
PROVIDER_KINDS = (PROVIDER_HTTP, PROVIDER_FAKE)


@dataclass(frozen=True)
class ProviderConfig:
    """Settings for talking to generation providers.

    Attributes:
        provider_base_url: Base URL of the generation provider API.
        api_key: Bearer token sent with every provider request.
        callback_base_address: Public base URL of this service; providers call
            back to {callback_base_address}/v1/callbacks/{job_id}/{component}.
        provider: Which provider variant to use ("http" or "fake").
        request_timeout_sec: Timeout for a single outbound provider request.
    """

    provider_base_url: str
    api_key: str
    callback_base_address: str
    provider: str = PROVIDER_HTTP
    request_timeout_sec: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS

    def callback_url(self, job_id: str, component: str) -> str:
        """Build the webhook address a provider calls for one component."""
        base = self.callback_base_address.rstrip("/")
        return f"{base}/v1/callbacks/{job_id}/{component}"


def load_provider_config(environ: Mapping[str, str] | None = None) -> ProviderConfig:
    """Build a ProviderConfig from PODCAST_AD_* environment variables.

    Recognized variables:
    - PODCAST_AD_PROVIDER: "http" (default) or "fake"
    - PODCAST_AD_PROVIDER_BASE_URL: required for "http"
    - PODCAST_AD_PROVIDER_API_KEY: required for "http"
    - PODCAST_AD_CALLBACK_BASE_URL: required for "http"
    - PODCAST_AD_PROVIDER_TIMEOUT_SEC: optional float

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        The populated ProviderConfig.

    Raises:
        ConfigError: If a required variable is missing or a value is invalid.
    """
    env = os.environ if environ is None else environ

    provider = env.get("PODCAST_AD_PROVIDER", PROVIDER_HTTP).strip().lower()
    if provider not in PROVIDER_KINDS:
        raise ConfigError(f"Unknown provider '{provider}', expected one of {PROVIDER_KINDS}")

    base_url = env.get("PODCAST_AD_PROVIDER_BASE_URL", "").strip()
    api_key = env.get("PODCAST_AD_PROVIDER_API_KEY", "").strip()
    callback_base = env.get("PODCAST_AD_CALLBACK_BASE_URL", "").strip()

    if provider == PROVIDER_HTTP:
        missing = [
            name
            for name, value in (
                ("PODCAST_AD_PROVIDER_BASE_URL", base_url),
                ("PODCAST_AD_PROVIDER_API_KEY", api_key),
                ("PODCAST_AD_CALLBACK_BASE_URL", callback_base),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Required environment variables not set: {', '.join(missing)}")

    timeout = DEFAULT_PROVIDER_TIMEOUT_SECONDS
    raw_timeout = env.get("PODCAST_AD_PROVIDER_TIMEOUT_SEC")
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
        except ValueError as e:
            raise ConfigError(f"Invalid PODCAST_AD_PROVIDER_TIMEOUT_SEC: {raw_timeout!r}") from e
        if timeout <= 0:
            raise ConfigError("PODCAST_AD_PROVIDER_TIMEOUT_SEC must be positive")

    return ProviderConfig(
        provider_base_url=base_url,
        api_key=api_key,
        callback_base_address=callback_base or "http://localhost:8000",
        provider=provider,
        request_timeout_sec=timeout,
    )
