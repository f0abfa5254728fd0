"""Engine settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

from sonarbridge.exceptions import ConfigurationError, ErrorKind
from sonarbridge.retry import RetryOptions

DEFAULT_SONAR_URL = "http://localhost:9000"


def _env_float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{key} must be a number, got {raw!r}", context={"variable": key}, cause=exc
        ) from exc


def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineSettings:
    sonar_url: str = DEFAULT_SONAR_URL
    sonar_token: str | None = None
    poll_interval: float = 2.0  # seconds between task-status queries
    max_wait: float = 120.0  # seconds before a scan is reported as timed out
    lock_stale_after: float = 600.0  # seconds
    retry_attempts: int = 2
    retry_delay: float = 5.0
    retry_backoff: float = 2.0
    retry_max_delay: float = 30.0
    scanner_timeout: float = 600.0
    classpath_timeout: float = 60.0
    http_timeout: float = 30.0
    force_cli_scanner: bool = False

    @classmethod
    def from_env(cls) -> EngineSettings:
        """Build settings from ``SONAR_*`` / ``SONARBRIDGE_*`` variables."""
        return cls(
            sonar_url=os.environ.get("SONAR_URL", DEFAULT_SONAR_URL).rstrip("/"),
            sonar_token=os.environ.get("SONAR_TOKEN") or None,
            poll_interval=_env_float("SONARBRIDGE_POLL_INTERVAL", 2.0),
            max_wait=_env_float("SONARBRIDGE_MAX_WAIT", 120.0),
            lock_stale_after=_env_float("SONARBRIDGE_LOCK_STALE_AFTER", 600.0),
            retry_attempts=int(_env_float("SONARBRIDGE_RETRY_ATTEMPTS", 2)),
            retry_delay=_env_float("SONARBRIDGE_RETRY_DELAY", 5.0),
            retry_backoff=_env_float("SONARBRIDGE_RETRY_BACKOFF", 2.0),
            retry_max_delay=_env_float("SONARBRIDGE_RETRY_MAX_DELAY", 30.0),
            scanner_timeout=_env_float("SONARBRIDGE_SCANNER_TIMEOUT", 600.0),
            classpath_timeout=_env_float("SONARBRIDGE_CLASSPATH_TIMEOUT", 60.0),
            http_timeout=_env_float("SONARBRIDGE_HTTP_TIMEOUT", 30.0),
            force_cli_scanner=_env_bool("FORCE_CLI_SCANNER"),
        )

    def scan_retry_options(self) -> RetryOptions:
        """Retry policy for whole scan submissions.

        Timeouts and busy locks surface after one run.
        """
        return RetryOptions(
            max_attempts=max(1, self.retry_attempts),
            delay=self.retry_delay,
            backoff_multiplier=self.retry_backoff,
            max_delay=self.retry_max_delay,
            no_retry_kinds=frozenset({ErrorKind.TIMEOUT, ErrorKind.LOCK_BUSY}),
        )
