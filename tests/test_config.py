"""Tests for environment-driven engine settings."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from sonarbridge.config import EngineSettings
from sonarbridge.exceptions import ConfigurationError, ErrorKind


class TestFromEnv:
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = EngineSettings.from_env()
        assert settings.sonar_url == "http://localhost:9000"
        assert settings.sonar_token is None
        assert settings.poll_interval == 2.0
        assert settings.max_wait == 120.0
        assert settings.lock_stale_after == 600.0
        assert settings.force_cli_scanner is False

    def test_overrides(self):
        env = {
            "SONAR_URL": "https://sonar.example.com/",
            "SONAR_TOKEN": "squ_abc",
            "SONARBRIDGE_MAX_WAIT": "300",
            "SONARBRIDGE_RETRY_ATTEMPTS": "4",
            "FORCE_CLI_SCANNER": "true",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = EngineSettings.from_env()
        assert settings.sonar_url == "https://sonar.example.com"
        assert settings.sonar_token == "squ_abc"
        assert settings.max_wait == 300.0
        assert settings.retry_attempts == 4
        assert settings.force_cli_scanner is True

    def test_malformed_number(self):
        with patch.dict(os.environ, {"SONARBRIDGE_POLL_INTERVAL": "fast"}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                EngineSettings.from_env()
        assert exc_info.value.context["variable"] == "SONARBRIDGE_POLL_INTERVAL"

    def test_empty_token_is_none(self):
        with patch.dict(os.environ, {"SONAR_TOKEN": ""}, clear=True):
            assert EngineSettings.from_env().sonar_token is None


class TestScanRetryOptions:
    def test_timeouts_and_busy_locks_not_retried(self):
        opts = EngineSettings(retry_attempts=3, retry_delay=5.0).scan_retry_options()
        assert opts.max_attempts == 3
        assert opts.delay == 5.0
        assert opts.no_retry_kinds == frozenset({ErrorKind.TIMEOUT, ErrorKind.LOCK_BUSY})

    def test_at_least_one_attempt(self):
        assert EngineSettings(retry_attempts=0).scan_retry_options().max_attempts == 1
