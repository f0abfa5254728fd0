"""Tests for the retry combinator."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from sonarbridge.exceptions import (
    ErrorKind,
    NetworkError,
    OperationTimeoutError,
    RemoteServiceError,
    ToolExecutionError,
    ValidationError,
)
from sonarbridge.retry import RetryOptions, with_retry


class TestRetryOptions:
    def test_delays_double_and_cap(self):
        opts = RetryOptions(max_attempts=6, delay=1.0, backoff_multiplier=2.0, max_delay=5.0)
        assert opts.delays() == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_single_attempt_has_no_delays(self):
        assert RetryOptions(max_attempts=1).delays() == []


class TestWithRetry:
    @pytest.mark.anyio
    async def test_success_first_try(self):
        op = AsyncMock(return_value="ok")
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            assert await with_retry(op, RetryOptions(max_attempts=3)) == "ok"
        assert op.await_count == 1
        mock_sleep.assert_not_called()

    @pytest.mark.anyio
    async def test_retries_retryable_then_succeeds(self):
        op = AsyncMock(side_effect=[NetworkError("down"), RemoteServiceError("x", http_status=502), "ok"])
        opts = RetryOptions(max_attempts=3, delay=1.0, backoff_multiplier=2.0)
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            assert await with_retry(op, opts) == "ok"
        assert op.await_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @pytest.mark.anyio
    async def test_non_retryable_surfaces_immediately(self):
        op = AsyncMock(side_effect=ValidationError("bad"))
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(ValidationError):
                await with_retry(op, RetryOptions(max_attempts=5))
        assert op.await_count == 1
        mock_sleep.assert_not_called()

    @pytest.mark.anyio
    async def test_exhaustion_reraises_same_kind(self):
        op = AsyncMock(side_effect=NetworkError("down"))
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(NetworkError):
                await with_retry(op, RetryOptions(max_attempts=3), correlation_id="cid")
        assert op.await_count == 3
        assert mock_sleep.await_count == 2

    @pytest.mark.anyio
    async def test_correlation_id_stamped(self):
        op = AsyncMock(side_effect=NetworkError("down"))
        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(NetworkError) as exc_info:
                await with_retry(op, RetryOptions(max_attempts=1), correlation_id="cid-9")
        assert exc_info.value.correlation_id == "cid-9"

    @pytest.mark.anyio
    async def test_no_retry_kinds_respected(self):
        op = AsyncMock(side_effect=OperationTimeoutError("slow", operation="scan", timeout_ms=10))
        opts = RetryOptions(max_attempts=3, no_retry_kinds=frozenset({ErrorKind.TIMEOUT}))
        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(OperationTimeoutError):
                await with_retry(op, opts)
        assert op.await_count == 1

    @pytest.mark.anyio
    async def test_unknown_error_wrapped(self):
        op = AsyncMock(side_effect=KeyError("boom"))
        with pytest.raises(ToolExecutionError) as exc_info:
            await with_retry(op, RetryOptions(max_attempts=3))
        assert op.await_count == 1
        assert isinstance(exc_info.value.__cause__, KeyError)

    @pytest.mark.anyio
    async def test_plain_network_error_retried(self):
        op = AsyncMock(side_effect=[ConnectionResetError("connection reset by peer"), "ok"])
        with patch("asyncio.sleep", new_callable=AsyncMock):
            assert await with_retry(op, RetryOptions(max_attempts=2)) == "ok"

    @pytest.mark.anyio
    async def test_exhausted_plain_network_error_stays_retryable(self):
        op = AsyncMock(side_effect=ConnectionResetError("connection reset by peer"))
        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(NetworkError) as exc_info:
                await with_retry(op, RetryOptions(max_attempts=2))
        assert op.await_count == 2
        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)
