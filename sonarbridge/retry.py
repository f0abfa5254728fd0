"""Retry combinator with capped exponential backoff."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from sonarbridge.exceptions import ErrorKind, is_retryable_error, wrap_error

log = structlog.get_logger("sonarbridge.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryOptions:
    max_attempts: int = 3
    delay: float = 1.0  # seconds
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0  # seconds
    no_retry_kinds: frozenset[ErrorKind] = field(default_factory=frozenset)

    def delay_for(self, attempt: int) -> float:
        """Sleep before the attempt following *attempt* (1-based)."""
        return min(self.delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)

    def delays(self) -> list[float]:
        return [self.delay_for(n) for n in range(1, self.max_attempts)]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
    correlation_id: str | None = None,
    *,
    name: str = "operation",
) -> T:
    """Run *operation* until it succeeds or a non-retryable error occurs.

    The error raised after the last attempt is always a ClassifiedError of the
    same kind the operation produced.
    """
    options = options or RetryOptions()
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            error = wrap_error(exc, correlation_id)
            retryable = is_retryable_error(exc) and error.kind not in options.no_retry_kinds
            if not retryable or attempt >= options.max_attempts:
                log.warning(
                    "retry.giving_up",
                    operation=name,
                    attempt=attempt,
                    max_attempts=options.max_attempts,
                    kind=error.kind.value,
                    retryable=retryable,
                )
                if error is exc:
                    raise
                raise error from exc
            wait = options.delay_for(attempt)
            log.warning(
                "retry.attempt_failed",
                operation=name,
                attempt=attempt,
                max_attempts=options.max_attempts,
                kind=error.kind.value,
                wait_seconds=wait,
                error=str(exc),
            )
            await asyncio.sleep(wait)
            attempt += 1
