"""Error taxonomy for the scan engine.

Every failure that leaves the engine is a :class:`ClassifiedError`: it carries
its kind, whether a retry could succeed, the HTTP status when the service
answered, the correlation id of the scan run, and free-form context.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

import httpx

_NETWORK_SIGNATURES = (
    "timeout",
    "timed out",
    "network",
    "connection",
    "econnreset",
    "enotfound",
    "name or service not known",
    "temporary failure in name resolution",
)


class ErrorKind(str, enum.Enum):
    LOCK_BUSY = "lock_busy"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    SECURITY = "security"
    REMOTE_SERVICE = "remote_service"
    NETWORK = "network"
    FILE_SYSTEM = "file_system"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    TOOL_EXECUTION = "tool_execution"


class ClassifiedError(Exception):
    """Base exception for all engine errors."""

    kind: ErrorKind = ErrorKind.TOOL_EXECUTION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        retryable: bool | None = None,
        http_status: int | None = None,
        correlation_id: str | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable
        self.http_status = http_status
        self.correlation_id = correlation_id
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        if cause is not None:
            self.__cause__ = cause

    def user_message(self) -> str:
        return "An unexpected error occurred. Please try again or contact support."

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "user_message": self.user_message(),
            "retryable": self.retryable,
            "http_status": self.http_status,
            "correlation_id": self.correlation_id,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_public_dict(self) -> dict[str, Any]:
        """The subset safe to show a user: no raw message or context."""
        return {
            "kind": self.kind.value,
            "user_message": self.user_message(),
            "correlation_id": self.correlation_id,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, retryable={self.retryable})"


class LockBusyError(ClassifiedError):
    """Raised when another live scan holds the project lock."""

    kind = ErrorKind.LOCK_BUSY

    def user_message(self) -> str:
        return "Another analysis is already running for this project. Please wait for it to finish."


class ValidationError(ClassifiedError):
    """Raised when a scan request is malformed."""

    kind = ErrorKind.VALIDATION

    def user_message(self) -> str:
        return "Invalid input parameters provided."


class ConfigurationError(ClassifiedError):
    """Raised when the engine or the project is misconfigured."""

    kind = ErrorKind.CONFIGURATION

    def user_message(self) -> str:
        fix = self.context.get("suggested_fix")
        if fix:
            return f"Configuration problem: {fix}"
        return "Configuration error. Please check your settings."


class AuthenticationError(ClassifiedError):
    kind = ErrorKind.AUTHENTICATION

    def user_message(self) -> str:
        return "Authentication failed. Please check your analysis service token."


class SecurityError(ClassifiedError):
    kind = ErrorKind.SECURITY

    def user_message(self) -> str:
        return "The request was rejected for security reasons."


class RemoteServiceError(ClassifiedError):
    """Raised when the analysis service answers with an error.

    Server-side (5xx) failures are retryable, client-side (4xx) failures are
    not unless the caller says otherwise.
    """

    kind = ErrorKind.REMOTE_SERVICE

    def __init__(self, message: str, *, http_status: int | None = None, **kwargs: Any) -> None:
        if kwargs.get("retryable") is None:
            kwargs["retryable"] = http_status is not None and http_status >= 500
        super().__init__(message, http_status=http_status, **kwargs)

    def user_message(self) -> str:
        if self.http_status == 403:
            return "Access denied. Please check the token permissions on the analysis service."
        if self.http_status == 404:
            return "The requested resource was not found on the analysis service."
        if self.http_status is not None and self.http_status >= 500:
            return "The analysis service reported a server error. Please try again later."
        return "The analysis service rejected the request."


class NetworkError(ClassifiedError):
    kind = ErrorKind.NETWORK
    default_retryable = True

    def user_message(self) -> str:
        return "The analysis service is temporarily unreachable. Please try again later."


class FileSystemError(ClassifiedError):
    """Raised on file I/O failures; reads and writes are retryable."""

    kind = ErrorKind.FILE_SYSTEM

    def __init__(self, message: str, *, operation: str, path: str | None = None, **kwargs: Any) -> None:
        if kwargs.get("retryable") is None:
            kwargs["retryable"] = operation in ("read", "write")
        context = dict(kwargs.pop("context", None) or {})
        context.setdefault("operation", operation)
        if path is not None:
            context.setdefault("path", path)
        super().__init__(message, context=context, **kwargs)
        self.operation = operation

    def user_message(self) -> str:
        return f"File system error during {self.operation}. Please check permissions and disk space."


class OperationTimeoutError(ClassifiedError):
    """Raised when an operation exceeds its time budget."""

    kind = ErrorKind.TIMEOUT
    default_retryable = True

    def __init__(self, message: str, *, operation: str, timeout_ms: int, **kwargs: Any) -> None:
        context = dict(kwargs.pop("context", None) or {})
        context.update(operation=operation, timeout_ms=timeout_ms)
        super().__init__(message, context=context, **kwargs)
        self.operation = operation
        self.timeout_ms = timeout_ms

    def user_message(self) -> str:
        return f"The {self.operation} did not finish within {self.timeout_ms // 1000}s."


class RateLimitError(ClassifiedError):
    kind = ErrorKind.RATE_LIMIT
    default_retryable = True

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("http_status", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after

    def user_message(self) -> str:
        if self.retry_after:
            return f"Rate limit exceeded. Please retry after {self.retry_after:g} seconds."
        return "Rate limit exceeded. Please retry later."


class ToolExecutionError(ClassifiedError):
    """Raised when an external tool fails or an unknown error escapes."""

    kind = ErrorKind.TOOL_EXECUTION

    def __init__(
        self, message: str, *, tool_name: str | None = None, step: str | None = None, **kwargs: Any
    ) -> None:
        context = dict(kwargs.pop("context", None) or {})
        if tool_name:
            context.setdefault("tool_name", tool_name)
        if step:
            context.setdefault("step", step)
        super().__init__(message, context=context, **kwargs)
        self.tool_name = tool_name
        self.step = step

    def user_message(self) -> str:
        if self.tool_name:
            return f"{self.tool_name} failed. Check the scanner output for details."
        return super().user_message()


def _looks_like_network(error: BaseException) -> bool:
    if isinstance(error, ConnectionError):
        return True
    message = str(error).lower()
    return any(sig in message for sig in _NETWORK_SIGNATURES)


def is_retryable_error(error: BaseException) -> bool:
    """Return True if a retry of the failed operation could succeed."""
    if isinstance(error, ClassifiedError):
        return error.retryable
    return _looks_like_network(error)


def wrap_error(
    error: BaseException,
    correlation_id: str | None = None,
    tool_name: str | None = None,
) -> ClassifiedError:
    """Return *error* as a ClassifiedError stamped with *correlation_id*.

    Classified errors keep their kind. Unclassified errors that look like a
    network failure become a retryable :class:`NetworkError`; anything else
    becomes a non-retryable :class:`ToolExecutionError`. The original is
    kept as cause either way.
    """
    if isinstance(error, ClassifiedError):
        if error.correlation_id is None:
            error.correlation_id = correlation_id
        return error
    context = {"original_type": type(error).__name__}
    if _looks_like_network(error):
        return NetworkError(
            str(error) or type(error).__name__,
            correlation_id=correlation_id,
            cause=error,
            context=context,
        )
    return ToolExecutionError(
        str(error) or type(error).__name__,
        tool_name=tool_name,
        correlation_id=correlation_id,
        cause=error,
        context=context,
    )


def classify_http_error(error: httpx.HTTPError, correlation_id: str | None = None) -> ClassifiedError:
    """Map an httpx failure to the taxonomy."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        url = error.request.url.path
        if status == 401:
            return AuthenticationError(
                "analysis service rejected the token",
                http_status=401,
                correlation_id=correlation_id,
                context={"url": url},
                cause=error,
            )
        if status == 429:
            retry_after = error.response.headers.get("Retry-After")
            return RateLimitError(
                "analysis service rate limit exceeded",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                correlation_id=correlation_id,
                context={"url": url},
                cause=error,
            )
        return RemoteServiceError(
            f"analysis service returned HTTP {status}",
            http_status=status,
            correlation_id=correlation_id,
            context={"url": url, "body": error.response.text[:500]},
            cause=error,
        )
    if isinstance(error, httpx.TransportError):
        return NetworkError(
            f"cannot reach analysis service: {type(error).__name__}",
            correlation_id=correlation_id,
            cause=error,
        )
    return wrap_error(error, correlation_id)
