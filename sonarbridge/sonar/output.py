"""Categorise scanner output and failed-task diagnostics."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field

from sonarbridge.exceptions import (
    AuthenticationError,
    ClassifiedError,
    ConfigurationError,
    NetworkError,
    RemoteServiceError,
    ToolExecutionError,
)


class FailureCategory(str, enum.Enum):
    SOURCES_NOT_FOUND = "sources_not_found"
    BINARY_PATH_MISSING = "binary_path_missing"
    MODULE_CONFIG_ERROR = "module_config_error"
    EXCLUSION_PATTERN_ERROR = "exclusion_pattern_error"
    LANGUAGE_NOT_DETECTED = "language_not_detected"
    AUTHENTICATION_FAILED = "authentication_failed"
    PERMISSION_DENIED = "permission_denied"
    SCANNER_NOT_FOUND = "scanner_not_found"
    SERVER_UNREACHABLE = "server_unreachable"
    OUT_OF_MEMORY = "out_of_memory"
    UNKNOWN = "unknown"


CONFIGURATION_CATEGORIES = frozenset(
    {
        FailureCategory.SOURCES_NOT_FOUND,
        FailureCategory.BINARY_PATH_MISSING,
        FailureCategory.MODULE_CONFIG_ERROR,
        FailureCategory.EXCLUSION_PATTERN_ERROR,
        FailureCategory.LANGUAGE_NOT_DETECTED,
        FailureCategory.SCANNER_NOT_FOUND,
    }
)


@dataclass(frozen=True)
class _Rule:
    category: FailureCategory
    pattern: re.Pattern[str]
    suggested_fix: str
    missing_parameters: tuple[str, ...] = ()


# Ordered: the first match wins.
RULES: list[_Rule] = [
    _Rule(
        FailureCategory.SOURCES_NOT_FOUND,
        re.compile(
            r"Unable to find source files|No sources found|sonar\.sources.*does not exist"
            r"|No source files found",
            re.I,
        ),
        "Configure sonar.sources with the correct source directory path",
        ("sonar.sources",),
    ),
    _Rule(
        FailureCategory.BINARY_PATH_MISSING,
        re.compile(
            r"Unable to find.*classes|sonar\.java\.binaries.*does not exist|No compiled classes found"
            r"|Your project contains .* but sonar\.java\.binaries|provide compiled classes",
            re.I,
        ),
        "Build the project first (mvn compile / gradle build) and set sonar.java.binaries",
        ("sonar.java.binaries",),
    ),
    _Rule(
        FailureCategory.MODULE_CONFIG_ERROR,
        re.compile(
            r"Module.*not found|Invalid module configuration|Unrecognized module"
            r"|Unable to load module|sonar\.modules.*invalid",
            re.I,
        ),
        "Review the multi-module configuration",
        ("sonar.modules",),
    ),
    _Rule(
        FailureCategory.EXCLUSION_PATTERN_ERROR,
        re.compile(r"Invalid exclusion pattern|Exclusion.*error|Pattern.*is not valid", re.I),
        "Fix exclusion pattern syntax (use **/*.ext format)",
        ("sonar.exclusions",),
    ),
    _Rule(
        FailureCategory.LANGUAGE_NOT_DETECTED,
        re.compile(
            r"No files nor directories matching|Unable to determine language"
            r"|No analyzable files|Language not supported",
            re.I,
        ),
        "Verify source files exist and configure language-specific parameters",
        ("sonar.sources",),
    ),
    _Rule(
        FailureCategory.AUTHENTICATION_FAILED,
        re.compile(r"\bHTTP 401\b|Not authorized\. Please check|\bUnauthorized\b", re.I),
        "Check SONAR_TOKEN; the analysis service rejected it",
    ),
    _Rule(
        FailureCategory.PERMISSION_DENIED,
        re.compile(r"\b403\b|Permission denied|Insufficient privileges|Access denied|Not authorized", re.I),
        "Check token permissions (Execute Analysis) on the project",
    ),
    _Rule(
        FailureCategory.SCANNER_NOT_FOUND,
        re.compile(r"sonar-scanner.*not found|command not found.*sonar|Cannot find sonar-scanner", re.I),
        "Install the SonarScanner CLI and put it on PATH",
    ),
    _Rule(
        FailureCategory.SERVER_UNREACHABLE,
        re.compile(
            r"Fail to get bootstrap index|Connection refused|UnknownHostException"
            r"|SocketTimeoutException|Failed to connect to|Fail to request",
            re.I,
        ),
        "Check that the analysis service is running and SONAR_URL is correct",
    ),
    _Rule(
        FailureCategory.OUT_OF_MEMORY,
        re.compile(r"OutOfMemoryError|Java heap space|GC overhead limit exceeded", re.I),
        "Give the scanner more memory, e.g. SONAR_SCANNER_OPTS=-Xmx2g",
    ),
]

_UNKNOWN_FIX = "Review the scanner output and the analysis service logs"
_PATH_RE = re.compile(r"['\"]((?:/|[A-Za-z]:\\)[^'\"]+)['\"]")


@dataclass(frozen=True)
class ScanFailure:
    category: FailureCategory
    raw_message: str
    suggested_fix: str
    missing_parameters: tuple[str, ...] = ()
    affected_paths: tuple[str, ...] = field(default=())

    @property
    def recoverable(self) -> bool:
        """True if adjusting scanner properties could fix the failure."""
        return self.category in CONFIGURATION_CATEGORIES and (
            self.category is not FailureCategory.SCANNER_NOT_FOUND
        )

    def context(self) -> dict[str, object]:
        ctx: dict[str, object] = {
            "category": self.category.value,
            "suggested_fix": self.suggested_fix,
        }
        if self.missing_parameters:
            ctx["missing_parameters"] = list(self.missing_parameters)
        if self.affected_paths:
            ctx["affected_paths"] = list(self.affected_paths)
        return ctx


def parse_failure(text: str) -> ScanFailure:
    paths = tuple(dict.fromkeys(_PATH_RE.findall(text)))
    for rule in RULES:
        if rule.pattern.search(text):
            return ScanFailure(
                category=rule.category,
                raw_message=text,
                suggested_fix=rule.suggested_fix,
                missing_parameters=rule.missing_parameters,
                affected_paths=paths,
            )
    return ScanFailure(FailureCategory.UNKNOWN, text, _UNKNOWN_FIX, affected_paths=paths)


def _tail(text: str, lines: int = 20) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


def failure_to_error(
    failure: ScanFailure,
    *,
    source: str,
    correlation_id: str | None = None,
    tool_name: str = "sonar-scanner",
) -> ClassifiedError:
    """Classify a scanner (``source="scanner"``) or task (``source="task"``) failure.

    Permission failures are retryable: a freshly created project can reject
    analyses until its permissions propagate.
    """
    ctx = failure.context()
    ctx["source"] = source
    ctx["output_tail"] = _tail(failure.raw_message)
    category = failure.category

    if category in CONFIGURATION_CATEGORIES:
        return ConfigurationError(
            f"{source} failed: {category.value}", correlation_id=correlation_id, context=ctx
        )
    if category is FailureCategory.AUTHENTICATION_FAILED:
        return AuthenticationError(
            f"{source} failed: token rejected", http_status=401, correlation_id=correlation_id, context=ctx
        )
    if category is FailureCategory.PERMISSION_DENIED:
        return RemoteServiceError(
            f"{source} failed: permission denied",
            http_status=403,
            retryable=True,
            correlation_id=correlation_id,
            context=ctx,
        )
    if category is FailureCategory.SERVER_UNREACHABLE:
        return NetworkError(
            f"{source} failed: analysis service unreachable", correlation_id=correlation_id, context=ctx
        )
    if source == "task":
        return RemoteServiceError(
            f"analysis task failed: {failure.raw_message[:200]}",
            correlation_id=correlation_id,
            context=ctx,
        )
    return ToolExecutionError(
        f"{tool_name} failed: {category.value}",
        tool_name=tool_name,
        step="scan",
        correlation_id=correlation_id,
        context=ctx,
    )
