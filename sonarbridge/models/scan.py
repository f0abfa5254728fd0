"""Scan requests, submitted invocations and analysis tasks."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from sonarbridge.exceptions import ValidationError
from sonarbridge.models.params import InvocationParameterSet
from sonarbridge.models.stack import StackKind, TechStack

Severity = Literal["INFO", "MINOR", "MAJOR", "CRITICAL", "BLOCKER"]
IssueType = Literal["BUG", "VULNERABILITY", "CODE_SMELL", "SECURITY_HOTSPOT"]

_PROJECT_KEY_RE = re.compile(r"^[A-Za-z0-9_.:-]+$")
_PROPERTY_KEY_RE = re.compile(r"^sonar\.[A-Za-z0-9_.\-]+$")


def default_project_key(project_path: Path) -> str:
    """Derive a service project key from the directory name."""
    key = re.sub(r"[^A-Za-z0-9_.:-]+", "-", project_path.name).strip("-")
    return key or "project"


class ScanRequest(BaseModel):
    """A request to analyse one project directory."""

    model_config = ConfigDict(frozen=True)

    project_path: Path
    project_key: str | None = None
    detected_stack: tuple[StackKind, ...] = ()
    severity_filter: tuple[Severity, ...] = ()
    type_filter: tuple[IssueType, ...] = ()
    overrides: dict[str, str] = Field(default_factory=dict)
    correlation_id: str | None = None

    @field_validator("severity_filter", "type_filter", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [part for part in v.split(",") if part.strip()]
        if isinstance(v, (list, tuple)):
            return tuple(s.strip().upper() if isinstance(s, str) else s for s in v)
        return v

    @field_validator("project_key")
    @classmethod
    def _check_key(cls, v: str | None) -> str | None:
        if v is not None and not _PROJECT_KEY_RE.match(v):
            raise ValueError("project key may only contain letters, digits and _ . : -")
        return v

    @field_validator("overrides")
    @classmethod
    def _check_overrides(cls, v: dict[str, str]) -> dict[str, str]:
        for key in v:
            if not _PROPERTY_KEY_RE.match(key):
                raise ValueError(f"override {key!r} is not a sonar.* property")
        for reserved in ("sonar.token", "sonar.login", "sonar.password"):
            if reserved in v:
                raise ValueError(f"{reserved} must come from the engine settings")
        return v

    @classmethod
    def create(cls, **data: Any) -> ScanRequest:
        """Validate *data*, raising the engine's ValidationError on bad input."""
        try:
            return cls(**data)
        except pydantic.ValidationError as exc:
            raise ValidationError(
                "invalid scan request",
                context={
                    "errors": [
                        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                        for err in exc.errors()
                    ]
                },
                cause=exc,
            ) from exc


class ScannerKind(str, enum.Enum):
    CLI = "sonar-scanner"
    MAVEN = "maven"
    GRADLE = "gradle"
    DOTNET = "dotnet"


class TaskStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.SUCCESS, TaskStatus.FAILED)

    @classmethod
    def from_service(cls, raw: str) -> TaskStatus:
        if raw == "CANCELED":
            return cls.FAILED
        return cls(raw)


@dataclass
class Issue:
    key: str
    rule: str
    severity: str
    type: str
    component: str
    message: str
    line: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Issue:
        return cls(
            key=data["key"],
            rule=data.get("rule", ""),
            severity=data.get("severity", ""),
            type=data.get("type", ""),
            component=data.get("component", ""),
            message=data.get("message", ""),
            line=data.get("line"),
        )


@dataclass
class AnalysisTask:
    """One remote analysis job, as seen by the poller."""

    task_id: str
    status: TaskStatus = TaskStatus.PENDING
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    analysis_id: str | None = None
    issues: list[Issue] = field(default_factory=list)
    invocation: ScanInvocation | None = None
    progress: dict[str, Any] | None = None


@dataclass(frozen=True)
class ScanInvocation:
    """Everything the scanner runner needs for one submission."""

    project_path: Path
    project_key: str
    scanner: ScannerKind
    parameters: InvocationParameterSet
    stacks: tuple[TechStack, ...] = ()
