"""Technology stacks recognised in a project tree."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class StackKind(str, enum.Enum):
    JAVA_MAVEN = "java-maven"
    JAVA_GRADLE = "java-gradle"
    JAVA_GENERIC = "java"
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    GO = "go"
    DOTNET = "dotnet"
    CFAMILY = "cfamily"

    @property
    def is_jvm(self) -> bool:
        return self in (StackKind.JAVA_MAVEN, StackKind.JAVA_GRADLE, StackKind.JAVA_GENERIC)


@dataclass(frozen=True)
class TechStack:
    """A detected stack plus whatever the detector learned on the way."""

    kind: StackKind
    marker: str  # file that triggered detection
    hints: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def hint(self, key: str, default: Any = None) -> Any:
        return self.hints.get(key, default)
