"""Best-effort filesystem probes with explicit outcomes."""

from __future__ import annotations

import enum
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Directories never worth descending into when looking for source files.
SKIP_DIRS = frozenset(
    {
        "node_modules",
        "__pycache__",
        "venv",
        "env",
        ".venv",
        "site-packages",
        "target",
        "build",
        "dist",
        "vendor",
    }
)


class ProbeStatus(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class ProbeResult:
    status: ProbeStatus
    value: Any = None
    reason: str = ""

    @classmethod
    def found(cls, value: Any, reason: str = "") -> ProbeResult:
        return cls(ProbeStatus.FOUND, value, reason)

    @classmethod
    def missing(cls, reason: str) -> ProbeResult:
        return cls(ProbeStatus.NOT_FOUND, None, reason)

    @classmethod
    def failed(cls, reason: str) -> ProbeResult:
        return cls(ProbeStatus.FAILED, None, reason)

    @property
    def ok(self) -> bool:
        return self.status is ProbeStatus.FOUND


def first_existing(root: Path, candidates: Iterable[str], *, kind: str = "file") -> ProbeResult:
    """Return the first candidate (relative to *root*) that exists."""
    tried = []
    for rel in candidates:
        path = root / rel
        if (path.is_dir() if kind == "dir" else path.is_file()):
            return ProbeResult.found(rel)
        tried.append(rel)
    return ProbeResult.missing(f"none of {', '.join(tried)} exist")


def existing_all(root: Path, candidates: Iterable[str]) -> list[str]:
    return [rel for rel in candidates if (root / rel).exists()]


def contains_files(directory: Path, suffixes: tuple[str, ...], max_depth: int = 3) -> bool:
    """True if *directory* holds a file ending in one of *suffixes* within *max_depth* levels."""
    if not directory.is_dir():
        return False
    base_depth = len(directory.parts)
    for dirpath, dirnames, filenames in os.walk(directory):
        depth = len(Path(dirpath).parts) - base_depth
        dirnames[:] = [
            d for d in dirnames if not d.startswith(".") and d not in SKIP_DIRS
        ]
        if depth >= max_depth:
            dirnames[:] = []
        if any(name.endswith(suffixes) for name in filenames):
            return True
    return False


def source_dirs(
    root: Path, candidates: Iterable[str], suffixes: tuple[str, ...], max_depth: int = 3
) -> list[str]:
    """Candidates that exist and actually contain matching source files."""
    return [rel for rel in candidates if contains_files(root / rel, suffixes, max_depth)]
