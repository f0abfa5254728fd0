"""Scanner invocation parameters."""

from __future__ import annotations

import enum
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

ROOT = "."

# Comma-separated multi-value properties; merged entry-wise across stacks.
LIST_KEYS = frozenset(
    {
        "sonar.sources",
        "sonar.tests",
        "sonar.exclusions",
        "sonar.test.inclusions",
        "sonar.test.exclusions",
        "sonar.java.binaries",
        "sonar.java.test.binaries",
        "sonar.java.libraries",
        "sonar.coverage.jacoco.xmlReportPaths",
        "sonar.javascript.lcov.reportPaths",
        "sonar.python.coverage.reportPaths",
        "sonar.go.coverage.reportPaths",
        "sonar.python.version",
    }
)

# Keys where a concrete directory makes the project root redundant.
ROOTED_KEYS = ("sonar.sources", "sonar.tests")


class ParamOrigin(str, enum.Enum):
    AUTO = "auto"
    OVERRIDE = "override"


@dataclass(frozen=True)
class ParamValue:
    value: str
    origin: ParamOrigin = ParamOrigin.AUTO


def split_list(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class InvocationParameterSet:
    """Ordered scanner properties; each key appears once.

    Mutable while it is being assembled, read-only after :meth:`freeze`.
    """

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._items: dict[str, ParamValue] = {}
        self._frozen = False
        for key, value in (values or {}).items():
            self.set(key, value)

    # ── mutation ──────────────────────────────────────────────────────────

    def set(self, key: str, value: str, origin: ParamOrigin = ParamOrigin.AUTO) -> None:
        self._check_mutable()
        self._items[key] = ParamValue(str(value), origin)

    def add(self, key: str, *values: str) -> None:
        """Append entries to a list-valued key, skipping duplicates."""
        self._check_mutable()
        current = split_list(self._items[key].value) if key in self._items else []
        for value in values:
            for entry in split_list(value):
                if entry not in current:
                    current.append(entry)
        if current:
            origin = self._items[key].origin if key in self._items else ParamOrigin.AUTO
            self._items[key] = ParamValue(",".join(current), origin)

    def discard(self, key: str) -> None:
        self._check_mutable()
        self._items.pop(key, None)

    def merge(self, other: InvocationParameterSet) -> None:
        """Fold *other* in: list keys union, scalar keys keep the first value."""
        for key, item in other._items.items():
            if key in LIST_KEYS:
                self.add(key, item.value)
            elif key not in self._items:
                self.set(key, item.value, item.origin)

    def apply_overrides(self, overrides: Mapping[str, str]) -> None:
        for key, value in overrides.items():
            self.set(key, value, ParamOrigin.OVERRIDE)

    def drop_redundant_root(self) -> None:
        """Remove ``.`` from sources/tests when concrete directories are listed."""
        for key in ROOTED_KEYS:
            item = self._items.get(key)
            if item is None or item.origin is ParamOrigin.OVERRIDE:
                continue
            entries = split_list(item.value)
            if ROOT in entries and len(entries) > 1:
                entries = [e for e in entries if e != ROOT]
                self._items[key] = ParamValue(",".join(entries), item.origin)

    def freeze(self) -> InvocationParameterSet:
        self._frozen = True
        return self

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("parameter set is frozen")

    # ── access ────────────────────────────────────────────────────────────

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, key: str, default: str | None = None) -> str | None:
        item = self._items.get(key)
        return item.value if item else default

    def get_list(self, key: str) -> list[str]:
        value = self.get(key)
        return split_list(value) if value else []

    def origin(self, key: str) -> ParamOrigin | None:
        item = self._items.get(key)
        return item.origin if item else None

    def keys(self) -> list[str]:
        return list(self._items)

    def as_dict(self) -> dict[str, str]:
        return {key: item.value for key, item in self._items.items()}

    def to_args(self) -> list[str]:
        """Render as ``-Dkey=value`` command-line arguments."""
        return [f"-D{key}={item.value}" for key, item in self._items.items()]

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"InvocationParameterSet({self.as_dict()!r})"
