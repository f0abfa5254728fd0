"""Stack builder registry — one builder per StackKind."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, TypeVar, runtime_checkable

from sonarbridge.models.params import InvocationParameterSet
from sonarbridge.models.stack import StackKind, TechStack
from sonarbridge.params.classpath import DEFAULT_CLASSPATH_TIMEOUT


@runtime_checkable
class StackBuilder(Protocol):
    """Interface that every stack builder must satisfy."""

    kind: StackKind

    def detect(self, root: Path) -> TechStack | None: ...

    async def build(self, root: Path, stack: TechStack) -> InvocationParameterSet: ...


class BaseStackBuilder:
    kind: StackKind

    def __init__(self, *, classpath_timeout: float = DEFAULT_CLASSPATH_TIMEOUT) -> None:
        self.classpath_timeout = classpath_timeout

    def stack(self, marker: str, **hints: object) -> TechStack:
        return TechStack(kind=self.kind, marker=marker, hints=dict(hints))


B = TypeVar("B", bound=type[BaseStackBuilder])

BUILDER_REGISTRY: dict[StackKind, type[BaseStackBuilder]] = {}


def register_builder(cls: B) -> B:
    """Class decorator: register a builder under its ``kind``."""
    BUILDER_REGISTRY[cls.kind] = cls
    return cls


def create_builders(
    *, classpath_timeout: float = DEFAULT_CLASSPATH_TIMEOUT
) -> dict[StackKind, StackBuilder]:
    """Instantiate every registered builder, in StackKind declaration order."""
    missing = [kind for kind in StackKind if kind not in BUILDER_REGISTRY]
    if missing:
        raise RuntimeError(f"no stack builder registered for {', '.join(k.value for k in missing)}")
    return {
        kind: BUILDER_REGISTRY[kind](classpath_timeout=classpath_timeout) for kind in StackKind
    }
