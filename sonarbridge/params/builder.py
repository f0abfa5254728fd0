"""Parameter builder — detect stacks and merge their scanner properties."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path

import structlog

import sonarbridge.params.stacks  # noqa: F401  (registers builders)
from sonarbridge.models.params import ROOT, InvocationParameterSet
from sonarbridge.models.stack import StackKind, TechStack
from sonarbridge.params.classpath import DEFAULT_CLASSPATH_TIMEOUT
from sonarbridge.params.registry import StackBuilder, create_builders

log = structlog.get_logger("sonarbridge.params")


class ParameterBuilder:
    """Turn a project tree into one merged :class:`InvocationParameterSet`.

    Detection is additive: a repo with ``pom.xml`` and ``package.json`` yields
    both the Maven and the JavaScript stack. Stacks merge in detection order,
    then explicit overrides replace whatever was detected.
    """

    def __init__(
        self,
        builders: Mapping[StackKind, StackBuilder] | None = None,
        *,
        classpath_timeout: float = DEFAULT_CLASSPATH_TIMEOUT,
    ) -> None:
        self._builders = dict(builders or create_builders(classpath_timeout=classpath_timeout))

    def detect(self, project_path: str | Path) -> list[TechStack]:
        root = Path(project_path).resolve()
        stacks: list[TechStack] = []
        for builder in self._builders.values():
            stack = builder.detect(root)
            if stack is not None:
                log.info("params.stack_detected", stack=stack.kind.value, marker=stack.marker)
                stacks.append(stack)
        return stacks

    def resolve(self, project_path: str | Path, kinds: Iterable[StackKind]) -> list[TechStack]:
        """Stacks for caller-declared *kinds*, enriched with detector hints where possible."""
        root = Path(project_path).resolve()
        stacks: list[TechStack] = []
        for kind in kinds:
            detected = self._builders[kind].detect(root)
            stacks.append(detected or TechStack(kind=kind, marker="declared"))
        return stacks

    async def build(
        self,
        project_path: str | Path,
        overrides: Mapping[str, str] | None = None,
        stacks: Iterable[TechStack] | None = None,
    ) -> InvocationParameterSet:
        """Build scanner properties for *project_path*.

        Never fails for an unrecognised tree: with no stack the result is just
        ``sonar.sources=.`` plus any overrides.
        """
        root = Path(project_path).resolve()
        stacks = list(stacks) if stacks is not None else self.detect(root)
        if not stacks:
            log.info("params.no_stack_detected", project=str(root))

        params = InvocationParameterSet()
        for stack in stacks:
            params.merge(await self._builders[stack.kind].build(root, stack))
        params.drop_redundant_root()
        if overrides:
            params.apply_overrides(overrides)
        if "sonar.sources" not in params:
            params.set("sonar.sources", ROOT)

        log.info(
            "params.built",
            project=str(root),
            stacks=[s.kind.value for s in stacks],
            keys=len(params),
            overrides=len(overrides or {}),
        )
        return params
