"""C# / .NET solutions.

The .NET scanner discovers projects from the solution itself, so this builder
only contributes exclusions; sources and binaries come from MSBuild.
"""

from __future__ import annotations

from pathlib import Path

from sonarbridge.models.params import InvocationParameterSet
from sonarbridge.models.stack import StackKind, TechStack
from sonarbridge.params.registry import BaseStackBuilder, register_builder


@register_builder
class DotNetBuilder(BaseStackBuilder):
    kind = StackKind.DOTNET

    def detect(self, root: Path) -> TechStack | None:
        solutions = sorted(p.name for p in root.glob("*.sln"))
        projects = sorted(p.name for p in root.glob("*.csproj"))
        if not solutions and not projects:
            return None
        target = solutions[0] if solutions else projects[0]
        return self.stack(target, solution=solutions[0] if solutions else None, build_target=target)

    async def build(self, root: Path, stack: TechStack) -> InvocationParameterSet:
        params = InvocationParameterSet()
        params.add("sonar.exclusions", "**/bin/**", "**/obj/**")
        return params
