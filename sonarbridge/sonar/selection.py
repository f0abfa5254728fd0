"""Pick the scanner flavour for a set of detected stacks."""

from __future__ import annotations

from collections.abc import Sequence

from sonarbridge.models.scan import ScannerKind
from sonarbridge.models.stack import StackKind, TechStack


def select_scanner(stacks: Sequence[TechStack], *, force_cli: bool = False) -> ScannerKind:
    """Build-tool plugins know the classpath better than we do, so prefer them.

    A .NET solution needs the MSBuild scanner. Everything else, or any mixed
    JVM + non-JVM tree, goes through the CLI scanner with our properties.
    """
    if force_cli:
        return ScannerKind.CLI
    kinds = {stack.kind for stack in stacks}
    if kinds == {StackKind.DOTNET}:
        return ScannerKind.DOTNET
    if kinds == {StackKind.JAVA_MAVEN}:
        return ScannerKind.MAVEN
    if kinds == {StackKind.JAVA_GRADLE}:
        return ScannerKind.GRADLE
    return ScannerKind.CLI
