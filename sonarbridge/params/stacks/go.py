"""Go modules."""

from __future__ import annotations

import re
from pathlib import Path

from sonarbridge.models.params import ROOT, InvocationParameterSet
from sonarbridge.models.stack import StackKind, TechStack
from sonarbridge.params.probes import first_existing
from sonarbridge.params.registry import BaseStackBuilder, register_builder

_MODULE_RE = re.compile(r"^module\s+(\S+)", re.MULTILINE)
_GO_VERSION_RE = re.compile(r"^go\s+(\d+\.\d+)", re.MULTILINE)


@register_builder
class GoBuilder(BaseStackBuilder):
    kind = StackKind.GO

    def detect(self, root: Path) -> TechStack | None:
        go_mod = root / "go.mod"
        if not go_mod.is_file():
            return None
        try:
            content = go_mod.read_text(encoding="utf-8")
        except OSError:
            content = ""
        module = _MODULE_RE.search(content)
        version = _GO_VERSION_RE.search(content)
        return self.stack(
            "go.mod",
            module=module.group(1) if module else None,
            go_version=version.group(1) if version else None,
        )

    async def build(self, root: Path, stack: TechStack) -> InvocationParameterSet:
        params = InvocationParameterSet()
        params.add("sonar.sources", ROOT)
        params.add("sonar.exclusions", "**/*_test.go", "**/vendor/**")
        params.add("sonar.tests", ROOT)
        params.add("sonar.test.inclusions", "**/*_test.go")
        coverage = first_existing(root, ["coverage.out"])
        if coverage.ok:
            params.add("sonar.go.coverage.reportPaths", coverage.value)
        return params
