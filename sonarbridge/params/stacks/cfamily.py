"""C / C++ projects."""

from __future__ import annotations

from pathlib import Path

import structlog

from sonarbridge.models.params import ROOT, InvocationParameterSet
from sonarbridge.models.stack import StackKind, TechStack
from sonarbridge.params.probes import existing_all, first_existing
from sonarbridge.params.registry import BaseStackBuilder, register_builder

log = structlog.get_logger("sonarbridge.params")

# (marker, build system), highest priority first
DETECTION_RULES: list[tuple[str, str]] = [
    ("compile_commands.json", "compilation-database"),
    ("CMakeLists.txt", "cmake"),
    ("meson.build", "meson"),
]
COMPILE_COMMANDS = ["compile_commands.json", "build/compile_commands.json"]
SOURCE_DIRS = ["src", "source", "include", "inc"]
EXCLUSIONS = [
    "build/**",
    "Build/**",
    "cmake-build-*/**",
    "third_party/**",
    "thirdparty/**",
    "vendor/**",
    "external/**",
    ".git/**",
    "node_modules/**",
]


@register_builder
class CFamilyBuilder(BaseStackBuilder):
    kind = StackKind.CFAMILY

    def detect(self, root: Path) -> TechStack | None:
        for marker, system in DETECTION_RULES:
            if (root / marker).is_file():
                return self.stack(marker, build_system=system)
        return None

    async def build(self, root: Path, stack: TechStack) -> InvocationParameterSet:
        params = InvocationParameterSet()
        db = first_existing(root, COMPILE_COMMANDS)
        if db.ok:
            params.set("sonar.cfamily.compile-commands", db.value)
        else:
            log.warning(
                "params.compile_commands_missing",
                project=str(root),
                hint="configure with -DCMAKE_EXPORT_COMPILE_COMMANDS=ON",
            )
        params.add("sonar.sources", *(existing_all(root, SOURCE_DIRS) or [ROOT]))
        params.add("sonar.exclusions", *EXCLUSIONS)
        params.set("sonar.c.file.suffixes", ".c,.h")
        params.set("sonar.cpp.file.suffixes", ".cc,.cpp,.cxx,.c++,.hh,.hpp,.hxx,.h++,.ipp")
        return params
