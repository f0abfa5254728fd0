"""Python projects."""

from __future__ import annotations

from pathlib import Path

import structlog

from sonarbridge.models.params import ROOT, InvocationParameterSet
from sonarbridge.models.stack import StackKind, TechStack
from sonarbridge.params.probes import first_existing, source_dirs
from sonarbridge.params.registry import BaseStackBuilder, register_builder
from sonarbridge.params.versions import detect_python_version

log = structlog.get_logger("sonarbridge.params")

# (marker, packaging tool), highest priority first
MARKERS: list[tuple[str, str]] = [
    ("pyproject.toml", "pyproject"),
    ("Pipfile", "pipenv"),
    ("setup.py", "setuptools"),
    ("setup.cfg", "setuptools"),
    ("requirements.txt", "pip"),
]
SOURCE_DIRS = ["src", "app", "lib"]
TEST_DIRS = ["tests", "test"]
EXCLUSIONS = [
    "**/__pycache__/**",
    "**/venv/**",
    "**/env/**",
    "**/.venv/**",
    "**/site-packages/**",
]
TEST_GLOBS = ["**/test_*.py", "**/*_test.py"]


@register_builder
class PythonBuilder(BaseStackBuilder):
    kind = StackKind.PYTHON

    def detect(self, root: Path) -> TechStack | None:
        for marker, tool in MARKERS:
            if (root / marker).is_file():
                if marker == "pyproject.toml" and "[tool.poetry]" in _read(root / marker):
                    tool = "poetry"
                return self.stack(marker, packaging=tool)
        return None

    async def build(self, root: Path, stack: TechStack) -> InvocationParameterSet:
        params = InvocationParameterSet()
        found = source_dirs(root, SOURCE_DIRS, (".py",), max_depth=2)
        params.add("sonar.sources", *(found or [ROOT]))

        tests = first_existing(root, TEST_DIRS, kind="dir")
        params.add("sonar.exclusions", *EXCLUSIONS)
        if tests.ok:
            params.add("sonar.tests", tests.value)
            params.add("sonar.test.inclusions", *TEST_GLOBS)
            if not found:
                # root sources would otherwise index the test dir a second time
                params.add("sonar.exclusions", f"{tests.value}/**")
        else:
            params.add("sonar.exclusions", *TEST_GLOBS)

        version = detect_python_version(root)
        if version.ok:
            params.set("sonar.python.version", version.value)
        else:
            log.info("params.python_version_unknown", reason=version.reason)

        coverage = first_existing(root, ["coverage.xml"])
        if coverage.ok:
            params.add("sonar.python.coverage.reportPaths", coverage.value)
        return params


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""
