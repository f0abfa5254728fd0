"""JVM stacks: Maven, Gradle, and plain source trees."""

from __future__ import annotations

from pathlib import Path

import structlog

from sonarbridge.models.params import ROOT, InvocationParameterSet
from sonarbridge.models.stack import StackKind, TechStack
from sonarbridge.params.classpath import (
    gradle_command,
    resolve_gradle_classpath,
    resolve_maven_classpath,
)
from sonarbridge.params.probes import ProbeResult, existing_all, source_dirs
from sonarbridge.params.registry import BaseStackBuilder, register_builder
from sonarbridge.params.versions import detect_gradle_java_version, detect_maven_java_version

log = structlog.get_logger("sonarbridge.params")

JACOCO_REPORTS = [
    "target/site/jacoco/jacoco.xml",
    "target/jacoco-report/jacoco.xml",
    "target/jacoco/jacoco.xml",
    "build/reports/jacoco/test/jacocoTestReport.xml",
    "build/jacoco/test.xml",
]
GENERIC_SOURCE_DIRS = ["src/main/java", "src/java", "src", "java", "source", "sources"]
GENERIC_TEST_DIRS = ["src/test/java", "test/java", "tests/java", "src/tests/java", "test", "tests"]
GENERIC_BINARY_DIRS = ["target/classes", "build/classes/java/main", "out/production", "bin", "classes"]
DEFAULT_JAVA_VERSION = "8"

_JAVA = (".java",)


def _module_dirs(root: Path, rel: str) -> list[str]:
    """``rel`` at the root, else under each first-level module directory."""
    if (root / rel).is_dir():
        return [rel]
    return sorted(
        f"{child.name}/{rel}"
        for child in root.iterdir()
        if child.is_dir() and not child.name.startswith(".") and (child / rel).is_dir()
    )


class _BuildToolJavaBuilder(BaseStackBuilder):
    """Shared layout handling for Maven and Gradle projects."""

    main_binaries: str
    test_binaries: str
    exclusions: tuple[str, ...] = ()

    async def resolve_libraries(self, root: Path) -> ProbeResult:
        raise NotImplementedError

    def java_version(self, root: Path) -> ProbeResult:
        raise NotImplementedError

    async def build(self, root: Path, stack: TechStack) -> InvocationParameterSet:
        params = InvocationParameterSet()

        sources = _module_dirs(root, "src/main/java")
        if sources:
            params.add("sonar.sources", *sources)
        else:
            fallback = source_dirs(root, GENERIC_SOURCE_DIRS, _JAVA)
            params.add("sonar.sources", *(fallback or [ROOT]))

        tests = _module_dirs(root, "src/test/java")
        if tests:
            params.add("sonar.tests", *tests)

        binaries = _module_dirs(root, self.main_binaries)
        if binaries:
            params.add("sonar.java.binaries", *binaries)
        else:
            log.warning(
                "params.java_not_compiled",
                project=str(root),
                expected=self.main_binaries,
                stack=self.kind.value,
            )
        test_binaries = _module_dirs(root, self.test_binaries)
        if test_binaries:
            params.add("sonar.java.test.binaries", *test_binaries)

        libraries = await self.resolve_libraries(root)
        if libraries.ok:
            params.add("sonar.java.libraries", *libraries.value)
        else:
            log.info("params.libraries_skipped", stack=self.kind.value, reason=libraries.reason)

        reports = existing_all(root, JACOCO_REPORTS)
        if reports:
            params.add("sonar.coverage.jacoco.xmlReportPaths", *reports)

        params.add("sonar.exclusions", *self.exclusions)

        version = self.java_version(root)
        if version.ok:
            params.set("sonar.java.source", version.value)
        return params


@register_builder
class MavenBuilder(_BuildToolJavaBuilder):
    kind = StackKind.JAVA_MAVEN
    main_binaries = "target/classes"
    test_binaries = "target/test-classes"
    exclusions = ("**/target/**", "**/generated-sources/**")

    def detect(self, root: Path) -> TechStack | None:
        if not (root / "pom.xml").is_file():
            return None
        return self.stack("pom.xml", build_tool="maven", wrapper=(root / "mvnw").is_file())

    async def resolve_libraries(self, root: Path) -> ProbeResult:
        return await resolve_maven_classpath(root, self.classpath_timeout)

    def java_version(self, root: Path) -> ProbeResult:
        return detect_maven_java_version(root)


@register_builder
class GradleBuilder(_BuildToolJavaBuilder):
    kind = StackKind.JAVA_GRADLE
    main_binaries = "build/classes/java/main"
    test_binaries = "build/classes/java/test"
    exclusions = ("**/build/**", "**/.gradle/**")

    def detect(self, root: Path) -> TechStack | None:
        for name in ("build.gradle", "build.gradle.kts"):
            if (root / name).is_file():
                return self.stack(
                    name,
                    build_tool="gradle",
                    kotlin_dsl=name.endswith(".kts"),
                    command=gradle_command(root)[0],
                )
        return None

    async def resolve_libraries(self, root: Path) -> ProbeResult:
        return await resolve_gradle_classpath(root, self.classpath_timeout)

    def java_version(self, root: Path) -> ProbeResult:
        return detect_gradle_java_version(root)


@register_builder
class GenericJavaBuilder(BaseStackBuilder):
    """Java sources with no recognised build tool."""

    kind = StackKind.JAVA_GENERIC

    def detect(self, root: Path) -> TechStack | None:
        if (root / "pom.xml").exists() or any(
            (root / name).exists() for name in ("build.gradle", "build.gradle.kts")
        ):
            return None
        found = source_dirs(root, GENERIC_SOURCE_DIRS, _JAVA)
        if found:
            return self.stack(found[0], build_tool=None)
        return None

    async def build(self, root: Path, stack: TechStack) -> InvocationParameterSet:
        params = InvocationParameterSet()
        sources = source_dirs(root, GENERIC_SOURCE_DIRS, _JAVA)
        tests = [d for d in source_dirs(root, GENERIC_TEST_DIRS, _JAVA) if d not in sources]
        # "src" also matches trees like src/main/java + src/test/java
        sources = _drop_nested(sources)
        params.add("sonar.sources", *(sources or [ROOT]))
        if tests:
            params.add("sonar.tests", *_drop_nested(tests))
        binaries = existing_all(root, GENERIC_BINARY_DIRS)
        if binaries:
            params.add("sonar.java.binaries", *binaries)
        params.set("sonar.java.source", DEFAULT_JAVA_VERSION)
        return params


def _drop_nested(dirs: list[str]) -> list[str]:
    """Keep the most specific entries: drop any dir that is a parent of another."""
    return [d for d in dirs if not any(o != d and o.startswith(d + "/") for o in dirs)]
