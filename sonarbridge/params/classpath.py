"""Compile-classpath resolution for JVM projects.

Both resolvers run the project's own build tool. Resolution is best effort:
any failure comes back as a FAILED probe and the caller omits
``sonar.java.libraries``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import structlog

from sonarbridge.exceptions import ClassifiedError
from sonarbridge.params.probes import ProbeResult
from sonarbridge.process import run_command

log = structlog.get_logger("sonarbridge.params")

DEFAULT_CLASSPATH_TIMEOUT = 60.0  # seconds
MAX_GRADLE_JARS = 500

_MAVEN_NOISE_PREFIXES = ("Downloading from ", "Downloaded from ", "Progress ")
_MAVEN_NOISE_MARKERS = ("[INFO]", "[WARNING]", "[ERROR]", "://", "repo.maven.apache.org", "central:")
_TRANSFER_RATE_RE = re.compile(r"\d+(?:\.\d+)?\s*[kM]B(?:/s)?\b")

# "+--- group:artifact:1.0", "\--- group:artifact:1.0 -> 1.2 (*)", "group:artifact -> 1.2"
_GRADLE_DEP_RE = re.compile(
    r"[+\\]---\s+([\w.\-]+):([\w.\-]+)(?::([\w.\-+]+))?(?:\s+->\s+([\w.\-+]+))?"
)


def filter_maven_classpath(output: str) -> list[str]:
    """Extract jar paths from ``mvn dependency:build-classpath`` output."""
    jars: list[str] = []
    for raw in output.splitlines():
        line = raw.strip()
        if not line or line.startswith(_MAVEN_NOISE_PREFIXES):
            continue
        if any(marker in line for marker in _MAVEN_NOISE_MARKERS):
            continue
        if _TRANSFER_RATE_RE.search(line) and ".jar" not in line:
            continue
        if "/" not in line and "\\" not in line:
            continue
        for entry in line.split(os.pathsep):
            entry = entry.strip()
            if entry.endswith(".jar") and entry not in jars:
                jars.append(entry)
    return jars


def parse_gradle_dependencies(output: str) -> list[tuple[str, str, str]]:
    """Parse ``gradle dependencies`` tree output into (group, artifact, version)."""
    coords: list[tuple[str, str, str]] = []
    seen: set[tuple[str, str, str]] = set()
    for line in output.splitlines():
        m = _GRADLE_DEP_RE.search(line)
        if not m:
            continue
        group, artifact, declared, resolved = m.groups()
        version = resolved or declared
        if not version:
            continue
        coord = (group, artifact, version)
        if coord not in seen:
            seen.add(coord)
            coords.append(coord)
    return coords


def gradle_cache_root() -> Path:
    home = os.environ.get("GRADLE_USER_HOME")
    base = Path(home) if home else Path.home() / ".gradle"
    return base / "caches" / "modules-2" / "files-2.1"


def locate_gradle_jars(
    coords: list[tuple[str, str, str]], cache_root: Path, limit: int = MAX_GRADLE_JARS
) -> list[str]:
    """Find cached jars for each coordinate.

    The cache layout is ``<group>/<artifact>/<version>/<sha1>/<artifact>-<version>.jar``.
    """
    jars: list[str] = []
    for group, artifact, version in coords:
        version_dir = cache_root / group / artifact / version
        if not version_dir.is_dir():
            continue
        for jar in sorted(version_dir.glob(f"*/{artifact}-{version}.jar")):
            jars.append(str(jar))
            break
        if len(jars) >= limit:
            break
    return jars


def gradle_command(root: Path) -> list[str]:
    wrapper = root / "gradlew"
    if wrapper.is_file() and os.access(wrapper, os.X_OK):
        return [str(wrapper)]
    if os.name == "nt" and (root / "gradlew.bat").is_file():
        return [str(root / "gradlew.bat")]
    return ["gradle"]


async def resolve_maven_classpath(
    root: Path, timeout: float = DEFAULT_CLASSPATH_TIMEOUT
) -> ProbeResult:
    cmd = ["mvn", "-B", "dependency:build-classpath", "-DincludeScope=compile"]
    try:
        result = await run_command(cmd, cwd=root, timeout=timeout, step="classpath")
    except ClassifiedError as exc:
        return ProbeResult.failed(exc.message)
    if not result.ok:
        return ProbeResult.failed(f"mvn exited with {result.returncode}")
    jars = filter_maven_classpath(result.stdout)
    if not jars:
        return ProbeResult.missing("no compile-scope jars reported")
    return ProbeResult.found(jars, f"{len(jars)} jars from maven")


async def resolve_gradle_classpath(
    root: Path, timeout: float = DEFAULT_CLASSPATH_TIMEOUT
) -> ProbeResult:
    cmd = [*gradle_command(root), "dependencies", "--configuration", "compileClasspath", "-q"]
    try:
        result = await run_command(cmd, cwd=root, timeout=timeout, step="classpath")
    except ClassifiedError as exc:
        return ProbeResult.failed(exc.message)
    if not result.ok:
        return ProbeResult.failed(f"{Path(cmd[0]).name} exited with {result.returncode}")
    coords = parse_gradle_dependencies(result.stdout)
    if not coords:
        return ProbeResult.missing("no compileClasspath dependencies")
    jars = locate_gradle_jars(coords, gradle_cache_root())
    if not jars:
        return ProbeResult.missing(f"{len(coords)} dependencies but none in the gradle cache")
    return ProbeResult.found(jars, f"{len(jars)} jars from gradle cache")
