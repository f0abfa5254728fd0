"""Language-version detection from build descriptors."""

from __future__ import annotations

import re
import sys
import xml.etree.ElementTree as ET
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from sonarbridge.params.probes import ProbeResult

_NS = "{http://maven.apache.org/POM/4.0.0}"

_LOWER_BOUND_RE = re.compile(r"(?:>=|~=|==|\^|~|>)\s*(\d+)\.(\d+)")
_UPPER_BOUND_RE = re.compile(r"<(=?)\s*(\d+)\.(\d+)")
_STRICT_LOWER_RE = re.compile(r"(?<![<>=~!])>\s*(\d+)\.(\d+)")
_PYTHON_VERSION_FILE_RE = re.compile(r"^\s*(\d+\.\d+)", re.MULTILINE)

_MAVEN_VERSION_PROPS = (
    "maven.compiler.release",
    "maven.compiler.source",
    "maven.compiler.target",
    "java.version",
)
_GRADLE_VERSION_RES = (
    re.compile(r"languageVersion\s*(?:=|\.set\()\s*JavaLanguageVersion\.of\(\s*(\d+)\s*\)"),
    re.compile(r"(?:sourceCompatibility|targetCompatibility)\s*=?\s*JavaVersion\.VERSION_(\d+(?:_\d+)?)"),
    re.compile(r"(?:sourceCompatibility|targetCompatibility)\s*=?\s*['\"]?(\d+(?:\.\d+)?)['\"]?"),
)


def expand_requires_python(specifier: str) -> list[str]:
    """Turn a ``requires-python`` range into the minor versions it admits.

    ``>=3.8,<3.12`` and ``>=3.8,<=3.11`` both give ``3.8 .. 3.11``; a lone
    lower bound gives only that version. Python 2 versions are never listed.
    """
    lower = _LOWER_BOUND_RE.search(specifier)
    if not lower:
        return []
    major, minor = int(lower.group(1)), int(lower.group(2))
    if _STRICT_LOWER_RE.search(specifier):
        minor += 1
    if major < 3:
        return []
    upper = _UPPER_BOUND_RE.search(specifier)
    # a bound in the next major (<4.0) says nothing about which minors exist
    if upper and int(upper.group(2)) == major:
        stop = int(upper.group(3)) + (1 if upper.group(1) else 0)
    else:
        stop = minor + 1
    return [f"{major}.{m}" for m in range(minor, max(stop, minor + 1))]


def detect_python_version(root: Path) -> ProbeResult:
    """pyproject ``requires-python`` first, then ``.python-version``."""
    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            return ProbeResult.failed(f"pyproject.toml unreadable: {exc}")
        specifier = data.get("project", {}).get("requires-python")
        if specifier is None:
            specifier = data.get("tool", {}).get("poetry", {}).get("dependencies", {}).get("python")
        if isinstance(specifier, str):
            versions = expand_requires_python(specifier)
            if versions:
                return ProbeResult.found(",".join(versions), f"requires-python {specifier}")

    marker = root / ".python-version"
    if marker.is_file():
        try:
            m = _PYTHON_VERSION_FILE_RE.search(marker.read_text(encoding="utf-8"))
        except OSError as exc:
            return ProbeResult.failed(f".python-version unreadable: {exc}")
        if m:
            return ProbeResult.found(m.group(1), ".python-version")

    return ProbeResult.missing("no requires-python or .python-version")


def _normalize_java(raw: str) -> str:
    raw = raw.strip().replace("_", ".")
    # 1.8 → 8
    if raw.startswith("1.") and raw[2:].isdigit():
        return raw[2:]
    return raw


def detect_maven_java_version(root: Path) -> ProbeResult:
    pom = root / "pom.xml"
    try:
        tree = ET.fromstring(pom.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return ProbeResult.missing("no pom.xml")
    except (OSError, ET.ParseError) as exc:
        return ProbeResult.failed(f"pom.xml unreadable: {exc}")

    props: dict[str, str] = {}
    for ns in (_NS, ""):
        el = tree.find(f"{ns}properties")
        if el is None:
            continue
        for child in el:
            tag = child.tag.replace(_NS, "")
            if child.text:
                props[tag] = child.text.strip()
    for key in _MAVEN_VERSION_PROPS:
        value = props.get(key)
        if value and not value.startswith("${"):
            return ProbeResult.found(_normalize_java(value), f"pom property {key}")
        if value and value.startswith("${"):
            ref = props.get(value[2:-1])
            if ref:
                return ProbeResult.found(_normalize_java(ref), f"pom property {key}")
    return ProbeResult.missing("no compiler version in pom.xml")


def detect_gradle_java_version(root: Path) -> ProbeResult:
    for name in ("build.gradle", "build.gradle.kts"):
        script = root / name
        if not script.is_file():
            continue
        try:
            content = script.read_text(encoding="utf-8")
        except OSError as exc:
            return ProbeResult.failed(f"{name} unreadable: {exc}")
        for pattern in _GRADLE_VERSION_RES:
            m = pattern.search(content)
            if m:
                return ProbeResult.found(_normalize_java(m.group(1)), name)
    return ProbeResult.missing("no source compatibility in gradle build")
