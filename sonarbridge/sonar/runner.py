"""Launch the scanner process and find out which task it submitted."""

from __future__ import annotations

import os
import re
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from sonarbridge.exceptions import ClassifiedError, OperationTimeoutError
from sonarbridge.models.params import ParamOrigin
from sonarbridge.models.scan import ScanInvocation, ScannerKind
from sonarbridge.params.classpath import gradle_command
from sonarbridge.process import CommandResult, run_command
from sonarbridge.sonar.output import FailureCategory, failure_to_error, parse_failure

log = structlog.get_logger("sonarbridge.sonar")

DEFAULT_SCANNER_TIMEOUT = 600.0  # seconds

_TASK_URL_RE = re.compile(r"api/ce/task\?id=([A-Za-z0-9_\-]+)")
REPORT_TASK_FILES = [
    ".scannerwork/report-task.txt",
    "target/sonar/report-task.txt",
    "build/sonar/report-task.txt",
    ".sonarqube/out/.sonar/report-task.txt",
]

# Failures a different scanner flavour cannot fix.
_NO_FALLBACK = frozenset(
    {
        FailureCategory.AUTHENTICATION_FAILED,
        FailureCategory.PERMISSION_DENIED,
        FailureCategory.SERVER_UNREACHABLE,
    }
)


@dataclass
class SubmittedScan:
    scanner: ScannerKind
    task_id: str | None
    output: str


def extract_task_id(output: str) -> str | None:
    """Task id from the scanner's "More about the report processing at ..." line."""
    matches = _TASK_URL_RE.findall(output)
    return matches[-1] if matches else None


def read_report_task(project_path: Path, since: float | None = None) -> str | None:
    """``ceTaskId`` from the first report-task.txt the scanner left behind.

    Reports last written before *since* (epoch seconds) belong to an earlier
    run and are ignored.
    """
    for rel in REPORT_TASK_FILES:
        report = project_path / rel
        try:
            if since is not None and report.stat().st_mtime < since:
                continue
            content = report.read_text(encoding="utf-8")
        except FileNotFoundError:
            continue
        except OSError:
            log.warning("scanner.report_task_unreadable", path=str(report), exc_info=True)
            continue
        for line in content.splitlines():
            key, _, value = line.partition("=")
            if key.strip() == "ceTaskId" and value.strip():
                return value.strip()
    return None


class ScannerRunner:
    """Build the scanner command line for an invocation and run it.

    The token travels in ``SONAR_TOKEN`` so it never shows up in process
    listings or logged command lines.
    """

    def __init__(
        self,
        host_url: str,
        token: str | None = None,
        *,
        timeout: float = DEFAULT_SCANNER_TIMEOUT,
    ) -> None:
        self.host_url = host_url
        self.token = token
        self.timeout = timeout

    # ── public ─────────────────────────────────────────────────────────────

    async def run(
        self, invocation: ScanInvocation, correlation_id: str | None = None
    ) -> SubmittedScan:
        """Run the scanner; raise a ClassifiedError if it fails."""
        scanner = invocation.scanner
        try:
            return await self._run_as(scanner, invocation, correlation_id)
        except ClassifiedError as exc:
            category = exc.context.get("category")
            if (
                scanner in (ScannerKind.MAVEN, ScannerKind.GRADLE)
                and not isinstance(exc, OperationTimeoutError)
                and category not in {c.value for c in _NO_FALLBACK}
            ):
                log.warning(
                    "scanner.plugin_fallback",
                    scanner=scanner.value,
                    category=category,
                    fallback=ScannerKind.CLI.value,
                )
                return await self._run_as(ScannerKind.CLI, invocation, correlation_id)
            raise

    def commands(self, scanner: ScannerKind, invocation: ScanInvocation) -> list[list[str]]:
        """Command lines (one per step) for *scanner*."""
        root = invocation.project_path
        base = [
            f"-Dsonar.projectKey={invocation.project_key}",
            f"-Dsonar.host.url={self.host_url}",
        ]
        params = invocation.parameters
        overrides = [
            f"-D{key}={params.get(key)}"
            for key in params
            if params.origin(key) is ParamOrigin.OVERRIDE
        ]

        if scanner is ScannerKind.MAVEN:
            mvn = "./mvnw" if (root / "mvnw").is_file() and os.access(root / "mvnw", os.X_OK) else "mvn"
            return [[mvn, "-B", "sonar:sonar", *base, *overrides]]
        if scanner is ScannerKind.GRADLE:
            return [[*gradle_command(root), "sonar", *base, *overrides]]
        if scanner is ScannerKind.DOTNET:
            target = next(
                (s.hint("build_target") for s in invocation.stacks if s.hint("build_target")), None
            )
            begin = [
                "dotnet",
                "sonarscanner",
                "begin",
                f"/k:{invocation.project_key}",
                f"/d:sonar.host.url={self.host_url}",
                *(f"/d:{key}={params.get(key)}" for key in params),
            ]
            build = ["dotnet", "build", *([target] if target else [])]
            return [begin, build, ["dotnet", "sonarscanner", "end"]]
        return [["sonar-scanner", *base, "-Dsonar.projectBaseDir=.", *params.to_args()]]

    # ── internal ───────────────────────────────────────────────────────────

    async def _run_as(
        self, scanner: ScannerKind, invocation: ScanInvocation, correlation_id: str | None
    ) -> SubmittedScan:
        env = {"SONAR_HOST_URL": self.host_url}
        if self.token:
            env["SONAR_TOKEN"] = self.token

        started = time.time()
        outputs: list[str] = []
        for cmd in self.commands(scanner, invocation):
            log.info(
                "scanner.start",
                scanner=scanner.value,
                command=" ".join(cmd[:3]),
                project_key=invocation.project_key,
            )
            result: CommandResult = await run_command(
                cmd, cwd=invocation.project_path, timeout=self.timeout, env=env, step="scanner"
            )
            outputs.append(result.output)
            if not result.ok:
                failure = parse_failure(result.output)
                log.warning(
                    "scanner.failed",
                    scanner=scanner.value,
                    returncode=result.returncode,
                    category=failure.category.value,
                )
                raise failure_to_error(
                    failure,
                    source="scanner",
                    correlation_id=correlation_id,
                    tool_name=cmd[0] if scanner is ScannerKind.CLI else f"{scanner.value} scanner",
                )

        output = "\n".join(outputs)
        task_id = extract_task_id(output) or read_report_task(
            invocation.project_path, since=started - 1.0
        )
        log.info("scanner.finished", scanner=scanner.value, task_id=task_id)
        return SubmittedScan(scanner=scanner, task_id=task_id, output=output)
