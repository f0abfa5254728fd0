"""Scan orchestrator — lock, build parameters, submit, wait, fetch issues."""

from __future__ import annotations

import uuid
from pathlib import Path

import structlog

from sonarbridge.config import EngineSettings
from sonarbridge.exceptions import SecurityError, ValidationError, wrap_error
from sonarbridge.locking import ProjectLockManager
from sonarbridge.models.scan import (
    AnalysisTask,
    ScanInvocation,
    ScanRequest,
    TaskStatus,
    default_project_key,
)
from sonarbridge.params.builder import ParameterBuilder
from sonarbridge.poller import AnalysisPoller
from sonarbridge.progress import PhaseProgress, ProgressTracker
from sonarbridge.retry import RetryOptions, with_retry
from sonarbridge.sonar.client import SonarClient
from sonarbridge.sonar.runner import ScannerRunner
from sonarbridge.sonar.selection import select_scanner

log = structlog.get_logger("sonarbridge.orchestrator")


class ScanOrchestrator:
    """
    Run one scan end to end.

    Phase lock:     ProjectLockManager.acquire() — fails fast if busy
    Phase params:   ParameterBuilder.detect() + build()
    Phase analysis: with_retry(AnalysisPoller.submit_and_await)
    Phase issues:   SonarClient.search_issues() with the request filters

    The lock is released on every exit path, cancellation included.
    """

    def __init__(
        self,
        lock_manager: ProjectLockManager,
        builder: ParameterBuilder,
        poller: AnalysisPoller,
        client: SonarClient,
        *,
        retry_options: RetryOptions | None = None,
        force_cli_scanner: bool = False,
    ) -> None:
        self.lock_manager = lock_manager
        self.builder = builder
        self.poller = poller
        self.client = client
        self.retry_options = retry_options or EngineSettings().scan_retry_options()
        self.force_cli_scanner = force_cli_scanner

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        self.lock_manager.release_all()
        await self.client.close()

    async def __aenter__(self) -> ScanOrchestrator:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def run(
        self, request: ScanRequest, progress: ProgressTracker | None = None
    ) -> AnalysisTask:
        """Scan ``request.project_path`` and return the finished task with its issues.

        The task carries this run's invocation and progress summary. Pass
        *progress* to observe phases while the run is in flight, or after it
        fails. Raises a ClassifiedError (stamped with the run's correlation
        id) on any failure.
        """
        correlation_id = request.correlation_id or uuid.uuid4().hex
        if progress is None:
            progress = ProgressTracker()

        with structlog.contextvars.bound_contextvars(correlation_id=correlation_id):
            try:
                root = self._validate(request)
                return await self._run_locked(request, root, progress, correlation_id)
            except Exception as exc:
                error = wrap_error(exc, correlation_id)
                log.warning(
                    "orchestrator.scan_failed",
                    kind=error.kind.value,
                    retryable=error.retryable,
                    phase=progress.phases[-1].phase if progress.phases else None,
                )
                if error is exc:
                    raise
                raise error from exc

    # ── internal ───────────────────────────────────────────────────────────

    @staticmethod
    def _validate(request: ScanRequest) -> Path:
        root = request.project_path.expanduser().resolve()
        if not root.exists():
            raise ValidationError(
                f"project path does not exist: {request.project_path}",
                context={"field": "project_path"},
            )
        if not root.is_dir():
            raise ValidationError(
                f"project path is not a directory: {request.project_path}",
                context={"field": "project_path"},
            )
        if root == Path(root.anchor):
            raise SecurityError("refusing to scan a filesystem root", context={"path": str(root)})
        return root

    async def _run_locked(
        self,
        request: ScanRequest,
        root: Path,
        progress: ProgressTracker,
        correlation_id: str,
    ) -> AnalysisTask:
        with progress.phase("lock"):
            handle = self.lock_manager.acquire(root)
        try:
            with progress.phase("params") as phase:
                invocation = await self._prepare(request, root, phase)

            with progress.phase("analysis") as phase:
                task = await with_retry(
                    lambda: self.poller.submit_and_await(invocation, correlation_id),
                    self.retry_options,
                    correlation_id,
                    name="scan",
                )
                phase.detail = f"task {task.task_id}"

            if task.status is TaskStatus.SUCCESS:
                with progress.phase("issues") as phase:
                    task.issues = await self.client.search_issues(
                        invocation.project_key,
                        severities=request.severity_filter,
                        types=request.type_filter,
                        correlation_id=correlation_id,
                    )
                    phase.detail = f"{len(task.issues)} issues"

            log.info(
                "orchestrator.scan_completed",
                project_key=invocation.project_key,
                task_id=task.task_id,
                issues=len(task.issues),
            )
            task.invocation = invocation
            task.progress = progress.get_summary()
            return task
        finally:
            self.lock_manager.release(handle)

    async def _prepare(self, request: ScanRequest, root: Path, phase: PhaseProgress) -> ScanInvocation:
        if request.detected_stack:
            stacks = self.builder.resolve(root, request.detected_stack)
        else:
            stacks = self.builder.detect(root)
        params = await self.builder.build(root, request.overrides, stacks)
        scanner = select_scanner(stacks, force_cli=self.force_cli_scanner)
        phase.detail = f"{scanner.value}, {len(params)} properties"
        return ScanInvocation(
            project_path=root,
            project_key=request.project_key or default_project_key(root),
            scanner=scanner,
            parameters=params.freeze(),
            stacks=tuple(stacks),
        )


def build_orchestrator(settings: EngineSettings | None = None) -> ScanOrchestrator:
    """Wire the default collaborators from *settings* (or the environment)."""
    settings = settings or EngineSettings.from_env()
    client = SonarClient(settings.sonar_url, settings.sonar_token, timeout=settings.http_timeout)
    runner = ScannerRunner(settings.sonar_url, settings.sonar_token, timeout=settings.scanner_timeout)
    poller = AnalysisPoller(
        runner,
        client,
        poll_interval=settings.poll_interval,
        max_wait=settings.max_wait,
    )
    return ScanOrchestrator(
        ProjectLockManager(stale_after=settings.lock_stale_after),
        ParameterBuilder(classpath_timeout=settings.classpath_timeout),
        poller,
        client,
        retry_options=settings.scan_retry_options(),
        force_cli_scanner=settings.force_cli_scanner,
    )
