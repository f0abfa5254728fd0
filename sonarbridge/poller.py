"""Submit a scan and wait for the analysis service to finish processing it."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from sonarbridge.exceptions import ClassifiedError, OperationTimeoutError, ToolExecutionError
from sonarbridge.models.scan import AnalysisTask, ScanInvocation, TaskStatus
from sonarbridge.sonar.client import SonarClient
from sonarbridge.sonar.output import failure_to_error, parse_failure
from sonarbridge.sonar.runner import ScannerRunner

log = structlog.get_logger("sonarbridge.poller")

POLL_INTERVAL = 2.0  # seconds
MAX_WAIT = 120.0  # seconds


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisPoller:
    """Run the scanner, then poll the task until SUCCESS, FAILED, or timeout.

    The remote job is never cancelled: on timeout it may still complete on the
    service side.
    """

    def __init__(
        self,
        runner: ScannerRunner,
        client: SonarClient,
        *,
        poll_interval: float = POLL_INTERVAL,
        max_wait: float = MAX_WAIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runner = runner
        self.client = client
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._clock = clock

    async def submit_and_await(
        self, invocation: ScanInvocation, correlation_id: str | None = None
    ) -> AnalysisTask:
        submitted_at = _utcnow()
        scan = await self.runner.run(invocation, correlation_id)

        task_id = scan.task_id
        if task_id is None:
            latest = await self.client.latest_task(invocation.project_key, correlation_id)
            task_id = latest.get("id") if latest else None
            log.info("poller.task_from_activity", project_key=invocation.project_key, task_id=task_id)
        if not task_id:
            raise ToolExecutionError(
                "scanner finished but no analysis task could be found",
                tool_name=scan.scanner.value,
                step="submit",
                correlation_id=correlation_id,
                context={"project_key": invocation.project_key},
            )

        task = AnalysisTask(task_id=task_id, submitted_at=submitted_at)
        return await self.wait(task, correlation_id)

    async def wait(self, task: AnalysisTask, correlation_id: str | None = None) -> AnalysisTask:
        """Poll *task* in place until it reaches a terminal state."""
        started = self._clock()
        deadline = started + self.max_wait
        polls = 0
        while True:
            polls += 1
            try:
                data = await self.client.get_task(task.task_id, correlation_id)
            except ClassifiedError as exc:
                if not exc.retryable:
                    raise
                log.warning(
                    "poller.status_check_failed",
                    task_id=task.task_id,
                    kind=exc.kind.value,
                    poll=polls,
                )
            else:
                raw_status = data.get("status", TaskStatus.PENDING.value)
                status = TaskStatus.from_service(raw_status)
                if status is not task.status:
                    log.info("poller.status", task_id=task.task_id, status=raw_status, poll=polls)
                task.status = status
                if status.terminal:
                    self._finish(task, data, raw_status, correlation_id)
                    return task

            remaining = deadline - self._clock()
            if remaining <= 0:
                elapsed = self._clock() - started
                log.warning("poller.timeout", task_id=task.task_id, elapsed=round(elapsed, 1))
                raise OperationTimeoutError(
                    f"analysis task {task.task_id} still {task.status.value} after {elapsed:.0f}s",
                    operation="scan",
                    timeout_ms=int(self.max_wait * 1000),
                    correlation_id=correlation_id,
                    context={"task_id": task.task_id, "elapsed_ms": int(elapsed * 1000)},
                )
            await asyncio.sleep(min(self.poll_interval, remaining))

    def _finish(
        self,
        task: AnalysisTask,
        data: dict,
        raw_status: str,
        correlation_id: str | None,
    ) -> None:
        task.completed_at = _utcnow()
        task.analysis_id = data.get("analysisId")
        if task.status is TaskStatus.SUCCESS:
            log.info("poller.success", task_id=task.task_id, analysis_id=task.analysis_id)
            return

        if raw_status == "CANCELED":
            message = "analysis was canceled"
        else:
            message = data.get("errorMessage") or "analysis failed without a diagnostic"
        task.error_message = message
        error = failure_to_error(parse_failure(message), source="task", correlation_id=correlation_id)
        error.context["task_id"] = task.task_id
        log.warning("poller.failed", task_id=task.task_id, kind=error.kind.value, message=message)
        raise error
