"""Phase tracking for a single scan run."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable

import structlog

log = structlog.get_logger("sonarbridge.progress")


@dataclass
class PhaseProgress:
    phase: str
    status: str = "running"  # "running" | "completed" | "failed"
    start_time: float = 0.0
    end_time: float | None = None
    detail: str = ""
    error: str | None = None

    @property
    def duration(self) -> float | None:
        if self.end_time is None:
            return None
        return round(self.end_time - self.start_time, 2)


class ProgressTracker:
    """Record lock → params → analysis → issues for one run.

    Listeners registered in ``callbacks`` see every transition; a failing
    listener never breaks the scan.
    """

    def __init__(self) -> None:
        self.phases: list[PhaseProgress] = []
        self.callbacks: list[Callable[[PhaseProgress], None]] = []

    @contextmanager
    def phase(self, name: str) -> Iterator[PhaseProgress]:
        """Track *name* for the duration of the block.

        Set ``detail`` on the yielded record to annotate the completed phase.
        Exceptions mark the phase failed and propagate.
        """
        p = PhaseProgress(phase=name, start_time=time.monotonic())
        self.phases.append(p)
        self._notify(p)
        try:
            yield p
        except BaseException as exc:
            p.status = "failed"
            p.error = str(exc) or type(exc).__name__
            p.end_time = time.monotonic()
            self._notify(p)
            raise
        p.status = "completed"
        p.end_time = time.monotonic()
        self._notify(p)

    @property
    def current(self) -> PhaseProgress | None:
        running = [p for p in self.phases if p.status == "running"]
        return running[-1] if running else None

    def get_summary(self) -> dict[str, Any]:
        return {
            "phases": [
                {
                    "phase": p.phase,
                    "status": p.status,
                    "duration": p.duration,
                    "detail": p.detail,
                    "error": p.error,
                }
                for p in self.phases
            ],
            "total_duration": round(sum(p.duration or 0 for p in self.phases), 2),
        }

    def _notify(self, p: PhaseProgress) -> None:
        log.debug("progress.phase", phase=p.phase, status=p.status, duration=p.duration)
        for cb in self.callbacks:
            try:
                cb(p)
            except Exception:
                log.debug("progress.callback_error", phase=p.phase, exc_info=True)
