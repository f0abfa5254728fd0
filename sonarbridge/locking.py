"""Per-project scan locks backed by a marker file in the project root.

The marker is plain JSON so an operator can read it, or delete it, by hand.
"""

from __future__ import annotations

import json
import os
import socket
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import structlog

from sonarbridge.exceptions import FileSystemError, LockBusyError
from sonarbridge.models.lock import LockHandle, LockRecord

log = structlog.get_logger("sonarbridge.locking")

LOCK_FILENAME = ".sonar-analysis.lock"
DEFAULT_STALE_AFTER = 600.0  # seconds
RECLAIM_SUFFIX = ".reclaim"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_holder_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class ProjectLockManager:
    """Grants at most one live scan lock per project directory.

    Locks held through this manager are tracked in an in-memory registry so a
    second acquire from the same process fails without touching the disk and
    :meth:`release_all` can clean up on shutdown.
    """

    def __init__(
        self,
        stale_after: float = DEFAULT_STALE_AFTER,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.stale_after_ms = int(stale_after * 1000)
        self._clock = clock
        self._held: dict[Path, LockHandle] = {}

    # ── public ─────────────────────────────────────────────────────────────

    def acquire(self, project_path: str | Path, holder_id: str | None = None) -> LockHandle:
        """Take the lock for *project_path* or raise :class:`LockBusyError`."""
        root = Path(project_path).resolve()
        if root in self._held:
            held = self._held[root]
            raise LockBusyError(
                f"scan already running for {root.name}",
                context={"holder_id": held.holder_id, "project": str(root)},
            )

        holder_id = holder_id or new_holder_id()
        marker = root / LOCK_FILENAME
        now = self._clock()
        record = LockRecord(
            project_path=str(root),
            holder_id=holder_id,
            acquired_at=now,
            stale_after_ms=self.stale_after_ms,
        )
        payload = json.dumps(record.to_json(), indent=2)

        if not self._create_exclusive(marker, payload):
            self._reclaim(root, marker, payload, holder_id, now)

        handle = LockHandle(
            project_path=root, marker_path=marker, holder_id=holder_id, record=record
        )
        self._held[root] = handle
        log.info("lock.acquired", project=str(root), holder_id=holder_id)
        return handle

    def release(self, handle: LockHandle) -> None:
        """Release *handle*. Idempotent; never raises."""
        if self._held.get(handle.project_path) is handle:
            del self._held[handle.project_path]
        try:
            current = self._read_marker(handle.marker_path)
            if current is None:
                return
            if current.holder_id != handle.holder_id:
                log.warning(
                    "lock.release_skipped",
                    project=str(handle.project_path),
                    holder_id=handle.holder_id,
                    current_holder=current.holder_id,
                )
                return
            handle.marker_path.unlink(missing_ok=True)
            log.info("lock.released", project=str(handle.project_path))
        except OSError:
            log.warning("lock.release_failed", project=str(handle.project_path), exc_info=True)

    def release_all(self) -> None:
        for handle in list(self._held.values()):
            self.release(handle)

    def held(self) -> list[Path]:
        return list(self._held)

    def inspect(self, project_path: str | Path) -> LockRecord | None:
        """Return the live or stale record on disk, or None if absent/corrupt."""
        return self._read_marker(Path(project_path).resolve() / LOCK_FILENAME)

    def force_release(self, project_path: str | Path) -> bool:
        """Delete the marker regardless of holder. Returns True if one existed."""
        root = Path(project_path).resolve()
        self._held.pop(root, None)
        marker = root / LOCK_FILENAME
        try:
            marker.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise FileSystemError(
                f"cannot remove lock marker: {exc.strerror}",
                operation="delete",
                path=str(marker),
                cause=exc,
            ) from exc
        log.warning("lock.force_released", project=str(root))
        return True

    # ── internal ───────────────────────────────────────────────────────────

    def _reclaim(
        self, root: Path, marker: Path, payload: str, holder_id: str, now: datetime
    ) -> None:
        """Take over an abandoned marker, one reclaimer at a time."""
        existing = self._read_marker(marker)
        if not self._is_abandoned(marker, existing, now):
            raise self._busy(root, existing, now)

        guard = marker.with_name(marker.name + RECLAIM_SUFFIX)
        if not self._create_exclusive(guard, holder_id):
            if self._is_abandoned(guard, None, now):
                log.warning("lock.reclaim_guard_removed", project=str(root))
                guard.unlink(missing_ok=True)
            raise LockBusyError(
                f"lock reclaim in progress for {root.name}",
                context={"project": str(root)},
            )
        try:
            # state may have changed between the first read and the guard
            existing = self._read_marker(marker)
            if not marker.exists():
                if not self._create_exclusive(marker, payload):
                    raise self._busy(root, self._read_marker(marker), now)
                return
            if not self._is_abandoned(marker, existing, now):
                raise self._busy(root, existing, now)
            log.warning(
                "lock.reclaim",
                project=str(root),
                previous_holder=existing.holder_id if existing else None,
                reason="stale" if existing else "unreadable",
            )
            self._replace_marker(marker, payload, holder_id)
        finally:
            guard.unlink(missing_ok=True)

        current = self._read_marker(marker)
        if current is None or current.holder_id != holder_id:
            raise LockBusyError(
                f"lost lock reclaim race for {root.name}",
                context={
                    "holder_id": current.holder_id if current else None,
                    "project": str(root),
                },
            )

    def _is_abandoned(self, path: Path, record: LockRecord | None, now: datetime) -> bool:
        """A readable record goes by its own age; anything else by file mtime."""
        if record is not None:
            return record.is_stale(now)
        try:
            mtime = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
        except FileNotFoundError:
            return True
        return (now - mtime).total_seconds() * 1000 >= self.stale_after_ms

    @staticmethod
    def _busy(root: Path, record: LockRecord | None, now: datetime) -> LockBusyError:
        return LockBusyError(
            f"scan already running for {root.name}",
            context={
                "holder_id": record.holder_id if record else None,
                "age_ms": record.age_ms(now) if record else None,
                "project": str(root),
            },
        )

    @staticmethod
    def _create_exclusive(path: Path, payload: str) -> bool:
        """Create *path* with its full content in one step. False if it exists."""
        tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            tmp.write_text(payload, encoding="utf-8")
            os.link(tmp, path)
        except FileExistsError:
            return False
        except OSError as exc:
            raise FileSystemError(
                f"cannot create lock marker: {exc.strerror}",
                operation="write",
                path=str(path),
                cause=exc,
            ) from exc
        finally:
            tmp.unlink(missing_ok=True)
        return True

    def _replace_marker(self, marker: Path, payload: str, holder_id: str) -> None:
        tmp = marker.with_name(f"{marker.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, marker)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise FileSystemError(
                f"cannot reclaim lock marker: {exc.strerror}",
                operation="write",
                path=str(marker),
                context={"holder_id": holder_id},
                cause=exc,
            ) from exc

    @staticmethod
    def _read_marker(marker: Path) -> LockRecord | None:
        try:
            data = json.loads(marker.read_text(encoding="utf-8"))
            return LockRecord.from_json(data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as exc:
            log.debug("lock.marker_unreadable", marker=str(marker), error=str(exc))
            return None
