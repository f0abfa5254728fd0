"""Lock marker records."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class LockRecord:
    """Content of a project lock marker file."""

    project_path: str
    holder_id: str
    acquired_at: datetime
    stale_after_ms: int
    pid: int = field(default_factory=os.getpid)

    def age_ms(self, now: datetime) -> int:
        return int((now - self.acquired_at).total_seconds() * 1000)

    def is_stale(self, now: datetime) -> bool:
        return self.age_ms(now) >= self.stale_after_ms

    def to_json(self) -> dict[str, Any]:
        return {
            "holder_id": self.holder_id,
            "acquired_at": self.acquired_at.isoformat(),
            "stale_after_ms": self.stale_after_ms,
            "pid": self.pid,
            "project": self.project_path,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> LockRecord:
        """Parse a marker payload; raises KeyError/ValueError/TypeError if malformed."""
        acquired_at = datetime.fromisoformat(data["acquired_at"])
        if acquired_at.tzinfo is None:
            acquired_at = acquired_at.replace(tzinfo=timezone.utc)
        return cls(
            project_path=str(data["project"]),
            holder_id=str(data["holder_id"]),
            acquired_at=acquired_at,
            stale_after_ms=int(data["stale_after_ms"]),
            pid=int(data.get("pid", 0)),
        )


@dataclass(frozen=True)
class LockHandle:
    project_path: Path
    marker_path: Path
    holder_id: str
    record: LockRecord
