"""Async client for the analysis service's Web API."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from sonarbridge.exceptions import classify_http_error
from sonarbridge.models.scan import Issue

log = structlog.get_logger("sonarbridge.sonar")

_PAGE_SIZE = 500
_MAX_ISSUES = 10_000  # hard cap of the issues/search endpoint
_ISSUE_TYPES_SEARCHABLE = ("BUG", "VULNERABILITY", "CODE_SMELL")


class SonarClient:
    """Thin async wrapper around the endpoints the engine needs.

    Every failure is raised as a ClassifiedError (see
    :func:`sonarbridge.exceptions.classify_http_error`).
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> SonarClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── compute engine ─────────────────────────────────────────────────────

    async def get_task(self, task_id: str, correlation_id: str | None = None) -> dict[str, Any]:
        """Return the ``task`` object of ``/api/ce/task``."""
        data = await self._get("/api/ce/task", {"id": task_id}, correlation_id)
        return data.get("task", {})

    async def latest_task(
        self, project_key: str, correlation_id: str | None = None
    ) -> dict[str, Any] | None:
        """Most recent background task for *project_key*, or None."""
        data = await self._get(
            "/api/ce/activity", {"component": project_key, "ps": 1}, correlation_id
        )
        tasks = data.get("tasks") or []
        return tasks[0] if tasks else None

    # ── issues ─────────────────────────────────────────────────────────────

    async def search_issues(
        self,
        project_key: str,
        *,
        severities: Sequence[str] = (),
        types: Sequence[str] = (),
        correlation_id: str | None = None,
    ) -> list[Issue]:
        """Open issues of *project_key*, following pagination.

        Security hotspots live behind a different endpoint, so the
        ``SECURITY_HOTSPOT`` type is dropped from the filter.
        """
        params: dict[str, Any] = {
            "componentKeys": project_key,
            "resolved": "false",
            "statuses": "OPEN,REOPENED,CONFIRMED",
            "ps": _PAGE_SIZE,
        }
        if severities:
            params["severities"] = ",".join(severities)
        wanted_types = [t for t in types if t in _ISSUE_TYPES_SEARCHABLE]
        if types and not wanted_types:
            return []
        if wanted_types:
            params["types"] = ",".join(wanted_types)

        issues: list[Issue] = []
        page = 1
        while True:
            data = await self._get("/api/issues/search", {**params, "p": page}, correlation_id)
            batch = data.get("issues", [])
            issues.extend(Issue.from_api(item) for item in batch)
            total = data.get("paging", {}).get("total", data.get("total", len(issues)))
            if not batch or len(issues) >= min(total, _MAX_ISSUES):
                break
            page += 1
        log.info("sonar.issues_fetched", project_key=project_key, count=len(issues), pages=page)
        return issues

    # ── internal ───────────────────────────────────────────────────────────

    async def _get(
        self, path: str, params: dict[str, Any], correlation_id: str | None
    ) -> dict[str, Any]:
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            error = classify_http_error(exc, correlation_id)
            log.warning(
                "sonar.request_failed",
                path=path,
                kind=error.kind.value,
                status=error.http_status,
                retryable=error.retryable,
            )
            raise error from exc
        return resp.json()
