"""CLI entry point: sonarbridge.

Subcommands:
    sonarbridge scan /path/to/project       # Lock, scan, wait, print issues
    sonarbridge params /path/to/project     # Dry run: show detected scanner properties
    sonarbridge lock status /path           # Show the lock marker, if any
    sonarbridge lock clear /path            # Remove a leftover lock marker
"""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import asdict
from datetime import datetime, timezone

import click

from sonarbridge.config import EngineSettings
from sonarbridge.core.logging import setup_logging
from sonarbridge.exceptions import ClassifiedError
from sonarbridge.locking import ProjectLockManager
from sonarbridge.models.params import ParamOrigin
from sonarbridge.models.scan import AnalysisTask, ScanRequest
from sonarbridge.orchestrator import build_orchestrator
from sonarbridge.params.builder import ParameterBuilder
from sonarbridge.sonar.selection import select_scanner

_SEVERITIES = ["INFO", "MINOR", "MAJOR", "CRITICAL", "BLOCKER"]
_TYPES = ["BUG", "VULNERABILITY", "CODE_SMELL", "SECURITY_HOTSPOT"]


def _parse_defines(defines: tuple[str, ...]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for item in defines:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="-D")
        overrides[key.strip()] = value
    return overrides


def _fail(error: ClassifiedError) -> None:
    click.echo(f"Error: {error.user_message()}", err=True)
    if error.correlation_id:
        click.echo(f"  correlation id: {error.correlation_id}", err=True)
    sys.exit(1)


def _print_task(task: AnalysisTask, summary: dict | None) -> None:
    click.echo(f"\nAnalysis {task.status.value}: task {task.task_id}")
    if summary:
        click.echo(f"Run summary (total: {summary['total_duration']}s):")
        for p in summary["phases"]:
            icon = {"completed": "+", "failed": "!", "running": "~"}.get(p["status"], "?")
            duration = f" ({p['duration']}s)" if p["duration"] else ""
            detail = f" - {p['detail']}" if p["detail"] else ""
            click.echo(f"  [{icon}] {p['phase']}{duration}{detail}")
    click.echo(f"\nIssues: {len(task.issues)}")
    for issue in task.issues:
        location = f"{issue.component}:{issue.line}" if issue.line else issue.component
        click.echo(f"  [{issue.severity}] {issue.type} {location} - {issue.message}")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """sonarbridge: run static-analysis scans and collect their issues."""
    setup_logging("DEBUG" if verbose else None)


@main.command("scan")
@click.argument("project_path", type=click.Path(exists=True, file_okay=False))
@click.option("--project-key", default=None, help="Project key on the analysis service")
@click.option("--severity", "severities", multiple=True, type=click.Choice(_SEVERITIES, case_sensitive=False))
@click.option("--type", "types", multiple=True, type=click.Choice(_TYPES, case_sensitive=False))
@click.option("-D", "defines", multiple=True, help="Scanner property override, key=value")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def scan(
    project_path: str,
    project_key: str | None,
    severities: tuple[str, ...],
    types: tuple[str, ...],
    defines: tuple[str, ...],
    as_json: bool,
) -> None:
    """Scan PROJECT_PATH and print the open issues."""
    try:
        request = ScanRequest.create(
            project_path=project_path,
            project_key=project_key,
            severity_filter=severities,
            type_filter=types,
            overrides=_parse_defines(defines),
        )
        orchestrator = build_orchestrator(EngineSettings.from_env())
    except ClassifiedError as e:
        _fail(e)
        return

    async def _run() -> AnalysisTask:
        async with orchestrator:
            return await orchestrator.run(request)

    try:
        task = asyncio.run(_run())
    except ClassifiedError as e:
        if as_json:
            click.echo(json.dumps({"error": e.to_public_dict()}, indent=2))
            sys.exit(1)
        _fail(e)
        return

    summary = task.progress
    if as_json:
        click.echo(
            json.dumps(
                {
                    "task_id": task.task_id,
                    "status": task.status.value,
                    "issues": [asdict(issue) for issue in task.issues],
                    "progress": summary,
                },
                indent=2,
            )
        )
        return
    _print_task(task, summary)


@main.command("params")
@click.argument("project_path", type=click.Path(exists=True, file_okay=False))
@click.option("-D", "defines", multiple=True, help="Scanner property override, key=value")
@click.option("--json", "as_json", is_flag=True, help="Print the properties as JSON")
def params(project_path: str, defines: tuple[str, ...], as_json: bool) -> None:
    """Show the scanner properties a scan of PROJECT_PATH would use."""
    settings = EngineSettings.from_env()
    builder = ParameterBuilder(classpath_timeout=settings.classpath_timeout)
    stacks = builder.detect(project_path)
    result = asyncio.run(builder.build(project_path, _parse_defines(defines), stacks))
    scanner = select_scanner(stacks, force_cli=settings.force_cli_scanner)

    if as_json:
        click.echo(
            json.dumps(
                {
                    "stacks": [s.kind.value for s in stacks],
                    "scanner": scanner.value,
                    "properties": result.as_dict(),
                },
                indent=2,
            )
        )
        return
    click.echo(f"Stacks: {', '.join(s.kind.value for s in stacks) or '(none)'}")
    click.echo(f"Scanner: {scanner.value}")
    click.echo("Properties:")
    for key, value in result.as_dict().items():
        origin = " (override)" if result.origin(key) is ParamOrigin.OVERRIDE else ""
        click.echo(f"  {key}={value}{origin}")


@main.group("lock")
def lock() -> None:
    """Inspect or clear project scan locks."""


@lock.command("status")
@click.argument("project_path", type=click.Path(exists=True, file_okay=False))
def lock_status(project_path: str) -> None:
    """Show who holds the scan lock of PROJECT_PATH."""
    settings = EngineSettings.from_env()
    record = ProjectLockManager(stale_after=settings.lock_stale_after).inspect(project_path)
    if record is None:
        click.echo("unlocked")
        return
    now = datetime.now(timezone.utc)
    state = "stale" if record.is_stale(now) else "held"
    click.echo(f"{state} by {record.holder_id} (pid {record.pid})")
    click.echo(f"  acquired: {record.acquired_at.isoformat()} ({record.age_ms(now) // 1000}s ago)")


@lock.command("clear")
@click.argument("project_path", type=click.Path(exists=True, file_okay=False))
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def lock_clear(project_path: str, yes: bool) -> None:
    """Remove the scan lock of PROJECT_PATH regardless of holder."""
    manager = ProjectLockManager()
    record = manager.inspect(project_path)
    if record is not None and not yes:
        click.confirm(f"Lock held by {record.holder_id}. Remove it?", abort=True)
    try:
        removed = manager.force_release(project_path)
    except ClassifiedError as e:
        _fail(e)
        return
    click.echo("lock removed" if removed else "no lock marker found")
