"""Subprocess helper shared by the classpath resolvers and the scanner runner."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import structlog

from sonarbridge.exceptions import ConfigurationError, OperationTimeoutError

log = structlog.get_logger("sonarbridge.process")


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


async def run_command(
    cmd: list[str],
    *,
    cwd: Path,
    timeout: float,
    env: Mapping[str, str] | None = None,
    step: str | None = None,
) -> CommandResult:
    """Run *cmd* in *cwd* and capture its output.

    Raises ConfigurationError when the executable is missing and
    OperationTimeoutError (after killing the process) when *timeout* elapses.
    A non-zero exit is returned, not raised.
    """
    full_env = dict(os.environ)
    if env:
        full_env.update(env)
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd),
            env=full_env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"{cmd[0]} not found on PATH",
            context={"command": cmd[0], "suggested_fix": f"install {cmd[0]} or add it to PATH"},
            cause=exc,
        ) from exc
    except PermissionError as exc:
        raise ConfigurationError(
            f"{cmd[0]} is not executable",
            context={"command": cmd[0], "suggested_fix": f"chmod +x {cmd[0]}"},
            cause=exc,
        ) from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise OperationTimeoutError(
            f"{cmd[0]} did not finish within {timeout:g}s",
            operation=step or cmd[0],
            timeout_ms=int(timeout * 1000),
        ) from None

    result = CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
    log.debug("process.finished", command=cmd[0], step=step, returncode=result.returncode)
    return result
