"""
scanforge/engine/executor.py

Supervised subprocess execution for external tools.

Commands are always passed as an argument vector to
asyncio.create_subprocess_exec; nothing goes through a shell. Every call has a
wall-clock bound, and a process that exceeds it is killed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from scanforge.errors import ExecutionFailure, ExecutionTimeout, ToolUnavailable

logger = logging.getLogger(__name__)

# How long a killed process gets to be reaped
KILL_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class CommandResult:
    argv: Sequence[str]
    exit_code: int
    stdout: str
    stderr: str
    duration: float

    @property
    def has_output(self) -> bool:
        return bool(self.stdout.strip())


# Signature shared by run_command and the fakes used in tests
CommandRunner = Callable[..., Awaitable[CommandResult]]


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    # WSL writes UTF-16-ish output with NUL padding on some hosts
    return data.decode("utf-8", errors="ignore").replace("\x00", "")


async def _reap(proc: asyncio.subprocess.Process) -> None:
    try:
        if proc.returncode is None:
            proc.kill()
    except ProcessLookupError:
        pass
    try:
        await asyncio.wait_for(proc.wait(), timeout=KILL_GRACE_SECONDS)
    except asyncio.TimeoutError:
        logger.warning(f"[Executor] pid {proc.pid} did not exit after kill")


async def run_command(
    argv: Sequence[str],
    timeout: Optional[float],
    cwd: Optional[str] = None,
    allow_empty_output: bool = False,
) -> CommandResult:
    """
    Run `argv` to completion and capture its output.

    A non-zero exit code is only a failure when stdout is empty: several
    scanners exit non-zero to signal "issues found".

    Raises:
        ToolUnavailable: the executable does not exist
        ExecutionTimeout: `timeout` seconds elapsed; the process was killed
        ExecutionFailure: non-zero exit with no output, or spawn failure
    """
    if not argv:
        raise ExecutionFailure("Empty command")

    tool = argv[0]
    logger.debug(f"[Executor] Running: {list(argv)}")
    started = time.monotonic()

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except FileNotFoundError as exc:
        raise ToolUnavailable(
            f"{tool} is not installed or not in PATH",
            details={"argv": list(argv)},
        ) from exc
    except OSError as exc:
        raise ExecutionFailure(
            f"{tool} failed to start: {exc}",
            details={"argv": list(argv)},
        ) from exc

    try:
        if timeout and timeout > 0:
            raw_out, raw_err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        else:
            raw_out, raw_err = await proc.communicate()
    except asyncio.TimeoutError:
        await _reap(proc)
        logger.warning(f"[Executor] {tool} exceeded {timeout}s; killed")
        raise ExecutionTimeout(
            f"{tool} timed out after {timeout} seconds",
            details={"argv": list(argv), "timeout": timeout},
        )
    except asyncio.CancelledError:
        await _reap(proc)
        raise

    result = CommandResult(
        argv=tuple(argv),
        exit_code=proc.returncode if proc.returncode is not None else -1,
        stdout=_decode(raw_out),
        stderr=_decode(raw_err),
        duration=time.monotonic() - started,
    )
    logger.debug(f"[Executor] {tool} exit code {result.exit_code} after {result.duration:.1f}s")

    if result.exit_code != 0 and not result.has_output and not allow_empty_output:
        raise ExecutionFailure(
            f"Command failed with code {result.exit_code}: {result.stderr.strip()}",
            details={"argv": list(argv), "exit_code": result.exit_code},
        )
    return result
