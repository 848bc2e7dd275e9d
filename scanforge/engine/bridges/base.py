"""
Tool execution bridge contract.

A bridge adapts one external analysis tool: it knows whether the tool can run
here, how to launch it against a directory, and how to turn its output into
Finding records. Subclasses implement `execute()` as an async generator; the
shared `run()` drives it and is the failure boundary: whatever goes wrong
inside a tool comes back as a ToolRunResult, never as an exception.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Union

from scanforge.base.findings import Finding
from scanforge.base.session import ToolRunStatus
from scanforge.engine.executor import CommandRunner, run_command
from scanforge.engine.namespace import ExecutionNamespace, NativeNamespace
from scanforge.errors import (
    ExecutionTimeout,
    ParseFailure,
    ScanForgeError,
    ToolUnavailable,
    handle_error,
)

logger = logging.getLogger(__name__)

FindingCallback = Callable[[Finding, int], Optional[Awaitable[None]]]

_MNT_PREFIX = re.compile(r"^/mnt/[a-z]/", re.IGNORECASE)


@dataclass
class ToolRunResult:
    tool: str
    status: ToolRunStatus
    findings: List[Finding] = field(default_factory=list)
    error: Optional[ScanForgeError] = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == ToolRunStatus.SUCCEEDED

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None


def parse_json(output: str, tool: str) -> Any:
    """Decode a tool's JSON output or raise ParseFailure."""
    text = (output or "").strip()
    if not text:
        raise ParseFailure(f"{tool} produced no output to parse")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseFailure(
            f"{tool} output is not valid JSON: {exc.msg} at line {exc.lineno}",
            details={"tool": tool, "preview": text[:200]},
        ) from exc


def relative_to_root(path: str, root: str) -> str:
    """Express a tool-reported path relative to the scanned root, with `/` separators."""
    if not path:
        return ""
    normalized = path.replace("\\", "/")
    root_norm = (root or "").replace("\\", "/").rstrip("/")
    if root_norm and normalized.startswith(root_norm + "/"):
        return normalized[len(root_norm) + 1:]
    return _MNT_PREFIX.sub("", normalized)


class ToolBridge(ABC):
    """
    Base class for every tool family.

    Availability is probed once per instance (single flight) and cached;
    pass `available=` to pin it in tests. One instance is meant to be shared
    by all sessions of the process.
    """

    name: str = ""
    binary: str = ""
    simulated: bool = False

    def __init__(
        self,
        timeout: float,
        namespace: Optional[ExecutionNamespace] = None,
        runner: Optional[CommandRunner] = None,
        available: Optional[bool] = None,
    ):
        self.timeout = timeout
        self.namespace = namespace or NativeNamespace()
        self._runner = runner or run_command
        self._available = available
        self._probe_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def is_available(self) -> bool:
        """Whether the tool can run here. Cached; never raises."""
        if self._available is not None:
            return self._available

        async with self._probe_lock:
            if self._available is None:
                self._available = await self._safe_probe()
                logger.info(f"[{self.name}] available={self._available}")
        return self._available

    async def _safe_probe(self) -> bool:
        try:
            if not await self.namespace.is_available():
                return False
            return await self.probe()
        except Exception as e:
            logger.warning(f"[{self.name}] Availability probe failed: {e}")
            return False

    async def probe(self) -> bool:
        return await self.namespace.has_executable(self.binary)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @abstractmethod
    def execute(self, target_root: str) -> AsyncIterator[Finding]:
        """Run the tool against `target_root` and yield findings as they are parsed."""

    async def run(
        self,
        target_root: Union[str, Path],
        on_finding: Optional[FindingCallback] = None,
    ) -> ToolRunResult:
        """
        Run the tool and collect its findings.

        Never raises (except on cancellation): an unavailable tool, a timeout,
        a failed process or unparseable output all produce a result with no
        findings and the error attached.
        """
        started = time.monotonic()

        if not await self.is_available():
            return self._failed(
                ToolUnavailable(f"{self.name} is not available on this system", details={"tool": self.name}),
                started,
            )

        findings: List[Finding] = []
        try:
            async for finding in self.execute(str(target_root)):
                findings.append(finding)
                if on_finding is not None:
                    maybe = on_finding(finding, len(findings))
                    if inspect.isawaitable(maybe):
                        await maybe
        except asyncio.CancelledError:
            raise
        except ExecutionTimeout as e:
            logger.warning(f"[{self.name}] {e.message}")
            return self._failed(e, started, ToolRunStatus.TIMED_OUT)
        except ScanForgeError as e:
            logger.warning(f"[{self.name}] {e.message}")
            return self._failed(e, started)
        except Exception as e:
            logger.exception(f"[{self.name}] Unexpected error")
            return self._failed(handle_error(e, context=f"{self.name} failed"), started)

        duration = time.monotonic() - started
        logger.info(f"[{self.name}] {len(findings)} findings in {duration:.1f}s")
        return ToolRunResult(self.name, ToolRunStatus.SUCCEEDED, findings, duration=duration)

    def _failed(
        self,
        error: ScanForgeError,
        started: float,
        status: ToolRunStatus = ToolRunStatus.FAILED,
    ) -> ToolRunResult:
        return ToolRunResult(
            self.name,
            status,
            [],
            error=error,
            duration=time.monotonic() - started,
        )
