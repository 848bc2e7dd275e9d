# ============================================================================
# scanforge/engine/orchestrator.py
# Scan Orchestrator
# ============================================================================
#
# PURPOSE:
# Owns the lifecycle of every scan session: resolve the target, run each
# selected tool through its bridge, stream progress to the session's
# observer, and deduplicate the combined findings at the end.
#
# KEY RULES:
# - A session ends RUNNING -> COMPLETED, or RUNNING -> FAILED only for
#   session-level faults (unresolvable target, unexpected internal error)
# - A tool that fails, times out or is missing contributes no findings and an
#   error note; the remaining tools still run
# - progressPercent = completed tools / selected tools * 100, never decreasing
#
# ============================================================================

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set

from scanforge.base.config import ScanConfig
from scanforge.base.events import ProgressChannel, ProgressEvent
from scanforge.base.findings import Finding
from scanforge.base.session import ScanSession, SessionSnapshot, ToolRunStatus
from scanforge.engine.bridges import BridgeRegistry, ToolRunResult
from scanforge.engine.dedup import dedupe
from scanforge.engine.resolver import TargetResolver
from scanforge.errors import (
    ErrorCode,
    ExecutionTimeout,
    InvalidTarget,
    ScanForgeError,
    SessionNotFound,
    ToolUnavailable,
    handle_error,
)

logger = logging.getLogger(__name__)


@dataclass
class _ProgressCounter:
    total: int
    completed: int = 0
    # findings streamed so far, across every tool of the session
    streamed: int = 0

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return self.completed / self.total * 100


class ScanOrchestrator:
    """
    Runs scan sessions.

    One instance serves the whole process; every session runs on its own
    asyncio task and is the only writer of its ScanSession record.
    """

    def __init__(
        self,
        resolver: TargetResolver,
        bridges: BridgeRegistry,
        channel: ProgressChannel,
        config: Optional[ScanConfig] = None,
    ):
        self.resolver = resolver
        self.bridges = bridges
        self.channel = channel
        self.config = config or ScanConfig()

        self._lock = threading.Lock()
        self._sessions: Dict[str, ScanSession] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_session(self, target_id: str, tools: Sequence[str]) -> ScanSession:
        """
        Register a session and resolve its target.

        Raises InvalidTarget when the target cannot be resolved; the session
        is still recorded, as FAILED.
        """
        session = ScanSession(target_id, tools)
        with self._lock:
            self._sessions[session.id] = session

        try:
            session.target_root = str(self.resolver.resolve(target_id))
        except InvalidTarget as e:
            logger.warning(f"[Orchestrator] Session {session.id}: {e.message}")
            self._fail(session, e)
            raise

        logger.info(
            f"[Orchestrator] Session {session.id} created for {session.target_root} "
            f"with tools {list(session.selected_tools)}"
        )
        return session

    async def start_scan(self, target_id: str, tools: Sequence[str]) -> str:
        """Create a session and run it in the background. Returns the session id at once."""
        session = self.create_session(target_id, tools)
        task = asyncio.create_task(self.run_session(session), name=f"scan-{session.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return session.id

    async def scan(self, target_id: str, tools: Sequence[str]) -> SessionSnapshot:
        """Run a session to completion and return its final snapshot."""
        session = self.create_session(target_id, tools)
        await self.run_session(session)
        return session.snapshot()

    def get_session(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Scan not found: {session_id}", details={"session_id": session_id})
        return session.snapshot()

    def list_sessions(self) -> List[SessionSnapshot]:
        with self._lock:
            sessions = list(self._sessions.values())
        return [session.snapshot() for session in sessions]

    async def wait_idle(self) -> None:
        """Wait for every background session task (used at shutdown and in tests)."""
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel running sessions; each one ends FAILED."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"[Orchestrator] Cancelling {len(tasks)} running sessions")
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Session execution
    # ------------------------------------------------------------------

    async def run_session(self, session: ScanSession) -> None:
        try:
            self._publish(session, ProgressEvent.progress(
                session.id, None, 0, f"Scanning {session.target_root}",
            ))

            await self._run_tools(session)

            raw = self._raw_findings(session)
            final = dedupe(raw)
            session.complete(final)

            self._publish(session, ProgressEvent.progress(session.id, None, 100, "Scan completed successfully!"))
            self._publish(session, ProgressEvent.completed(session.id, len(final)))
            logger.info(
                f"[Orchestrator] Session {session.id} completed: {len(raw)} raw findings, "
                f"{len(final)} after dedup"
            )
        except asyncio.CancelledError:
            if not session.is_terminal:
                self._fail(session, ScanForgeError("Scan was cancelled", code=ErrorCode.SYSTEM_INTERNAL_ERROR))
            raise
        except Exception as e:
            logger.exception(f"[Orchestrator] Session {session.id} failed")
            if not session.is_terminal:
                self._fail(session, handle_error(e, context="Scan failed"))

    async def _run_tools(self, session: ScanSession) -> None:
        tools = session.selected_tools
        progress = _ProgressCounter(total=len(tools))
        limit = max(1, self.config.max_concurrent_tools)

        if limit == 1 or len(tools) <= 1:
            for tool in tools:
                await self._run_tool(session, tool, progress)
            return

        semaphore = asyncio.Semaphore(limit)

        async def guarded(tool: str) -> None:
            async with semaphore:
                await self._run_tool(session, tool, progress)

        await asyncio.gather(*(guarded(tool) for tool in tools))

    async def _run_tool(self, session: ScanSession, tool: str, progress: _ProgressCounter) -> None:
        run = session.tool_runs[tool]
        self._progress(session, tool, progress, f"Starting {tool} scan...")

        run.status = ToolRunStatus.RUNNING
        run.started_at = datetime.now(timezone.utc)

        result = await self._invoke(session, tool, progress)

        run.status = result.status
        run.findings = list(result.findings)
        run.finished_at = datetime.now(timezone.utc)
        if result.error is not None:
            run.error = result.error.message
            run.error_code = result.error.code.value

        if result.ok:
            session.add_findings(result.findings)
        else:
            logger.warning(f"[Orchestrator] {tool} {result.status.value}: {run.error}")
            self._progress(session, tool, progress, f"Error in {tool}: {run.error}")

        progress.completed += 1
        self._progress(session, tool, progress, f"Completed {tool} scan")

    async def _invoke(self, session: ScanSession, tool: str, progress: _ProgressCounter) -> ToolRunResult:
        bridge = self.bridges.get(tool)
        if bridge is None:
            return ToolRunResult(
                tool,
                ToolRunStatus.FAILED,
                error=ToolUnavailable(f"Unknown tool: {tool}", code=ErrorCode.TOOL_UNKNOWN),
            )

        async def on_finding(finding: Finding, count: int) -> None:
            if not self.config.emit_finding_events:
                return
            progress.streamed += 1
            self._publish(session, ProgressEvent.discovered(session.id, tool, finding.to_dict(), progress.streamed))

        try:
            return await bridge.run(session.target_root, on_finding=on_finding)
        except asyncio.CancelledError:
            raise
        except ExecutionTimeout as e:
            return ToolRunResult(tool, ToolRunStatus.TIMED_OUT, error=e)
        except ScanForgeError as e:
            return ToolRunResult(tool, ToolRunStatus.FAILED, error=e)
        except Exception as e:
            logger.exception(f"[Orchestrator] Bridge {tool} raised")
            return ToolRunResult(tool, ToolRunStatus.FAILED, error=handle_error(e, context=f"{tool} failed"))

    @staticmethod
    def _raw_findings(session: ScanSession) -> List[Finding]:
        # selected-tool order, independent of completion order
        findings: List[Finding] = []
        for tool in session.selected_tools:
            run = session.tool_runs[tool]
            if run.status == ToolRunStatus.SUCCEEDED:
                findings.extend(run.findings)
        return findings

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _progress(self, session: ScanSession, tool: Optional[str], progress: _ProgressCounter, message: str) -> None:
        percent = progress.percent
        session.set_progress(round(percent))
        self._publish(session, ProgressEvent.progress(session.id, tool, percent, message))

    def _publish(self, session: ScanSession, event: ProgressEvent) -> None:
        self.channel.publish(session.id, event)

    def _fail(self, session: ScanSession, error: ScanForgeError) -> None:
        session.fail(error)
        self._publish(session, ProgressEvent.error(session.id, error.message))
        logger.error(f"[Orchestrator] Session {session.id} failed: {error.message}")
