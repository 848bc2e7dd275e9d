"""Scan session records."""
#
# PURPOSE:
# Each scan run gets its own session: the resolved target, the tools asked
# for, a per-tool sub-state, accumulated findings and the final outcome.
#
# KEY CONCEPTS:
# - Ownership: only the orchestration task that runs a session mutates it
# - Readers (HTTP API, CLI, report generators) get a snapshot() copy
# - Status moves forward only: RUNNING -> COMPLETED | FAILED, both terminal
#

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Tuple

from scanforge.base.findings import Finding
from scanforge.errors import ScanForgeError, SessionStateError
from scanforge.toolkit.normalizer import Severity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ToolRunStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


@dataclass
class ToolRun:
    """Per-tool sub-state inside a session."""
    tool: str
    status: ToolRunStatus = ToolRunStatus.NOT_STARTED
    findings: List[Finding] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "status": self.status.value,
            "findingsCount": len(self.findings),
            "error": self.error,
            "errorCode": self.error_code,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


def unique_tools(tools: Iterable[str]) -> Tuple[str, ...]:
    """Drop duplicates and blanks, keeping first occurrence order."""
    seen: List[str] = []
    for tool in tools:
        name = (tool or "").strip()
        if name and name not in seen:
            seen.append(name)
    return tuple(seen)


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only copy of a session handed to external readers."""
    id: str
    target_id: str
    target_root: Optional[str]
    selected_tools: Tuple[str, ...]
    status: SessionStatus
    findings: Tuple[Finding, ...]
    tool_runs: Tuple[Dict[str, Any], ...]
    progress_percent: int
    start_time: datetime
    end_time: Optional[datetime]
    error: Optional[Dict[str, Any]]

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.RUNNING

    @property
    def tool_errors(self) -> List[Dict[str, Any]]:
        return [run for run in self.tool_runs if run.get("error")]

    def severity_summary(self) -> Dict[str, int]:
        summary = {level.value: 0 for level in Severity}
        for finding in self.findings:
            summary[finding.severity.value] += 1
        return summary

    def to_dict(self, include_findings: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "scanId": self.id,
            "targetId": self.target_id,
            "targetRoot": self.target_root,
            "selectedTools": list(self.selected_tools),
            "status": self.status.value,
            "progressPercent": self.progress_percent,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "error": self.error,
            "toolRuns": [dict(run) for run in self.tool_runs],
            "resultCount": len(self.findings),
        }
        if include_findings:
            data["results"] = [finding.to_dict() for finding in self.findings]
        return data


class ScanSession:
    """
    One orchestration run.

    Created RUNNING; `complete()` and `fail()` are the only ways out and each
    can happen once.
    """

    def __init__(self, target_id: str, selected_tools: Iterable[str]):
        self.id = str(uuid.uuid4())
        self.target_id = target_id
        self.target_root: Optional[str] = None
        self.selected_tools = unique_tools(selected_tools)
        self.status = SessionStatus.RUNNING
        self.start_time = _utcnow()
        self.end_time: Optional[datetime] = None
        self.error: Optional[ScanForgeError] = None
        self.progress_percent = 0
        self.tool_runs: Dict[str, ToolRun] = {tool: ToolRun(tool) for tool in self.selected_tools}

        self._lock = Lock()
        self._findings: List[Finding] = []

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.RUNNING

    @property
    def findings(self) -> List[Finding]:
        """Copy of the current findings list."""
        with self._lock:
            return list(self._findings)

    def _require_running(self, action: str) -> None:
        if self.is_terminal:
            raise SessionStateError(
                f"Cannot {action}: session {self.id} is already {self.status.value}",
                details={"session_id": self.id, "status": self.status.value},
            )

    def add_findings(self, findings: Iterable[Finding]) -> None:
        self._require_running("add findings")
        with self._lock:
            self._findings.extend(findings)

    def set_progress(self, percent: int) -> None:
        # never moves backwards
        self.progress_percent = max(self.progress_percent, min(100, int(percent)))

    def complete(self, findings: Iterable[Finding]) -> None:
        """Replace the accumulator with its final (deduplicated) form and finish."""
        self._require_running("complete")
        with self._lock:
            self._findings = list(findings)
            self.progress_percent = 100
            self.end_time = _utcnow()
            self.status = SessionStatus.COMPLETED

    def fail(self, error: ScanForgeError) -> None:
        self._require_running("fail")
        with self._lock:
            self.error = error
            self.end_time = _utcnow()
            self.status = SessionStatus.FAILED

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            findings = tuple(self._findings)
            error = None
            if self.error is not None:
                error = self.error.to_dict()
            return SessionSnapshot(
                id=self.id,
                target_id=self.target_id,
                target_root=self.target_root,
                selected_tools=self.selected_tools,
                status=self.status,
                findings=findings,
                tool_runs=tuple(run.to_dict() for run in self.tool_runs.values()),
                progress_percent=self.progress_percent,
                start_time=self.start_time,
                end_time=self.end_time,
                error=error,
            )

    def to_dict(self) -> Dict[str, Any]:
        return self.snapshot().to_dict(include_findings=False)


__all__ = [
    "ScanSession",
    "SessionSnapshot",
    "SessionStatus",
    "ToolRun",
    "ToolRunStatus",
    "unique_tools",
]
