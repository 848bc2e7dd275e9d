from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from scanforge.errors import ErrorCode, ScanForgeError
from scanforge.server.state import get_state
from scanforge.toolkit.registry import TOOLS, canonical_tool_name

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scans", tags=["scans"])


class ScanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_id: str = Field(..., alias="targetId", min_length=1, max_length=4096)
    selected_tools: List[str] = Field(default_factory=list, alias="selectedTools")

    @field_validator("target_id")
    @classmethod
    def validate_target(cls, v: str) -> str:
        v = v.strip()
        if not v:
            logger.warning("Scan start rejected: empty target")
            raise ValueError("Target cannot be empty")
        return v

    @field_validator("selected_tools")
    @classmethod
    def validate_tools(cls, v: List[str]) -> List[str]:
        tools = []
        invalid = []
        for name in v:
            canonical = canonical_tool_name(name)
            if canonical is None:
                invalid.append(name)
            elif canonical not in tools:
                tools.append(canonical)
        if invalid:
            raise ValueError(
                f"Invalid tool names: {', '.join(invalid)}. Valid tools: {', '.join(TOOLS)}"
            )
        return tools


def _websocket_url(request: Request, scan_id: str) -> str:
    base = str(request.base_url)
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}ws/{scan_id}"


@router.post("")
async def start_scan(req: ScanRequest, request: Request):
    """Start a scan in the background and return its id."""
    if not req.selected_tools:
        raise ScanForgeError(
            "Select at least one tool",
            code=ErrorCode.SCAN_NO_TOOLS_SELECTED,
        )

    state = get_state()
    scan_id = await state.orchestrator.start_scan(req.target_id, req.selected_tools)
    logger.info(f"[API] Scan {scan_id} started for {req.target_id} with {req.selected_tools}")
    return {
        "scanId": scan_id,
        "websocketUrl": _websocket_url(request, scan_id),
        "status": "started",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("")
async def list_scans():
    state = get_state()
    return [snapshot.to_dict(include_findings=False) for snapshot in state.orchestrator.list_sessions()]


@router.get("/{scan_id}")
async def get_scan(scan_id: str):
    """Session status without the finding list."""
    snapshot = get_state().orchestrator.get_session(scan_id)
    return snapshot.to_dict(include_findings=False)


@router.get("/{scan_id}/results")
async def get_results(scan_id: str) -> Dict[str, Any]:
    """
    Findings of a session with a severity summary.

    While the session is running this is the partial list gathered from the
    tools that have finished; once COMPLETED it is the deduplicated list.
    """
    snapshot = get_state().orchestrator.get_session(scan_id)
    return {
        "scanId": snapshot.id,
        "status": snapshot.status.value,
        "progressPercent": snapshot.progress_percent,
        "totalFindings": len(snapshot.findings),
        "summary": snapshot.severity_summary(),
        "toolErrors": snapshot.tool_errors,
        "results": [finding.to_dict() for finding in snapshot.findings],
    }
