from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from scanforge.base.session import SessionStatus
from scanforge.server.state import get_state
from scanforge.toolkit.diagnostics import check_tools

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check():
    """Simple health check endpoint."""
    state = get_state()
    running = sum(
        1 for snapshot in state.orchestrator.list_sessions()
        if snapshot.status == SessionStatus.RUNNING
    )
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "simulated": state.config.scan.simulate_tools,
        "runningScans": running,
    }


@router.get("/tools")
async def list_tools():
    """Availability of every registered tool."""
    statuses = await check_tools(get_state().bridges)
    return [status.model_dump() for status in statuses]
