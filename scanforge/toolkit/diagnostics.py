"""Tool availability report, shared by `GET /api/tools` and `scanforge tools`."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel

from scanforge.toolkit.registry import TOOLS

logger = logging.getLogger(__name__)


class ToolStatus(BaseModel):
    name: str
    label: str
    available: bool
    simulated: bool = False
    binary: Optional[str] = None
    install_hint: Optional[str] = None


async def check_tools(registry) -> List[ToolStatus]:
    """
    Probe every bridge in `registry` concurrently.

    Probing goes through ToolBridge.is_available(), so results are cached
    and later scans do not pay for the probe again.
    """
    bridges = list(registry)
    results = await asyncio.gather(*(bridge.is_available() for bridge in bridges))

    statuses: List[ToolStatus] = []
    for bridge, available in zip(bridges, results):
        tdef = TOOLS.get(bridge.name, {})
        statuses.append(ToolStatus(
            name=bridge.name,
            label=tdef.get("label", bridge.name),
            available=available,
            simulated=bridge.simulated,
            binary=bridge.binary or tdef.get("binary"),
            install_hint=None if available else tdef.get("install_hint"),
        ))
        logger.debug(f"[Diagnostics] {bridge.name}: available={available}")
    return statuses
