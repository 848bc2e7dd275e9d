"""Tool bridges and the registry the orchestrator looks them up in."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from scanforge.base.config import ScanForgeConfig
from scanforge.engine.bridges.base import ToolBridge, ToolRunResult
from scanforge.engine.bridges.dependency_check import DependencyCheckBridge
from scanforge.engine.bridges.semgrep import SemgrepBridge
from scanforge.engine.bridges.simulated import SimulatedBridge
from scanforge.engine.bridges.trivy import TrivyBridge
from scanforge.engine.executor import CommandRunner
from scanforge.engine.namespace import NativeNamespace, create_namespace
from scanforge.toolkit.registry import DEPENDENCY_CHECK, SEMGREP, TOOLS, TRIVY, canonical_tool_name

logger = logging.getLogger(__name__)


class BridgeRegistry:
    """Process-wide set of bridges keyed by tool name."""

    def __init__(self, bridges: Optional[Iterable[ToolBridge]] = None):
        self._bridges: Dict[str, ToolBridge] = {}
        for bridge in bridges or ():
            self.register(bridge)

    def register(self, bridge: ToolBridge) -> None:
        self._bridges[bridge.name] = bridge

    def get(self, name: str) -> Optional[ToolBridge]:
        if name in self._bridges:
            return self._bridges[name]
        canonical = canonical_tool_name(name)
        if canonical and canonical in self._bridges:
            return self._bridges[canonical]
        lowered = (name or "").strip().lower()
        for key, bridge in self._bridges.items():
            if key.lower() == lowered:
                return bridge
        return None

    def names(self) -> List[str]:
        return list(self._bridges)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __iter__(self):
        return iter(self._bridges.values())

    @classmethod
    def from_config(cls, config: ScanForgeConfig, runner: Optional[CommandRunner] = None) -> "BridgeRegistry":
        """Build the real bridges, or their simulations when `simulate_tools` is set."""
        if config.scan.simulate_tools:
            delays = (config.scan.mock_delay_min, config.scan.mock_delay_max)
            logger.info("[Bridges] Tool simulation enabled")
            return cls(SimulatedBridge(name, delay_range=delays) for name in TOOLS)

        timeout = config.scan.tool_timeout_seconds
        # WSL-capable tools share one namespace (and its path cache)
        shared = create_namespace(config.tools, runner=runner)

        def namespace_for(name: str):
            return shared if TOOLS[name]["wsl_capable"] else NativeNamespace()

        return cls([
            SemgrepBridge(config.tools, timeout, namespace=namespace_for(SEMGREP), runner=runner),
            TrivyBridge(config.tools, timeout, namespace=namespace_for(TRIVY), runner=runner),
            DependencyCheckBridge(config.tools, timeout, namespace=namespace_for(DEPENDENCY_CHECK), runner=runner),
        ])


__all__ = [
    "BridgeRegistry",
    "DependencyCheckBridge",
    "SemgrepBridge",
    "SimulatedBridge",
    "ToolBridge",
    "ToolRunResult",
    "TrivyBridge",
]
