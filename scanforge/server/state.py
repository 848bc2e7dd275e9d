from __future__ import annotations

import logging
from typing import Optional

from scanforge.base.config import ScanForgeConfig, get_config
from scanforge.base.events import ProgressChannel
from scanforge.engine.bridges import BridgeRegistry
from scanforge.engine.orchestrator import ScanOrchestrator
from scanforge.engine.resolver import DirectScanRegistry, TargetResolver

logger = logging.getLogger(__name__)


class ApplicationState:
    """Process-wide services shared by every request and every session."""

    _instance: Optional["ApplicationState"] = None

    @classmethod
    def instance(cls) -> "ApplicationState":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self, config: Optional[ScanForgeConfig] = None, bridges: Optional[BridgeRegistry] = None):
        self.config = config or get_config()

        self.registry = DirectScanRegistry(self.config.targets.direct_scan_roots)
        self.resolver = TargetResolver(self.config.targets, self.registry)
        self.bridges = bridges or BridgeRegistry.from_config(self.config)
        self.channel = ProgressChannel()
        self.orchestrator = ScanOrchestrator(
            self.resolver,
            self.bridges,
            self.channel,
            self.config.scan,
        )
        logger.info(f"[State] Initialized with tools {self.bridges.names()}")


def get_state() -> ApplicationState:
    return ApplicationState.instance()


def set_state(state: Optional[ApplicationState]) -> None:
    """Install a prebuilt state (tests), or None to rebuild lazily."""
    ApplicationState._instance = state


def reset_state() -> None:
    set_state(None)
