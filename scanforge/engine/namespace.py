"""
Execution namespaces.

A tool does not always see the host filesystem the way we do. Semgrep and
Trivy on Windows run inside WSL2, where `C:\\scans\\app` is `/mnt/c/scans/app`.
An ExecutionNamespace answers three questions for a bridge: can the namespace
be used on this host, what is a host path called inside it, and how is a
command launched inside it.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import sys
import threading
from typing import Dict, List, Optional, Sequence

from scanforge.base.config import ToolsConfig
from scanforge.engine.executor import CommandRunner, run_command

logger = logging.getLogger(__name__)

DRIVE_PATH = re.compile(r"^([A-Za-z]):[\\/]")
WSL_VERSION_MARKERS = ("Version: 2", "WSL 2", "Default Version: 2")


def manual_wsl_path(host_path: str) -> str:
    """`C:\\a\\b` -> `/mnt/c/a/b`. Non-drive paths only get their separators flipped."""
    match = DRIVE_PATH.match(host_path)
    if not match:
        return host_path.replace("\\", "/")
    drive = match.group(1).lower()
    rest = host_path[3:].replace("\\", "/").strip("/")
    return f"/mnt/{drive}/{rest}" if rest else f"/mnt/{drive}"


class ExecutionNamespace:
    name = "native"

    async def is_available(self) -> bool:
        return True

    async def translate(self, host_path: str) -> str:
        return host_path

    def wrap(self, argv: Sequence[str]) -> List[str]:
        return list(argv)

    async def has_executable(self, binary: str) -> bool:
        return shutil.which(binary) is not None


class NativeNamespace(ExecutionNamespace):
    """Tools run directly on the host; paths are used unchanged."""


class WslNamespace(ExecutionNamespace):
    """
    WSL2 on a Windows host.

    Availability is probed once with `wsl --status`. Host paths are mapped to
    `/mnt/<drive>/...`: directly for well-known staging/upload prefixes,
    otherwise via `wsl wslpath`, and by the manual rule when that fails.
    Every translation is cached for the life of the instance.
    """

    name = "wsl"

    def __init__(
        self,
        config: ToolsConfig,
        runner: Optional[CommandRunner] = None,
        platform: Optional[str] = None,
        available: Optional[bool] = None,
    ):
        self.config = config
        self._runner = runner or run_command
        self._platform = platform or sys.platform
        self._available = available
        self._probe_lock = asyncio.Lock()
        self._warmed = False

        self._cache_lock = threading.Lock()
        self._path_cache: Dict[str, str] = {}

    async def is_available(self) -> bool:
        if self._available is not None:
            return self._available

        async with self._probe_lock:
            if self._available is None:
                self._available = await self._probe()
        return self._available

    async def _probe(self) -> bool:
        if self._platform != "win32":
            logger.info(f"[WSL] Not available on platform {self._platform}")
            return False
        try:
            result = await self._runner(
                ["wsl", "--status"],
                timeout=self.config.probe_timeout_seconds,
                allow_empty_output=True,
            )
        except Exception as e:
            logger.warning(f"[WSL] Status probe failed: {e}")
            return False

        output = (result.stdout + result.stderr).replace("\x00", "")
        available = any(marker in output for marker in WSL_VERSION_MARKERS)
        if not available:
            logger.warning("[WSL] WSL2 not detected in `wsl --status` output")
        return available

    async def prewarm(self) -> None:
        """Start the WSL VM once so the first real tool call is not slowed down."""
        if self._warmed:
            return
        self._warmed = True
        try:
            await self._runner(
                ["wsl", "echo", "WSL Ready"],
                timeout=self.config.prewarm_timeout_seconds,
            )
            logger.info("[WSL] Pre-warmed")
        except Exception as e:
            logger.warning(f"[WSL] Pre-warm failed, continuing: {e}")

    def cached_translation(self, host_path: str) -> Optional[str]:
        with self._cache_lock:
            return self._path_cache.get(host_path)

    def _remember(self, host_path: str, wsl_path: str) -> str:
        with self._cache_lock:
            self._path_cache.setdefault(host_path, wsl_path)
            return self._path_cache[host_path]

    def direct_mapping(self, host_path: str) -> Optional[str]:
        """Map staging/upload style drive paths without spawning wslpath."""
        if not DRIVE_PATH.match(host_path):
            return None
        lowered = host_path.lower().replace("/", "\\")
        if not any(marker.lower() in lowered for marker in self.config.wsl_direct_markers):
            return None
        return manual_wsl_path(host_path)

    async def translate(self, host_path: str) -> str:
        cached = self.cached_translation(host_path)
        if cached is not None:
            return cached

        await self.prewarm()

        direct = self.direct_mapping(host_path)
        if direct is not None:
            logger.debug(f"[WSL] Direct mapping {host_path} -> {direct}")
            return self._remember(host_path, direct)

        try:
            result = await self._runner(
                ["wsl", "wslpath", host_path],
                timeout=self.config.probe_timeout_seconds,
            )
            translated = result.stdout.strip()
            if not translated:
                raise ValueError("wslpath returned no output")
        except Exception as e:
            translated = manual_wsl_path(host_path)
            logger.warning(f"[WSL] wslpath failed for {host_path} ({e}); using {translated}")

        return self._remember(host_path, translated)

    async def has_executable(self, binary: str) -> bool:
        # the distro is probed, not each tool inside it
        return True

    def wrap(self, argv: Sequence[str]) -> List[str]:
        return ["wsl", *argv]


def create_namespace(config: ToolsConfig, runner: Optional[CommandRunner] = None) -> ExecutionNamespace:
    """Pick the namespace for WSL-capable tools from `execution_namespace`."""
    choice = (config.execution_namespace or "auto").lower()
    if choice == "auto":
        choice = "wsl" if sys.platform == "win32" else "native"
    if choice == "wsl":
        return WslNamespace(config, runner=runner)
    if choice != "native":
        logger.warning(f"[Namespace] Unknown execution namespace {choice!r}; using native")
    return NativeNamespace()
