"""
Target resolution.

Maps the opaque target identifier a caller hands in onto a concrete, checked
directory on the local filesystem.

Resolution order (first match wins):
  1. registered direct scan  -> the registered absolute path
  2. absolute path           -> as-is
  3. UUID-shaped identifier  -> <staging_dir>/<id>
  4. anything else           -> <staging_dir>/<id> if present, then (opt-in
                                only) the process working directory
The result must exist and be a directory.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Sequence

from scanforge.base.config import TargetConfig
from scanforge.errors import InvalidTarget

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_uuid_like(value: str) -> bool:
    return bool(UUID_PATTERN.match(value))


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


class DirectScanRegistry:
    """
    Directories registered for in-place scanning (no staging copy).

    Thread-safe; shared by the HTTP layer (registration) and the resolver.
    """

    def __init__(self, allowed_roots: Sequence[str] = ()):
        self._lock = threading.Lock()
        self._paths: Dict[str, Path] = {}
        self._allowed_roots = tuple(Path(root).resolve() for root in allowed_roots)

    def register(self, folder_path: str, target_id: Optional[str] = None) -> str:
        """Register an existing absolute directory and return its target id."""
        if not folder_path or not os.path.isabs(folder_path):
            raise InvalidTarget(
                "Direct scan path must be absolute",
                details={"folder_path": folder_path},
            )

        path = Path(folder_path)
        if not path.is_dir():
            raise InvalidTarget(
                "Direct scan path is not an existing directory",
                details={"folder_path": folder_path},
            )

        if self._allowed_roots:
            real = path.resolve()
            if not any(_is_within(real, root) for root in self._allowed_roots):
                raise InvalidTarget(
                    "Direct scan path is outside the allowed scan roots",
                    details={"folder_path": folder_path},
                )

        target_id = target_id or f"{path.name or 'root'}-{int(time.time() * 1000)}"
        with self._lock:
            self._paths[target_id] = path
        logger.info(f"[Registry] Registered direct scan {target_id} -> {path}")
        return target_id

    def get_path(self, target_id: str) -> Optional[Path]:
        with self._lock:
            return self._paths.get(target_id)

    def is_direct(self, target_id: str) -> bool:
        with self._lock:
            return target_id in self._paths

    def unregister(self, target_id: str) -> bool:
        with self._lock:
            removed = self._paths.pop(target_id, None)
        if removed is not None:
            logger.info(f"[Registry] Unregistered direct scan {target_id}")
        return removed is not None

    def mappings(self) -> Dict[str, str]:
        with self._lock:
            return {target_id: str(path) for target_id, path in self._paths.items()}


class TargetResolver:
    def __init__(self, config: TargetConfig, registry: Optional[DirectScanRegistry] = None):
        self.config = config
        self.registry = registry or DirectScanRegistry(config.direct_scan_roots)

    @property
    def staging_dir(self) -> Path:
        return Path(self.config.staging_dir)

    def resolve(self, target_id: str) -> Path:
        """Return the directory to scan for `target_id` or raise InvalidTarget."""
        if not target_id or not target_id.strip():
            raise InvalidTarget("Target id is empty")

        target_id = target_id.strip()
        path = self._locate(target_id)

        if not path.exists():
            raise InvalidTarget(
                f"Target path does not exist: {path}",
                details={"target_id": target_id, "path": str(path)},
            )
        if not path.is_dir():
            raise InvalidTarget(
                f"Target path is not a directory: {path}",
                details={"target_id": target_id, "path": str(path)},
            )

        logger.debug(f"[Resolver] {target_id} -> {path}")
        return path

    def _locate(self, target_id: str) -> Path:
        registered = self.registry.get_path(target_id)
        if registered is not None:
            logger.info(f"[Resolver] Direct scan target {target_id}")
            return registered

        if os.path.isabs(target_id):
            return Path(target_id)

        if is_uuid_like(target_id):
            return self._staged(target_id)

        return self._fallback(target_id)

    def _staged(self, target_id: str) -> Path:
        root = self.staging_dir
        path = root / target_id
        # a symlinked staging entry must not lead outside the staging root
        if path.exists() and not _is_within(path.resolve(), root.resolve()):
            raise InvalidTarget(
                "Staged target escapes the staging directory",
                details={"target_id": target_id},
            )
        return path

    def _fallback(self, target_id: str) -> Path:
        staged = self.staging_dir / target_id
        if staged.is_dir() and _is_within(staged.resolve(), self.staging_dir.resolve()):
            return staged

        if not self.config.allow_cwd_fallback:
            raise InvalidTarget(
                f"Unrecognised target id: {target_id}",
                details={"target_id": target_id},
            )

        local = Path.cwd() / target_id
        logger.warning(
            f"[Resolver] Target {target_id!r} is neither staged nor registered; "
            f"falling back to working directory path {local}"
        )
        return local
