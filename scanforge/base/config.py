# ============================================================================
# scanforge/base/config.py
# Application Configuration Management
# ============================================================================
#
# PURPOSE:
# Every tunable of the scan engine lives here: tool timeouts, where staged
# targets are found, how external tools are reached, and how logging behaves.
#
# KEY CONCEPTS:
# 1. Frozen dataclasses: each section is immutable once built
# 2. Environment variables: every setting can be overridden (SCANFORGE_*)
# 3. Singleton: get_config() returns one shared instance, set_config() swaps it
#
# ============================================================================

from __future__ import annotations

import os
import sys
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from scanforge.errors import ErrorCode, ScanForgeError

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_number(name: str, default: str, cast=float):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ScanForgeError(
            f"Invalid value for {name}: {raw!r}",
            code=ErrorCode.CONFIG_INVALID,
            details={"variable": name},
        )


def _default_odc_path() -> str:
    # Dependency-Check ships a .bat launcher on Windows and a .sh one elsewhere
    return "dependency-check.bat" if sys.platform == "win32" else "dependency-check.sh"


# ============================================================================
# Scan Execution Configuration
# ============================================================================

@dataclass(frozen=True)
class ScanConfig:
    # Per-invocation wall clock for one external tool, in seconds.
    # The process is killed when it runs longer.
    tool_timeout_seconds: float = 300.0

    # 1 = tools run one after another (the execution namespace may not
    # tolerate concurrent invocations). Higher values run that many at once.
    max_concurrent_tools: int = 1

    # Replace every bridge by its deterministic simulation
    simulate_tools: bool = False

    # Artificial delay range for simulated findings, in seconds
    mock_delay_min: float = 0.3
    mock_delay_max: float = 1.0

    # Publish a "finding" event for every discovered finding
    emit_finding_events: bool = True


# ============================================================================
# Target Resolution Configuration
# ============================================================================

@dataclass(frozen=True)
class TargetConfig:
    # Where the upload/clone subsystem stages targets, one directory per UUID
    staging_dir: Path = field(default_factory=lambda: Path.home() / ".scanforge" / "staging")

    # Resolve unrecognised identifiers against the working directory.
    # Off unless explicitly enabled; every use is logged at WARNING.
    allow_cwd_fallback: bool = False

    # When non-empty, direct scans may only be registered below these roots
    direct_scan_roots: Tuple[str, ...] = ()


# ============================================================================
# External Tool Configuration
# ============================================================================

@dataclass(frozen=True)
class ToolsConfig:
    # "auto" picks WSL2 on Windows and the native namespace elsewhere
    execution_namespace: str = "auto"

    # Timeout for availability probes and path translation helpers, seconds
    probe_timeout_seconds: float = 5.0

    # Timeout for the one-time WSL warm-up command
    prewarm_timeout_seconds: float = 10.0

    # Host path fragments that can be mapped to /mnt/<drive>/... without
    # asking wslpath
    wsl_direct_markers: Tuple[str, ...] = ("\\temp\\", "\\uploads\\", "\\staging\\")

    semgrep_binary: str = "semgrep"
    semgrep_rules: str = "auto"

    trivy_binary: str = "trivy"
    trivy_severities: str = "CRITICAL,HIGH,MEDIUM,LOW"

    # OWASP Dependency-Check is slow and needs an NVD mirror, so it is opt-in
    odc_enabled: bool = False
    odc_path: str = field(default_factory=_default_odc_path)
    odc_nvd_api_key: Optional[str] = None


# ============================================================================
# Security Configuration
# ============================================================================
# There is no authentication layer; only browser origins are restricted.

@dataclass(frozen=True)
class SecurityConfig:
    allowed_origins: Tuple[str, ...] = ("http://127.0.0.1:3000", "http://localhost:3000")


# ============================================================================
# Logging Configuration
# ============================================================================

@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    # Optional rotating log file; console only when unset
    file_path: Optional[Path] = None
    max_file_size_mb: int = 10
    backup_count: int = 5


# ============================================================================
# Master Configuration Container
# ============================================================================

@dataclass
class ScanForgeConfig:
    scan: ScanConfig = field(default_factory=ScanConfig)
    targets: TargetConfig = field(default_factory=TargetConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    log: LogConfig = field(default_factory=LogConfig)

    debug: bool = False
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    @classmethod
    def from_env(cls) -> "ScanForgeConfig":
        """Build a configuration from SCANFORGE_* environment variables."""
        scan = ScanConfig(
            tool_timeout_seconds=_env_number("SCANFORGE_TOOL_TIMEOUT", "300"),
            max_concurrent_tools=max(1, _env_number("SCANFORGE_MAX_CONCURRENT_TOOLS", "1", int)),
            simulate_tools=_env_bool("SCANFORGE_SIMULATE_TOOLS"),
            mock_delay_min=_env_number("SCANFORGE_MOCK_DELAY_MIN", "0.3"),
            mock_delay_max=_env_number("SCANFORGE_MOCK_DELAY_MAX", "1.0"),
            emit_finding_events=_env_bool("SCANFORGE_EMIT_FINDING_EVENTS", "true"),
        )

        staging = os.getenv("SCANFORGE_STAGING_DIR")
        targets = TargetConfig(
            staging_dir=Path(staging) if staging else Path.home() / ".scanforge" / "staging",
            allow_cwd_fallback=_env_bool("SCANFORGE_ALLOW_CWD_FALLBACK"),
            direct_scan_roots=_env_list("SCANFORGE_DIRECT_SCAN_ROOTS"),
        )

        tools = ToolsConfig(
            execution_namespace=os.getenv("SCANFORGE_EXECUTION_NAMESPACE", "auto").lower(),
            probe_timeout_seconds=_env_number("SCANFORGE_PROBE_TIMEOUT", "5"),
            semgrep_binary=os.getenv("SCANFORGE_SEMGREP_BINARY", "semgrep"),
            semgrep_rules=os.getenv("SCANFORGE_SEMGREP_RULES", "auto"),
            trivy_binary=os.getenv("SCANFORGE_TRIVY_BINARY", "trivy"),
            odc_enabled=_env_bool("SCANFORGE_ODC_ENABLED"),
            odc_path=os.getenv("SCANFORGE_ODC_PATH") or _default_odc_path(),
            odc_nvd_api_key=os.getenv("SCANFORGE_ODC_NVD_API_KEY") or None,
        )

        origins = _env_list("SCANFORGE_ALLOWED_ORIGINS")
        security = SecurityConfig(allowed_origins=origins) if origins else SecurityConfig()

        log_file = os.getenv("SCANFORGE_LOG_FILE")
        log = LogConfig(
            level=os.getenv("SCANFORGE_LOG_LEVEL", "INFO"),
            file_path=Path(log_file) if log_file else None,
        )

        return cls(
            scan=scan,
            targets=targets,
            tools=tools,
            security=security,
            log=log,
            debug=_env_bool("SCANFORGE_DEBUG"),
            api_host=os.getenv("SCANFORGE_API_HOST", "127.0.0.1"),
            api_port=_env_number("SCANFORGE_API_PORT", "8765", int),
        )


# ============================================================================
# Global Configuration Singleton
# ============================================================================

_config: Optional[ScanForgeConfig] = None


def get_config() -> ScanForgeConfig:
    """
    Get the global configuration instance.

    Loaded from the environment on first use, then reused.
    """
    global _config
    if _config is None:
        _config = ScanForgeConfig.from_env()
    return _config


def set_config(config: Optional[ScanForgeConfig]) -> None:
    """Replace the global configuration (mainly used for testing). None forces a reload."""
    global _config
    _config = config


def setup_logging(config: Optional[ScanForgeConfig] = None) -> None:
    """
    Configure Python's logging system based on our settings.

    Sets up console logging and, when a log file is configured, a rotating
    file handler. Call this once at application startup.
    """
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_path is not None:
        from logging.handlers import RotatingFileHandler
        cfg.log.file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            cfg.log.file_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = "DEBUG" if cfg.debug else cfg.log.level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
