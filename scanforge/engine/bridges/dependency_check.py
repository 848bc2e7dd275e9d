"""
OWASP Dependency-Check bridge.

Dependency-Check writes its JSON report to an output directory instead of
stdout, so each run gets a scratch directory that is removed afterwards. The
tool is slow and needs an NVD data feed, which is why it is disabled unless
`odc_enabled` is set.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List

from scanforge.base.config import ToolsConfig
from scanforge.base.findings import VULNERABLE_DEPENDENCY, Finding
from scanforge.engine.bridges.base import ToolBridge
from scanforge.errors import ParseFailure
from scanforge.toolkit.normalizer import map_odc_severity, odc_fix
from scanforge.toolkit.registry import DEPENDENCY_CHECK, get_tool_command

logger = logging.getLogger(__name__)

REPORT_NAME = "dependency-check-report.json"


def _references(vuln: Dict[str, Any]) -> tuple:
    refs = []
    for ref in vuln.get("references") or []:
        value = (ref.get("url") or ref.get("name")) if isinstance(ref, dict) else ref
        if value:
            refs.append(str(value))
    return tuple(refs)


def parse_dependency_check_report(report: Dict[str, Any]) -> List[Finding]:
    """Findings from a parsed `dependency-check-report.json` document."""
    findings: List[Finding] = []
    for dependency in report.get("dependencies") or []:
        for vuln in dependency.get("vulnerabilities") or []:
            advisory = vuln.get("name") or vuln.get("uuid") or "UNKNOWN"
            findings.append(Finding(
                id=advisory,
                tool=DEPENDENCY_CHECK,
                severity=map_odc_severity(vuln.get("severity")),
                category=VULNERABLE_DEPENDENCY,
                file=dependency.get("fileName") or "Unknown",
                line=0,
                description=vuln.get("description") or vuln.get("name") or "",
                fix=odc_fix(dependency, vuln),
                references=_references(vuln),
                metadata={
                    "advisory": advisory,
                    "cwes": list(vuln.get("cwes") or []),
                    "source": vuln.get("source"),
                },
            ))
    return findings


def load_report(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ParseFailure(
            f"{DEPENDENCY_CHECK} did not write {REPORT_NAME}",
            details={"path": str(path)},
        )
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise ParseFailure(
            f"{DEPENDENCY_CHECK} report could not be read: {exc}",
            details={"path": str(path)},
        ) from exc


class DependencyCheckBridge(ToolBridge):
    name = DEPENDENCY_CHECK

    def __init__(self, config: ToolsConfig, timeout: float, **kwargs):
        super().__init__(timeout, **kwargs)
        self.config = config
        self.binary = config.odc_path

    async def probe(self) -> bool:
        if not self.config.odc_enabled:
            logger.info(f"[{self.name}] Disabled by configuration")
            return False
        result = await self._runner(
            [self.binary, "--version"],
            timeout=self.config.probe_timeout_seconds,
        )
        return "dependency-check" in result.stdout.lower()

    def build_command(self, tool_root: str, out_dir: str) -> List[str]:
        argv = get_tool_command(self.name, {
            "binary": self.binary,
            "project": Path(tool_root).name or "scan",
            "path": tool_root,
            "out": out_dir,
        })
        if self.config.odc_nvd_api_key:
            argv += ["--nvdApiKey", self.config.odc_nvd_api_key]
        return self.namespace.wrap(argv)

    async def execute(self, target_root: str) -> AsyncIterator[Finding]:
        tool_root = await self.namespace.translate(target_root)
        with tempfile.TemporaryDirectory(prefix="scanforge-odc-") as out_dir:
            await self._runner(self.build_command(tool_root, out_dir), timeout=self.timeout)
            report = load_report(Path(out_dir) / REPORT_NAME)

        for finding in parse_dependency_check_report(report):
            yield finding
