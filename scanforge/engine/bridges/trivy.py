"""Trivy bridge: vulnerable dependencies and leaked secrets in a filesystem tree."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List

from scanforge.base.config import ToolsConfig
from scanforge.base.findings import VULNERABLE_DEPENDENCY, Finding
from scanforge.engine.bridges.base import ToolBridge, parse_json, relative_to_root
from scanforge.toolkit.normalizer import map_trivy_severity, trivy_fix
from scanforge.toolkit.registry import TRIVY, get_tool_command

logger = logging.getLogger(__name__)

EXPOSED_SECRET = "Exposed Secret"


def _vulnerability(target: str, vuln: Dict[str, Any]) -> Finding:
    vuln_id = vuln.get("VulnerabilityID") or "UNKNOWN"
    return Finding(
        id=vuln_id,
        tool=TRIVY,
        severity=map_trivy_severity(vuln.get("Severity")),
        category=VULNERABLE_DEPENDENCY,
        file=target,
        line=0,
        description=vuln.get("Description") or vuln.get("Title") or vuln_id,
        fix=trivy_fix(vuln),
        references=tuple(vuln.get("References") or ()),
        metadata={
            "advisory": vuln_id,
            "pkgName": vuln.get("PkgName"),
            "installedVersion": vuln.get("InstalledVersion"),
            "fixedVersion": vuln.get("FixedVersion"),
            "cweIDs": list(vuln.get("CweIDs") or []),
        },
    )


def _secret(target: str, secret: Dict[str, Any]) -> Finding:
    rule = secret.get("RuleID") or "secret"
    return Finding(
        id=rule,
        tool=TRIVY,
        severity=map_trivy_severity(secret.get("Severity")),
        category=EXPOSED_SECRET,
        file=target,
        line=int(secret.get("StartLine") or 0),
        description=secret.get("Title") or f"Secret matched rule {rule}",
        fix="Move sensitive data to environment variables or secure configuration",
        metadata={"category": secret.get("Category")},
    )


def parse_trivy_output(output: str, tool_root: str = "") -> List[Finding]:
    """Turn `trivy fs --format json` output into findings. Raises ParseFailure on bad JSON."""
    data = parse_json(output, TRIVY)
    if not isinstance(data, dict):
        return []

    findings: List[Finding] = []
    for result in data.get("Results") or []:
        target = relative_to_root(result.get("Target") or "", tool_root)
        for vuln in result.get("Vulnerabilities") or []:
            findings.append(_vulnerability(target, vuln))
        for secret in result.get("Secrets") or []:
            findings.append(_secret(target, secret))
    return findings


class TrivyBridge(ToolBridge):
    name = TRIVY

    def __init__(self, config: ToolsConfig, timeout: float, **kwargs):
        super().__init__(timeout, **kwargs)
        self.config = config
        self.binary = config.trivy_binary

    def build_command(self, tool_root: str) -> List[str]:
        argv = get_tool_command(self.name, {
            "binary": self.binary,
            "severities": self.config.trivy_severities,
            "path": tool_root,
        })
        return self.namespace.wrap(argv)

    async def execute(self, target_root: str) -> AsyncIterator[Finding]:
        tool_root = await self.namespace.translate(target_root)
        result = await self._runner(self.build_command(tool_root), timeout=self.timeout)
        for finding in parse_trivy_output(result.stdout, tool_root):
            yield finding
