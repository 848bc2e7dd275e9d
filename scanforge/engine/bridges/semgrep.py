"""Semgrep bridge: static analysis of source code."""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Dict, List

from scanforge.base.config import ToolsConfig
from scanforge.base.findings import Finding
from scanforge.engine.bridges.base import ToolBridge, parse_json, relative_to_root
from scanforge.toolkit.normalizer import map_semgrep_severity, semgrep_fix
from scanforge.toolkit.registry import SEMGREP, get_tool_command

logger = logging.getLogger(__name__)


def _category(result: Dict[str, Any]) -> str:
    metadata = (result.get("extra") or {}).get("metadata") or {}
    category = metadata.get("category")
    if category:
        return str(category)
    check_id = result.get("check_id") or ""
    if check_id:
        return check_id.split(".")[-1]
    return "Security Issue"


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def parse_semgrep_output(output: str, tool_root: str = "") -> List[Finding]:
    """Turn `semgrep --json` output into findings. Raises ParseFailure on bad JSON."""
    data = parse_json(output, SEMGREP)
    if not isinstance(data, dict):
        return []

    for error in data.get("errors") or []:
        logger.warning(f"[Semgrep] Reported error: {error.get('message') or error.get('type')}")

    findings: List[Finding] = []
    for result in data.get("results") or []:
        extra = result.get("extra") or {}
        metadata = extra.get("metadata") or {}
        severity = result.get("severity") or extra.get("severity") or "INFO"

        findings.append(Finding(
            id=result.get("check_id") or result.get("fingerprint") or extra.get("fingerprint") or str(uuid.uuid4()),
            tool=SEMGREP,
            severity=map_semgrep_severity(severity),
            category=_category(result),
            file=relative_to_root(result.get("path") or "", tool_root),
            line=int((result.get("start") or {}).get("line") or 0),
            description=extra.get("message") or result.get("message") or result.get("check_id") or "",
            fix=semgrep_fix(result),
            references=tuple(str(ref) for ref in _as_list(metadata.get("references"))),
            metadata={
                "confidence": metadata.get("confidence", "MEDIUM"),
                "impact": metadata.get("impact", "MEDIUM"),
                "cwe": _as_list(metadata.get("cwe")),
                "owasp": _as_list(metadata.get("owasp")),
            },
        ))
    return findings


class SemgrepBridge(ToolBridge):
    name = SEMGREP

    def __init__(self, config: ToolsConfig, timeout: float, **kwargs):
        super().__init__(timeout, **kwargs)
        self.config = config
        self.binary = config.semgrep_binary

    def build_command(self, tool_root: str) -> List[str]:
        argv = get_tool_command(self.name, {
            "binary": self.binary,
            "rules": self.config.semgrep_rules,
            "path": tool_root,
        })
        return self.namespace.wrap(argv)

    async def execute(self, target_root: str) -> AsyncIterator[Finding]:
        tool_root = await self.namespace.translate(target_root)
        result = await self._runner(self.build_command(tool_root), timeout=self.timeout)
        for finding in parse_semgrep_output(result.stdout, tool_root):
            yield finding
