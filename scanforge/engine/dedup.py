"""
Cross-tool result deduplication.

Several tools regularly report the same issue (a vulnerable dependency seen by
both Trivy and Dependency-Check, say). Findings are collapsed on
`(file, line, category)`: the first occurrence is kept and the names of the
other reporting tools are appended to its `tool` field.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from scanforge.base.findings import Finding


def dedupe(findings: Iterable[Finding]) -> List[Finding]:
    """
    Collapse findings that refer to the same issue.

    Output keeps the order in which keys were first seen. Inputs are never
    mutated, and `dedupe(dedupe(x)) == dedupe(x)`.
    """
    canonical: Dict[Tuple[str, int, str], Finding] = {}
    tools: Dict[Tuple[str, int, str], List[str]] = {}

    for finding in findings:
        key = finding.dedup_key
        if key not in canonical:
            canonical[key] = finding
            tools[key] = list(finding.tools)
            continue

        known = tools[key]
        for name in finding.tools:
            if name not in known:
                known.append(name)

    merged: List[Finding] = []
    for key, finding in canonical.items():
        if list(finding.tools) == tools[key]:
            merged.append(finding)
        else:
            merged.append(finding.with_tools(tools[key]))
    return merged
