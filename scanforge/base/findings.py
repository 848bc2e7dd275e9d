# scanforge/base/findings.py: normalized finding record

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Optional, Tuple

from scanforge.toolkit.normalizer import Severity

TOOL_SEPARATOR = ", "

# Category of dependency advisories; the advisory id lives in metadata["advisory"]
VULNERABLE_DEPENDENCY = "Vulnerable Dependency"


@dataclass(frozen=True)
class Finding:
    """
    One normalized security observation.

    `(file, line, category)` identifies the underlying issue; two findings
    sharing it are the same issue whichever tool reported them. Records are
    immutable; merging produces a new record via `with_tools()`.
    """

    tool: str
    severity: Severity
    category: str
    file: str
    line: int = 0
    description: str = ""
    fix: Optional[str] = None
    references: Tuple[str, ...] = ()
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def dedup_key(self) -> Tuple[str, int, str]:
        return (self.file, self.line, self.category)

    @property
    def tools(self) -> Tuple[str, ...]:
        return split_tools(self.tool)

    def with_tools(self, tools: Iterable[str]) -> "Finding":
        return replace(self, tool=TOOL_SEPARATOR.join(tools))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tool": self.tool,
            "severity": self.severity.value,
            "category": self.category,
            "file": self.file,
            "line": self.line,
            "description": self.description,
            "fix": self.fix,
            "references": list(self.references),
            "metadata": dict(self.metadata),
        }


def split_tools(value: str) -> Tuple[str, ...]:
    """Split a possibly comma-joined tool field into individual names."""
    return tuple(part.strip() for part in value.split(",") if part.strip())
