"""
Deterministic tool simulation.

Used for every tool when `simulate_tools` is set, so the orchestrator, the
HTTP API and a UI can be exercised without Semgrep, Trivy or Dependency-Check
installed. Each simulated tool yields a fixed dataset with artificial delays;
the delays come from a random.Random seeded with the tool name, so two runs
of the same tool behave identically.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple

from scanforge.base.findings import Finding
from scanforge.engine.bridges.base import ToolBridge
from scanforge.toolkit.normalizer import Severity
from scanforge.toolkit.registry import DEPENDENCY_CHECK, SEMGREP, TRIVY

logger = logging.getLogger(__name__)

_APP = "vulnerable-test-app/index.js"
_SENSITIVE_DATA = "https://owasp.org/www-project-top-ten/2017/A3_2017-Sensitive_Data_Exposure"

# (severity, category, file, line, description, fix, references)
SEMGREP_SAMPLES: Tuple[Tuple, ...] = (
    ("CRITICAL", "SQL Injection", _APP, 26,
     "Direct string concatenation in SQL query allows SQL injection attacks",
     "Use parameterized queries or prepared statements instead of string concatenation",
     ("https://owasp.org/www-community/attacks/SQL_Injection",)),
    ("CRITICAL", "Command Injection", _APP, 38,
     "User input directly executed in shell command without sanitization",
     "Validate and sanitize user input before using in shell commands, or use safer alternatives",
     ("https://owasp.org/www-community/attacks/Command_Injection",)),
    ("HIGH", "Cross-Site Scripting (XSS)", _APP, 70,
     "User input directly embedded in HTML without encoding",
     "Encode user input before embedding in HTML or use templating engines with auto-escaping",
     ("https://owasp.org/www-community/attacks/xss/",)),
    ("HIGH", "Path Traversal", _APP, 51,
     "File path constructed from user input without validation",
     "Validate file paths and restrict access to specific directories",
     ("https://owasp.org/www-community/attacks/Path_Traversal",)),
    ("HIGH", "Hardcoded Secrets", _APP, 11,
     "Database credentials hardcoded in source code",
     "Use environment variables or secure configuration management for sensitive data",
     (_SENSITIVE_DATA,)),
    ("CRITICAL", "Code Injection (eval)", _APP, 119,
     "User input passed directly to eval() function",
     "Never use eval() with user input. Use JSON.parse() for data or specific parsers",
     ("https://developer.mozilla.org/en-US/docs/Web/JavaScript/Reference/Global_Objects/eval#never_use_eval!",)),
    ("MEDIUM", "Weak Cryptography", _APP, 83,
     "MD5 hash used for password hashing (cryptographically broken)",
     "Use bcrypt, scrypt, or Argon2 for password hashing",
     ("https://owasp.org/www-project-cheat-sheets/cheatsheets/Password_Storage_Cheat_Sheet.html",)),
    ("MEDIUM", "Information Disclosure", _APP, 104,
     "Sensitive information exposed in debug endpoint",
     "Remove debug endpoints from production or secure them properly",
     (_SENSITIVE_DATA,)),
)

TRIVY_SAMPLES: Tuple[Tuple, ...] = (
    ("HIGH", "CVE-2021-3807", "package.json", 1,
     "ansi-regex: Regular Expression Denial of Service (ReDoS)",
     "Update to ansi-regex version 6.0.1 or later",
     ("https://nvd.nist.gov/vuln/detail/CVE-2021-3807",)),
    ("CRITICAL", "CVE-2020-8203", "package.json", 1,
     "lodash: Prototype Pollution vulnerability",
     "Update to lodash version 4.17.12 or later",
     ("https://nvd.nist.gov/vuln/detail/CVE-2020-8203",)),
    ("HIGH", "CVE-2022-0155", "package.json", 1,
     "follow-redirects: Exposure of Sensitive Information vulnerability",
     "Update to follow-redirects version 1.14.7 or later",
     ("https://nvd.nist.gov/vuln/detail/CVE-2022-0155",)),
    ("MEDIUM", "CVE-2021-23337", "package.json", 1,
     "lodash: Command Injection vulnerability",
     "Update to lodash version 4.17.21 or later",
     ("https://nvd.nist.gov/vuln/detail/CVE-2021-23337",)),
    ("HIGH", "CVE-2022-25883", "package.json", 1,
     "semver: Regular Expression Denial of Service (ReDoS)",
     "Update to semver version 7.5.2 or later",
     ("https://nvd.nist.gov/vuln/detail/CVE-2022-25883",)),
)

DEPENDENCY_CHECK_SAMPLES: Tuple[Tuple, ...] = (
    ("MEDIUM", "CVE-2021-44228", "pom.xml", 45,
     "Apache Log4j2 Remote Code Execution (Log4Shell)",
     "Update Log4j2 to version 2.17.1 or later",
     ("https://nvd.nist.gov/vuln/detail/CVE-2021-44228",)),
    ("LOW", "License Risk", "dependencies.json", 0,
     "GPL licensed dependency detected which may have legal implications",
     "Review license compatibility with your project requirements",
     ("https://www.gnu.org/licenses/gpl-3.0.html",)),
)

SAMPLES: Dict[str, Tuple[Tuple, ...]] = {
    SEMGREP: SEMGREP_SAMPLES,
    TRIVY: TRIVY_SAMPLES,
    DEPENDENCY_CHECK: DEPENDENCY_CHECK_SAMPLES,
}


def sample_findings(tool: str, samples: Iterable[Sequence[Any]]) -> List[Finding]:
    findings = []
    for severity, category, file, line, description, fix, references in samples:
        findings.append(Finding(
            id=str(uuid.uuid5(uuid.NAMESPACE_URL, f"scanforge:{tool}:{file}:{line}:{category}")),
            tool=tool,
            severity=Severity(severity),
            category=category,
            file=file,
            line=line,
            description=description,
            fix=fix,
            references=tuple(references),
            metadata={"simulated": True},
        ))
    return findings


class SimulatedBridge(ToolBridge):
    """Stand-in for a real bridge that replays a fixed finding set."""

    simulated = True

    def __init__(
        self,
        name: str,
        findings: Optional[Sequence[Finding]] = None,
        delay_range: Tuple[float, float] = (0.3, 1.0),
        seed: Optional[str] = None,
    ):
        super().__init__(timeout=0, available=True)
        self.name = name
        self.delay_range = delay_range
        self.seed = seed or name
        if findings is None:
            findings = sample_findings(name, SAMPLES.get(name, ()))
        self.findings = list(findings)

    async def execute(self, target_root: str) -> AsyncIterator[Finding]:
        rng = random.Random(self.seed)
        low, high = self.delay_range
        logger.info(f"[{self.name}] Simulating {len(self.findings)} findings for {target_root}")

        for finding in self.findings:
            delay = rng.uniform(low, high) if high > 0 else 0
            await asyncio.sleep(delay)
            yield finding
