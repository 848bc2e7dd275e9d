"""
scanforge/toolkit/normalizer.py

Severity and remediation normalization.

Every tool speaks its own severity vocabulary. The tables below fold them into
the five canonical levels, and the fix helpers turn a raw tool record into a
short remediation sentence. Everything here is pure.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Mapping, Optional


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"


# Semgrep reports ERROR/WARNING/INFO for rules and CRITICAL..LOW for
# supply-chain findings.
SEMGREP_SEVERITY_MAP: Dict[str, Severity] = {
    "ERROR": Severity.CRITICAL,
    "CRITICAL": Severity.CRITICAL,
    "WARNING": Severity.HIGH,
    "HIGH": Severity.HIGH,
    "INFO": Severity.MEDIUM,
    "MEDIUM": Severity.MEDIUM,
    "INVENTORY": Severity.LOW,
    "LOW": Severity.LOW,
    "EXPERIMENTAL": Severity.INFO,
}

TRIVY_SEVERITY_MAP: Dict[str, Severity] = {
    "CRITICAL": Severity.CRITICAL,
    "HIGH": Severity.HIGH,
    "MEDIUM": Severity.MEDIUM,
    "LOW": Severity.LOW,
    "UNKNOWN": Severity.INFO,
}

# Dependency-Check never reports anything below LOW
ODC_SEVERITY_MAP: Dict[str, Severity] = {
    "CRITICAL": Severity.CRITICAL,
    "HIGH": Severity.HIGH,
    "MEDIUM": Severity.MEDIUM,
    "MODERATE": Severity.MEDIUM,
    "LOW": Severity.LOW,
    "INFO": Severity.LOW,
    "INFORMATIONAL": Severity.LOW,
}


def normalize_severity(
    raw: Optional[str],
    mapping: Mapping[str, Severity],
    default: Severity = Severity.INFO,
) -> Severity:
    """Map a tool-native severity string onto the canonical scale."""
    if not raw or not isinstance(raw, str):
        return default
    return mapping.get(raw.strip().upper(), default)


def map_semgrep_severity(raw: Optional[str]) -> Severity:
    return normalize_severity(raw, SEMGREP_SEVERITY_MAP, Severity.INFO)


def map_trivy_severity(raw: Optional[str]) -> Severity:
    return normalize_severity(raw, TRIVY_SEVERITY_MAP, Severity.INFO)


def map_odc_severity(raw: Optional[str]) -> Severity:
    return normalize_severity(raw, ODC_SEVERITY_MAP, Severity.LOW)


# ----------------------------------------------------------------------------
# Remediation text
# ----------------------------------------------------------------------------

# Checked in order against the Semgrep rule id
SEMGREP_FIX_HINTS = (
    ("sql-injection", "Use parameterized queries or prepared statements instead of string concatenation"),
    ("xss", "Sanitize user input and use proper escaping functions"),
    ("eval", "Avoid using eval(). Use safer alternatives like JSON.parse() for data"),
    ("command-injection", "Use spawn() with argument arrays instead of exec() with strings"),
    ("csrf", "Implement CSRF protection middleware like csurf"),
    ("hardcoded", "Move sensitive data to environment variables or secure configuration"),
)

DEFAULT_FIX = "Review and fix the identified security issue"


def semgrep_fix(result: Mapping[str, Any]) -> str:
    check_id = str(result.get("check_id") or "").lower()
    for needle, hint in SEMGREP_FIX_HINTS:
        if needle in check_id:
            return hint

    extra = result.get("extra") or {}
    metadata = extra.get("metadata") or {}
    return metadata.get("fix") or DEFAULT_FIX


def trivy_fix(vuln: Mapping[str, Any]) -> str:
    pkg = vuln.get("PkgName") or "the affected package"
    fixed = vuln.get("FixedVersion")
    if fixed:
        installed = vuln.get("InstalledVersion") or "the installed version"
        return f"Update {pkg} from {installed} to {fixed} or later"
    if str(vuln.get("Status") or "").lower() == "will_not_fix":
        return f"No fix available for {pkg}. Consider using an alternative package"
    return f"Update {pkg} to the latest version to resolve security issues"


def odc_fix(dependency: Mapping[str, Any], vuln: Mapping[str, Any]) -> str:
    file_name = dependency.get("fileName") or "the affected dependency"
    name = vuln.get("name") or "this vulnerability"
    return (
        f"Update {file_name} to address {name}. "
        "Check for newer versions or alternative packages."
    )
