"""Tool definitions: display names, command templates and install hints."""
import logging
import re
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

SEMGREP = "Semgrep"
TRIVY = "Trivy"
DEPENDENCY_CHECK = "OWASP Dependency Check"

# Command templates. "{name}" placeholders are filled by get_tool_command();
# the scanned path is always a discrete argument.
TOOLS: Dict[str, Dict] = {
    SEMGREP: {
        "label": "Semgrep (static code analysis)",
        "cmd": [
            "{binary}", "--config={rules}", "--json",
            "--no-git-ignore", "--timeout=60", "{path}",
        ],
        "binary": "semgrep",
        "aliases": ("semgrep",),
        "wsl_capable": True,
        "install_hint": "python -m pip install semgrep",
    },
    TRIVY: {
        "label": "Trivy (dependency vulnerability scan)",
        "cmd": [
            "{binary}", "fs", "--format", "json",
            "--severity", "{severities}", "--timeout", "5m", "{path}",
        ],
        "binary": "trivy",
        "aliases": ("trivy",),
        "wsl_capable": True,
        "install_hint": "https://aquasecurity.github.io/trivy/latest/getting-started/installation/",
    },
    DEPENDENCY_CHECK: {
        "label": "OWASP Dependency-Check (known vulnerable components)",
        "cmd": [
            "{binary}", "--project", "{project}", "--scan", "{path}",
            "--out", "{out}", "--format", "JSON", "--enableRetired",
        ],
        "binary": "dependency-check",
        "aliases": ("odc", "dependency-check", "owasp-dependency-check"),
        "wsl_capable": False,
        "install_hint": "https://owasp.org/www-project-dependency-check/",
    },
}


def _fill(match, values: Dict[str, str], name: str) -> str:
    key = match.group(1)
    if key not in values:
        logger.debug(f"[Registry] No value for {{{key}}} in {name} command")
        return match.group(0)
    return str(values[key])


def canonical_tool_name(name: str) -> Optional[str]:
    """Resolve a user supplied tool name (any case, or an alias) to its registry key."""
    if not name:
        return None
    wanted = name.strip().lower()
    for key, tdef in TOOLS.items():
        if wanted == key.lower() or wanted in tdef.get("aliases", ()):
            return key
    return None


def get_tool_command(name: str, values: Dict[str, str], override: Optional[Dict] = None) -> List[str]:
    """
    Generate the argument vector for a tool.

    Args:
        name: Tool registry key
        values: Placeholder values ("binary", "path", ...)
        override: Optional tool definition override (for testing)
    """
    tdef = override or TOOLS[name]

    cmd: List[str] = []
    for part in tdef["cmd"]:
        cmd.append(_PLACEHOLDER.sub(lambda m: _fill(m, values, name), part))
    return cmd
