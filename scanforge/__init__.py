# ============================================================================
# scanforge/__init__.py
# Package marker for the scan orchestration engine
# ============================================================================
#
# PURPOSE:
# Runs external security analysis tools (Semgrep, Trivy, OWASP
# Dependency-Check) against a local directory, normalizes and deduplicates
# their findings, and streams progress to one live observer per scan.
#
# PACKAGE LAYOUT:
# - base/: configuration, findings, sessions, progress events
# - engine/: target resolution, subprocess execution, tool bridges, orchestrator
# - toolkit/: tool registry, severity/fix normalization, diagnostics
# - server/: FastAPI application and routers
# - cli/: `scanforge` command line entrypoint
#

__version__ = "0.1.0"
