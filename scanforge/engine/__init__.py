#
# PURPOSE:
# Runs the security tools and coordinates each scan.
#
# MODULES IN THIS PACKAGE:
# - **orchestrator.py**: Session lifecycle (tools in order, progress, dedup)
# - **resolver.py**: Target id -> directory on disk
# - **executor.py**: Bounded subprocess execution
# - **namespace.py**: Native or WSL execution and path translation
# - **dedup.py**: Merges findings reported by more than one tool
# - **bridges/**: One adapter per tool family, plus the simulated stand-in
#
