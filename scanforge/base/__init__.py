#
# PURPOSE:
# Foundational pieces the rest of the package depends on.
#
# WHAT'S IN THIS MODULE:
# - config.py: Environment driven configuration and logging setup
# - findings.py: The normalized Finding record
# - session.py: Scan session state and read-only snapshots
# - events.py: Progress events and the per-session progress channel
#
