"""
scanforge CLI: unified entrypoint for the scan engine.

Usage examples:
    scanforge start
    scanforge scan /path/to/project --tools Semgrep Trivy
    scanforge tools
"""

import argparse
import asyncio
import json
import sys

from scanforge.base.config import get_config, setup_logging
from scanforge.errors import ScanForgeError
from scanforge.toolkit.registry import TOOLS


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scanforge", description="ScanForge command interface")
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Run the HTTP API")
    start.add_argument("--host", default=None)
    start.add_argument("--port", type=int, default=None)

    scan = sub.add_parser("scan", help="Scan a target and print the results as JSON")
    scan.add_argument("target", help="Directory path, staged upload id or registered target id")
    scan.add_argument("--tools", nargs="+", default=list(TOOLS), help="Tools to run (default: all)")
    scan.add_argument("--summary", action="store_true", help="Print only the severity summary")

    sub.add_parser("tools", help="Show which tools are available")
    return parser


async def _scan(target: str, tools, summary: bool) -> int:
    from scanforge.server.state import get_state

    state = get_state()
    try:
        snapshot = await state.orchestrator.scan(target, tools)
    except ScanForgeError as e:
        print(e.to_json(), file=sys.stderr)
        return 2

    if summary:
        payload = {
            "scanId": snapshot.id,
            "status": snapshot.status.value,
            "summary": snapshot.severity_summary(),
            "toolErrors": snapshot.tool_errors,
        }
    else:
        payload = snapshot.to_dict()
    print(json.dumps(payload, indent=2, default=str))
    return 0 if snapshot.status.value == "COMPLETED" else 1


async def _tools() -> int:
    from scanforge.server.state import get_state
    from scanforge.toolkit.diagnostics import check_tools

    statuses = await check_tools(get_state().bridges)
    for status in statuses:
        mark = "ok" if status.available else "missing"
        line = f"{status.name:<24} {mark}"
        if status.simulated:
            line += " (simulated)"
        if status.install_hint:
            line += f"  install: {status.install_hint}"
        print(line)
    return 0


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    config = get_config()
    setup_logging(config)

    if args.command == "start":
        import uvicorn

        print("Starting ScanForge backend...")
        uvicorn.run(
            "scanforge.server.api:app",
            host=args.host or config.api_host,
            port=args.port or config.api_port,
            reload=config.debug,
        )
        return 0
    if args.command == "scan":
        return asyncio.run(_scan(args.target, args.tools, args.summary))
    if args.command == "tools":
        return asyncio.run(_tools())
    return 1


if __name__ == "__main__":
    sys.exit(main())
