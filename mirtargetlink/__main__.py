from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Sequence

from mirtargetlink.errors import MirTargetLinkError, ValidationError
from mirtargetlink.json_logger import get_logger, log_event
from mirtargetlink.models import MODES

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID = 2


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid integer {value!r}") from exc
    if parsed < 1:
        raise argparse.ArgumentTypeError("value must be >= 1")
    return parsed


async def _run_query(args: argparse.Namespace) -> int:
    from mirtargetlink.engine.orchestrator import EngineSettings, invoke
    from mirtargetlink.render import render_result

    logger = get_logger(run_id=args.run_id)
    settings = EngineSettings()
    if args.limit is not None:
        settings.result_limit = args.limit
    if args.executable:
        settings.executable_path = args.executable
    try:
        payload = await invoke({"query": args.term, "mode": args.mode}, logger=logger, settings=settings)
    finally:
        logger.close()

    if args.format == "table":
        print(render_result(payload))
    else:
        print(json.dumps(payload, indent=2, ensure_ascii=False))

    if payload.get("success"):
        return EXIT_OK
    kind = (payload.get("error") or {}).get("kind")
    return EXIT_INVALID if kind == ValidationError.kind else EXIT_FAILURE


async def _run_export(args: argparse.Namespace) -> int:
    from mirtargetlink.network_export import export_network

    logger = get_logger(run_id=args.run_id)
    try:
        if not args.term.strip():
            raise ValidationError("query must be a non-empty string", field="query")
        export = await export_network(args.term.strip(), logger=logger)
        data = export.require()
    except MirTargetLinkError as exc:
        log_event(logger=logger, phase="network_export", status="error", message=exc.message, kind=exc.kind)
        print(json.dumps({"success": False, "query": args.term, "error": exc.to_payload()}, indent=2))
        return EXIT_INVALID if isinstance(exc, ValidationError) else EXIT_FAILURE
    finally:
        logger.close()

    print(json.dumps({"success": True, "query": args.term, "data": data}, indent=2, ensure_ascii=False))
    return EXIT_OK


async def _run_server(args: argparse.Namespace) -> int:
    """Serve the MCP tools over stdin/stdout until the client disconnects."""

    from mirtargetlink.server import ToolServer, serve_stdio

    logger = get_logger(run_id=args.run_id)
    try:
        return await serve_stdio(ToolServer(logger=logger))
    finally:
        logger.close()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mirtargetlink", description="miRTargetLink 2.0 lookup service")
    subparsers = parser.add_subparsers(dest="command", required=True)

    query_parser = subparsers.add_parser("query", help="Run one lookup and print the result")
    query_parser.add_argument("term", help="miRNA, gene, or pathway name (e.g. 'TP53', 'hsa-miR-21-5p')")
    query_parser.add_argument("--mode", choices=MODES, default=None, help="Evidence configuration (default: validated)")
    query_parser.add_argument("--limit", type=_positive_int, default=None, help="Rows to read per table")
    query_parser.add_argument("--format", choices=("json", "table"), default="json", help="Output format")
    query_parser.add_argument("--executable", type=str, default=None, help="Local browser binary override")
    query_parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")

    export_parser = subparsers.add_parser("export", help="Fetch the direct network export for a term")
    export_parser.add_argument("term")
    export_parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")

    server_parser = subparsers.add_parser("server", help="Serve the MCP tools over stdio")
    server_parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else sys.argv[1:])

    if args.command == "query":
        return asyncio.run(_run_query(args))
    if args.command == "export":
        return asyncio.run(_run_export(args))
    if args.command == "server":
        return asyncio.run(_run_server(args))

    parser.error("Unknown command")
    return EXIT_INVALID


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
