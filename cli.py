"""agent-usage command line entry point."""

from __future__ import annotations

import argparse
import json
import logging
import sys

import uvicorn
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from app import MetricsPoller, create_app
from config import VERSION, Settings, load_settings
from formatters import format_service_usage, format_service_usage_as_json, format_service_usage_as_tsv, to_json_object
from metrics import build_prometheus_metrics
from models import ServiceResult
from usage import available_services, fetch_services_in_parallel, select_services

FORMATS = ("text", "tsv", "json", "prometheus")

EXIT_FAILURE = 1
EXIT_PARTIAL = 2


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def _render_json(results: list[ServiceResult], window: str | None) -> str:
    successes = [r.value for r in results if r.ok]
    failures = [r for r in results if not r.ok]

    if len(successes) == 1 and not failures:
        return format_service_usage_as_json(successes[0], window)

    if len(successes) == 1:
        payload = to_json_object(successes[0], window)
    else:
        payload = [to_json_object(data, window) for data in successes]
    if failures:
        payload = {
            "results": payload,
            "errors": [
                {"service": r.service, "message": r.error.message, "status": r.error.status}
                for r in failures
            ],
        }
    return json.dumps(payload, indent=2)


def _write_raw(out: Console, text: str) -> None:
    # Machine formats bypass rich rendering, which expands tabs
    out.file.write(text if text.endswith("\n") else text + "\n")


def run_usage(args: argparse.Namespace, settings: Settings, out: Console, err: Console) -> int:
    services = select_services(args.service or settings.service)
    results = fetch_services_in_parallel(services, settings)
    successes = [r.value for r in results if r.ok]
    failures = [r for r in results if not r.ok]

    for result in failures:
        err.print(f"[yellow]⚠ Warning: Failed to fetch {result.service} usage:[/yellow]")
        err.print(f"  {result.error.message}", style="bright_black", markup=False)
        if result.error.status:
            err.print(f"  Status: {result.error.status}", style="bright_black")
    if failures and successes:
        err.print()

    if not successes:
        err.print("[red]No services could be queried successfully.[/red]")
        return EXIT_FAILURE

    fmt = "json" if args.json else args.format
    if fmt == "json":
        _write_raw(out, _render_json(results, args.window))
    elif fmt == "tsv":
        _write_raw(out, format_service_usage_as_tsv(successes))
    elif fmt == "prometheus":
        _write_raw(out, build_prometheus_metrics(services, results))
    else:
        for index, data in enumerate(successes):
            if index > 0:
                out.print()
            out.print(format_service_usage(data), highlight=False)

    return EXIT_PARTIAL if failures else 0


def run_serve(settings: Settings, err: Console) -> int:
    services = select_services(settings.service)
    poller = MetricsPoller(services, settings)
    err.print(f"Fetching metrics for: {', '.join(services)}")
    uvicorn.run(create_app(poller), host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    services = ", ".join(available_services())
    parser = argparse.ArgumentParser(
        prog="agent-usage",
        description="Show usage and quota for AI coding assistants",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    sub = parser.add_subparsers(dest="command")

    usage = sub.add_parser("usage", help="Fetch usage statistics (default)")
    usage.add_argument("-s", "--service", help=f"Service to query ({services}, all); defaults to all")
    usage.add_argument("-f", "--format", choices=FORMATS, default="text", help="Output format")
    usage.add_argument("-j", "--json", action="store_true", help="Shorthand for --format json")
    usage.add_argument("-w", "--window", help="Only include windows whose name contains this text (JSON)")

    serve = sub.add_parser("serve", help="Serve /health and /metrics, polling on an interval")
    serve.add_argument("--port", help="Port to listen on (AGENT_USAGE_PORT, default 3848)")
    serve.add_argument("--host", help="Host to bind (AGENT_USAGE_HOST, default 127.0.0.1)")
    serve.add_argument("--interval", help="Polling interval in seconds (AGENT_USAGE_INTERVAL, default 300)")
    serve.add_argument("-s", "--service", help=f"Service to poll ({services}, all); defaults to all")
    return parser


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in ("usage", "serve", "-h", "--help", "--version"):
        argv.insert(0, "usage")
    args = build_parser().parse_args(argv)

    out = Console()
    err = Console(stderr=True)
    try:
        if args.command == "serve":
            settings = load_settings(port=args.port, host=args.host, interval=args.interval, service=args.service)
        else:
            settings = load_settings()
    except ValidationError as exc:
        err.print(f"[red]Invalid configuration:[/red] {escape(str(exc))}")
        return EXIT_FAILURE
    _configure_logging(settings)

    if args.command == "serve":
        return run_serve(settings, err)
    return run_usage(args, settings, out, err)


if __name__ == "__main__":
    sys.exit(main())
