"""CLI entry-point for the SIEM pipeline.

Usage examples
--------------
# Index a file of JSON / NDJSON log records:
python -m src.service index --input logs/winlogbeat.ndjson

# One threat-intel run, one correlation run:
python -m src.service fetch-intel
python -m src.service correlate

# Replay a fixed window:
python -m src.service correlate --start 2026-10-19T10:00:00Z --end 2026-10-19T10:05:00Z

# Run intel + correlation on their schedules in this process:
python -m src.service serve --config config/siem.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from src.contracts.errors import StoreError
from src.ingest.s3_source import split_body
from src.service import wiring
from src.service.handlers import Handlers
from src.service.scheduler import Job, Scheduler
from src.service.settings import load_settings
from src.shared.logger import setup_logging
from src.stores.opensearch import IOC_MAPPING, LOGS_MAPPING

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="siem",
        description="Minimal SIEM: index logs, ingest threat intel, correlate and alert",
    )
    p.add_argument(
        "--config",
        default=None,
        help="YAML config overlay (environment variables take precedence).",
    )
    p.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. Default: LOG_LEVEL or INFO",
    )
    sub = p.add_subparsers(dest="command", required=True)

    idx = sub.add_parser("index", help="Index a JSON or NDJSON file of log records.")
    idx.add_argument("--input", required=True, help="Path to the log file.")
    idx.add_argument(
        "--source",
        default=None,
        help="Source name for document identity. Default: file:<path>",
    )

    sub.add_parser("fetch-intel", help="Fetch the threat feed once and upsert indicators.")

    cor = sub.add_parser("correlate", help="Run one correlation pass.")
    cor.add_argument("--start", default=None, help="Window start (ISO-8601) for replay.")
    cor.add_argument("--end", default=None, help="Window end (ISO-8601) for replay.")

    serve = sub.add_parser("serve", help="Run intel and correlation on their schedules.")
    serve.add_argument(
        "--max-ticks",
        type=int,
        default=None,
        help="Stop after N scheduler iterations (default: run until Ctrl+C).",
    )

    sub.add_parser("init-indices", help="Create the log and indicator indices if missing.")
    return p


def _print(report: dict[str, Any]) -> int:
    print(json.dumps(report, indent=2, default=str))
    return 0 if report.get("status") == "success" else 1


def _index_file(handlers: Handlers, path: str, source: str | None) -> dict[str, Any]:
    p = Path(path)
    if not p.is_file():
        return {"status": "error", "error": "not_found", "detail": f"no such file: {p}"}
    body = p.read_text(encoding="utf-8", errors="replace")
    entries = split_body(source or f"file:{p.resolve()}", body)
    if not entries:
        return {"status": "success", "indexed": 0, "skipped": 0}
    report = handlers.buffer.submit_many(entries)
    out: dict[str, Any] = {
        "status": "success" if report.ok else "error",
        "indexed": report.result.indexed,
        "skipped": report.result.skipped,
    }
    if not report.ok:
        out["error"] = "index_error"
        out["failed_sources"] = report.failed_sources
    return out


def _init_indices(comps: wiring.Components, log_index: str, ioc_index: str) -> dict[str, Any]:
    if comps.opensearch is None:
        return {"status": "error", "error": "no_endpoint", "detail": "OPENSEARCH_ENDPOINT not set"}
    try:
        created = {
            log_index: comps.opensearch.ensure_index(log_index, LOGS_MAPPING),
            ioc_index: comps.opensearch.ensure_index(ioc_index, IOC_MAPPING),
        }
    except StoreError as exc:
        return {"status": "error", "error": exc.kind, "detail": str(exc)}
    return {"status": "success", "created": created}


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or "INFO")
    try:
        settings = load_settings(args.config)
        if args.log_level is None:
            setup_logging(settings.log_level)
        # unknown match policy or field_types entries surface here
        comps = wiring.build_components(settings)
        handlers = Handlers(settings, comps)
    except (FileNotFoundError, ValueError) as exc:
        log.error("Configuration error: %s", exc)
        sys.exit(2)

    if args.command == "index":
        code = _print(_index_file(handlers, args.input, args.source))
    elif args.command == "fetch-intel":
        code = _print(handlers.fetch_intel())
    elif args.command == "correlate":
        event = {"window_start": args.start, "window_end": args.end}
        code = _print(handlers.correlate(event))
    elif args.command == "init-indices":
        code = _print(_init_indices(comps, settings.log_index, settings.ioc_index))
    else:
        scheduler = Scheduler(
            [
                Job("fetch-intel", settings.intel_period_sec, handlers.fetch_intel),
                Job("correlate", settings.correlation_period_sec, handlers.correlate),
            ]
        )
        print(f"Scheduler running: intel every {settings.intel_period_sec:.0f}s, "
              f"correlation every {settings.correlation_period_sec:.0f}s")
        print("  Press Ctrl+C to stop.")
        scheduler.run(max_ticks=args.max_ticks)
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
