"""Invocation handlers: one call per scheduled tick or delivered event.

Handlers are the only place where typed pipeline errors become report
dicts.  A report always says whether the invocation succeeded, so the
caller can tell "no work found" (success, zero counts) from "work found
but not completed" (error, with the error kind).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from src.contracts.errors import PipelineError
from src.contracts.window import CorrelationWindow
from src.ingest.entries import RawEntry
from src.ingest.s3_source import S3ObjectSource
from src.intel.fetcher import ThreatIntelFetcher
from src.service import wiring
from src.service.settings import Settings
from src.shared.timeutil import parse_ts, utcnow

log = logging.getLogger(__name__)


def _error(stage: str, exc: PipelineError, **extra: Any) -> dict[str, Any]:
    log.error("%s failed (%s): %s", stage, exc.kind, exc)
    return {"status": "error", "error": exc.kind, "detail": str(exc), **extra}


def entries_from_event(event: dict[str, Any]) -> list[RawEntry]:
    """Direct delivery: ``{"source": str, "records": [obj | [objs] | text, ...]}``."""
    source = event.get("source", "direct")
    base = int(event.get("offset", 0))
    entries: list[RawEntry] = []
    for i, item in enumerate(event.get("records", [])):
        offset = base + i
        if isinstance(item, dict):
            entries.append(RawEntry.object(source, offset, item))
        elif isinstance(item, list):
            entries.append(RawEntry.array(source, offset, item))
        else:
            entries.append(RawEntry.text(source, offset, item))
    return entries


class Handlers:
    def __init__(
        self,
        settings: Settings,
        components: wiring.Components,
        clock: Callable[[], datetime] = utcnow,
        s3_source: S3ObjectSource | None = None,
        fetcher: ThreatIntelFetcher | None = None,
    ) -> None:
        self.settings = settings
        self.components = components
        self.clock = clock
        self._s3 = s3_source
        self.buffer = wiring.build_buffer(settings, components, clock=clock)
        self.engine = wiring.build_engine(settings, components, clock=clock)
        self._fetcher = fetcher

    @property
    def s3(self) -> S3ObjectSource:
        if self._s3 is None:
            self._s3 = S3ObjectSource(
                region=self.settings.aws_region or None,
                timeout_sec=self.settings.request_timeout_sec,
            )
        return self._s3

    @property
    def fetcher(self) -> ThreatIntelFetcher:
        if self._fetcher is None:
            self._fetcher = wiring.build_fetcher(self.settings, self.components, clock=self.clock)
        return self._fetcher

    # ── Log indexing ─────────────────────────────────────────────────────

    def index(self, event: dict[str, Any]) -> dict[str, Any]:
        """Index an S3 notification (``Records``) or a direct record delivery."""
        try:
            if "Records" in event:
                entries = self.s3.entries_for_event(event)
            else:
                entries = entries_from_event(event)
        except PipelineError as exc:
            return _error("index", exc)

        if not entries:
            return {"status": "success", "indexed": 0, "skipped": 0}

        report = self.buffer.submit_many(entries)
        out: dict[str, Any] = {
            "status": "success" if report.ok else "error",
            "indexed": report.result.indexed,
            "skipped": report.result.skipped,
        }
        if not report.ok:
            out["error"] = "index_error"
            out["failed_sources"] = report.failed_sources
        return out

    # ── Threat intel ─────────────────────────────────────────────────────

    def fetch_intel(self, event: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            result = self.fetcher.fetch_and_upsert()
        except PipelineError as exc:
            return _error("fetch_intel", exc)
        return {
            "status": "success",
            "ingested": result.ingested,
            "skipped": result.skipped,
            "pages": result.pages,
        }

    # ── Correlation ──────────────────────────────────────────────────────

    def window_for(self, event: dict[str, Any] | None) -> CorrelationWindow:
        """Explicit ``window_start``/``window_end`` (replay) or the trailing window."""
        event = event or {}
        if event.get("window_start") and event.get("window_end"):
            return CorrelationWindow(
                parse_ts(event["window_start"]), parse_ts(event["window_end"])
            )
        return CorrelationWindow.trailing(
            self.clock(), self.settings.window_size, self.settings.overlap
        )

    def correlate(self, event: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            window = self.window_for(event)
        except ValueError as exc:
            log.error("Bad correlation window in event: %s", exc)
            return {"status": "error", "error": "bad_window", "detail": str(exc)}

        try:
            result = self.engine.run(window)
        except PipelineError as exc:
            return _error("correlate", exc, window=str(window))
        return {
            "status": "success",
            "window": str(window),
            "candidates": result.candidates,
            "matched": result.matched,
            "duplicates": result.duplicates,
            "alerts_emitted": result.alerts_emitted,
        }
