"""Ingest Buffer: accumulate raw entries per source and flush them to the indexer.

Sources are independent: each source's pending entries form one batch,
batches of different sources may be indexed in parallel, and a failed
source does not hold back the others.  A failed batch is dropped from the
buffer and reported; the transport redelivers it.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from src.contracts.errors import IndexingError
from src.contracts.results import IndexResult
from src.ingest.entries import RawEntry
from src.ingest.indexer import LogIndexer

log = logging.getLogger(__name__)


@dataclass(slots=True)
class FlushReport:
    result: IndexResult = field(default_factory=IndexResult)
    failed_sources: dict[str, str] = field(default_factory=dict)  # source -> error

    @property
    def ok(self) -> bool:
        return not self.failed_sources


class IngestBuffer:
    def __init__(
        self,
        indexer: LogIndexer,
        max_records: int = 500,
        max_workers: int = 4,
    ) -> None:
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        self.indexer = indexer
        self.max_records = max_records
        self.max_workers = max_workers
        self._pending: dict[str, list[RawEntry]] = defaultdict(list)
        self._count = 0

    def __len__(self) -> int:
        return self._count

    def submit(self, entry: RawEntry) -> FlushReport | None:
        """Queue *entry*; flush automatically once ``max_records`` are pending."""
        self._pending[entry.source].append(entry)
        self._count += 1
        if self._count >= self.max_records:
            return self.flush()
        return None

    def submit_many(self, entries: list[RawEntry]) -> FlushReport:
        """Queue *entries* and flush everything, returning one combined report."""
        report = FlushReport()
        for entry in entries:
            partial = self.submit(entry)
            if partial is not None:
                _merge(report, partial)
        _merge(report, self.flush())
        return report

    def flush(self) -> FlushReport:
        batches = dict(self._pending)
        self._pending.clear()
        self._count = 0

        report = FlushReport()
        if not batches:
            return report

        workers = max(1, min(self.max_workers, len(batches)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="index") as pool:
            futures = {
                source: pool.submit(self.indexer.index, entries)
                for source, entries in batches.items()
            }
            for source, fut in futures.items():
                try:
                    report.result = report.result.merge(fut.result())
                except IndexingError as exc:
                    report.failed_sources[source] = str(exc)
                    log.error("Batch for source %s failed (%d entries): %s",
                              source, len(batches[source]), exc)

        log.info(
            "Flushed %d sources: indexed=%d skipped=%d failed=%d",
            len(batches), report.result.indexed, report.result.skipped,
            len(report.failed_sources),
        )
        return report


def _merge(into: FlushReport, other: FlushReport) -> None:
    into.result = into.result.merge(other.result)
    into.failed_sources.update(other.failed_sources)
