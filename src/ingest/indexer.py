"""Log Indexer: parse, validate and bulk-write a batch of raw entries.

A malformed unit (undecodable text, non-object element, missing or bad
timestamp) is logged, counted and skipped; the rest of the batch is still
indexed.  A store failure aborts the whole batch with ``IndexingError``;
because document ids are derived from ``source + offset``, the upstream
redelivery that follows rewrites the same documents instead of adding
new ones.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime

from src.contracts.errors import IndexingError, ParseError, StoreError
from src.contracts.record import LogRecord
from src.contracts.results import IndexResult
from src.ingest.entries import RawEntry, normalize_entry
from src.ingest.parser import parse_record
from src.shared.timeutil import utcnow
from src.stores.base import SearchStore

log = logging.getLogger(__name__)


class LogIndexer:
    def __init__(
        self,
        store: SearchStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.clock = clock

    def parse_batch(self, batch: Sequence[RawEntry]) -> tuple[list[LogRecord], IndexResult]:
        """Parse every unit; return valid records plus the skip accounting."""
        records: list[LogRecord] = []
        result = IndexResult()

        for entry in batch:
            try:
                units = normalize_entry(entry)
            except ParseError as exc:
                self._skip(result, exc)
                continue
            for offset, unit in units:
                try:
                    records.append(parse_record(unit, entry.source, offset))
                except ParseError as exc:
                    self._skip(result, exc)
        return records, result

    @staticmethod
    def _skip(result: IndexResult, exc: ParseError) -> None:
        result.skipped += 1
        result.errors.append(f"{exc.source}#{exc.offset}: {exc.reason}")
        log.warning("Skipping malformed unit %s#%s: %s", exc.source, exc.offset, exc.reason)

    def index(self, batch: Sequence[RawEntry]) -> IndexResult:
        """Index a non-empty batch.

        Returns:
            IndexResult with indexed and skipped counts.

        Raises:
            ValueError: If *batch* is empty.
            IndexingError: If the store did not acknowledge the write.
        """
        if not batch:
            raise ValueError("index() requires a non-empty batch")

        records, result = self.parse_batch(batch)
        if not records:
            log.info("Batch of %d entries had no valid records (%d skipped)",
                     len(batch), result.skipped)
            return result

        ingested_at = self.clock()
        docs = [
            replace(rec, ingested_at=ingested_at).to_document()
            for rec in _order_within_sources(records)
        ]
        try:
            acked = self.store.write_batch(docs)
        except StoreError as exc:
            raise IndexingError(f"bulk write of {len(docs)} records failed: {exc}") from exc

        result.indexed = acked
        log.info(
            "Indexed %d records (%d skipped) from %d entries",
            result.indexed, result.skipped, len(batch),
        )
        return result


def _order_within_sources(records: list[LogRecord]) -> list[LogRecord]:
    """Group by source, stable-sort each group by timestamp then offset."""
    by_source: dict[str, list[LogRecord]] = defaultdict(list)
    for rec in records:
        by_source[rec.source].append(rec)
    ordered: list[LogRecord] = []
    for source in sorted(by_source):
        ordered.extend(sorted(by_source[source], key=lambda r: (r.timestamp, r.offset)))
    return ordered
