"""Threat-Intel Fetcher: one scheduled ``fetch_and_upsert`` run.

Indicators are upserted page by page.  If a later page fails the run ends
with ``FetchError``; pages already upserted stay, which is harmless because
upserts are idempotent on ``(type, value)``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from src.contracts.errors import FetchError, StoreError
from src.contracts.indicator import Indicator
from src.contracts.results import FetchResult
from src.intel.feed import OtxFeedClient
from src.intel.normalize import normalize_indicator
from src.shared.timeutil import utcnow
from src.stores.base import IndicatorStore

log = logging.getLogger(__name__)


class ThreatIntelFetcher:
    def __init__(
        self,
        feed: OtxFeedClient,
        store: IndicatorStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.feed = feed
        self.store = store
        self.clock = clock

    def fetch_and_upsert(self) -> FetchResult:
        """Fetch every page and upsert its indicators.

        Raises:
            FetchError: Feed unreachable, non-200, bad credentials, timeout,
                or the indicator store refused the write.
        """
        observed_at = self.clock()
        result = FetchResult()

        for raw_items in self.feed.pages():
            result.pages += 1
            batch: dict[str, Indicator] = {}
            for raw in raw_items:
                ind = normalize_indicator(raw, observed_at, source=self.feed.name)
                if ind is None:
                    result.skipped += 1
                    log.warning("Feed item without usable indicator value: %r", raw)
                    continue
                batch[ind.doc_id] = ind  # collapse repeats within a page
            if not batch:
                continue
            try:
                self.store.upsert_many(batch.values())
            except StoreError as exc:
                raise FetchError(
                    f"indicator upsert failed after {result.ingested} indicators: {exc}"
                ) from exc
            result.ingested += len(batch)

        log.info(
            "Threat intel run: %d indicators upserted, %d skipped, %d pages",
            result.ingested, result.skipped, result.pages,
        )
        return result
