"""In-process implementations of the collaborator interfaces.

They honour the same contracts as the real adapters (document identity,
idempotent upsert, atomic claim) so the core can be exercised without a
cluster.  All state is guarded by a lock; concurrent invocations are safe.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from src.contracts.indicator import Indicator
from src.contracts.record import TIMESTAMP_FIELD
from src.contracts.window import CorrelationWindow
from src.shared.timeutil import parse_ts
from src.stores.base import DedupStore, IndicatorStore, NotificationChannel, SearchStore

log = logging.getLogger(__name__)

_PENDING = "pending"
_COMMITTED = "committed"


class InMemorySearchStore(SearchStore):
    def __init__(self) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def write_batch(self, docs: Sequence[dict[str, Any]]) -> int:
        with self._lock:
            for doc in docs:
                # same doc_id overwrites: a retried batch never duplicates
                self._docs[doc["doc_id"]] = copy.deepcopy(doc)
        return len(docs)

    def query(
        self,
        window: CorrelationWindow,
        filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        terms = filter or {}
        with self._lock:
            hits = [
                copy.deepcopy(d)
                for d in self._docs.values()
                if window.contains(parse_ts(d[TIMESTAMP_FIELD]))
                and all(d.get(k) == v for k, v in terms.items())
            ]
        hits.sort(key=lambda d: (parse_ts(d[TIMESTAMP_FIELD]), d["doc_id"]))
        return hits

    def __len__(self) -> int:
        return len(self._docs)


class InMemoryIndicatorStore(IndicatorStore):
    def __init__(self) -> None:
        self._items: dict[str, Indicator] = {}
        self._lock = threading.Lock()

    def upsert(self, indicator: Indicator) -> None:
        with self._lock:
            current = self._items.get(indicator.doc_id)
            if current is None:
                self._items[indicator.doc_id] = indicator
            else:
                merged = current.observed(indicator.last_seen)
                if indicator.source:
                    merged = replace(merged, source=indicator.source)
                self._items[indicator.doc_id] = merged

    def lookup(self, values: Iterable[str]) -> list[Indicator]:
        wanted = set(values)
        with self._lock:
            return [i for i in self._items.values() if i.value in wanted]

    def all(self) -> list[Indicator]:
        with self._lock:
            return sorted(self._items.values(), key=lambda i: i.doc_id)

    def __len__(self) -> int:
        return len(self._items)


class InMemoryDedupStore(DedupStore):
    def __init__(self) -> None:
        # alert_id -> (state, timestamp); timestamp is lease expiry for pending,
        # confirmation time for committed
        self._entries: dict[str, tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def insert_if_absent(self, alert_id: str, now: datetime, lease_sec: float) -> bool:
        with self._lock:
            entry = self._entries.get(alert_id)
            if entry is not None:
                state, ts = entry
                if state == _COMMITTED or ts > now:
                    return False
                log.debug("Reclaiming expired claim %s", alert_id[:12])
            self._entries[alert_id] = (_PENDING, now + timedelta(seconds=lease_sec))
            return True

    def confirm(self, alert_ids: Iterable[str], now: datetime) -> None:
        with self._lock:
            for aid in alert_ids:
                self._entries[aid] = (_COMMITTED, now)

    def release(self, alert_ids: Iterable[str]) -> None:
        with self._lock:
            for aid in alert_ids:
                entry = self._entries.get(aid)
                if entry is not None and entry[0] == _PENDING:
                    del self._entries[aid]

    def purge(self, older_than: datetime) -> int:
        with self._lock:
            stale = [
                aid for aid, (state, ts) in self._entries.items()
                if state == _COMMITTED and ts < older_than
            ]
            for aid in stale:
                del self._entries[aid]
        return len(stale)

    def committed(self) -> set[str]:
        with self._lock:
            return {aid for aid, (state, _) in self._entries.items() if state == _COMMITTED}

    def snapshot(self) -> dict[str, tuple[str, datetime]]:
        with self._lock:
            return dict(self._entries)


class InMemoryChannel(NotificationChannel):
    """Collects published notifications in ``messages``."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []
        self._ids = itertools.count(1)

    def publish(self, subject: str, message: str) -> str:
        self.messages.append((subject, message))
        return f"mem-{next(self._ids)}"
