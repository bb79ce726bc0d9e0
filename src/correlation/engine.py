"""Correlation Engine — one stateless run over one window.

Run phases
──────────
  1. query    — every record with ``@timestamp`` in ``[start, end)``
                (store failure or timeout → CorrelationError, nothing
                committed)
  2. match    — the configured MatchPolicy turns records into Matches;
                each match gets a deterministic alert id
  3. claim    — ``insert_if_absent`` per alert id.  Ids already committed
                (or claimed by a concurrent run) are duplicates.
  4. publish  — a single summary notification for all claimed alerts
                (failure → claims released, PublishError)
  5. confirm  — claims become committed dedup entries only after the
                publish was acknowledged

A crash between 4 and 5 leaves pending claims that expire after
``lease_sec``; the next run then publishes again.  Duplicate notification
is the accepted failure mode, a lost one is not.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from src.alerting.publisher import AlertPublisher
from src.contracts.alert import Alert, AlertSummary, make_alert_id
from src.contracts.errors import CorrelationError, DeadlineExceeded, PublishError, StoreError
from src.contracts.record import LogRecord
from src.contracts.results import CorrelationResult
from src.contracts.window import CorrelationWindow
from src.correlation.deadline import Deadline
from src.correlation.predicates import Match, MatchPolicy
from src.shared.timeutil import format_ts, utcnow
from src.stores.base import DedupStore, SearchStore

log = logging.getLogger(__name__)

_DEFAULT_LEASE_SEC = 300.0
_DEFAULT_RETENTION = timedelta(days=1)


def build_alert(match: Match, created_at: datetime) -> Alert:
    rec = match.record
    if match.indicator is not None:
        message = (
            f"{rec.source} record at {format_ts(rec.timestamp)} matched "
            f"{match.indicator.type.value} indicator {match.indicator.value} "
            f"via field {match.field}"
        )
    else:
        message = (
            f"{rec.source} record at {format_ts(rec.timestamp)} flagged by "
            f"upstream enrichment"
        )
    return Alert(
        alert_id=make_alert_id(rec.natural_key, match.value),
        created_at=created_at,
        matched_record=rec,
        matched_indicator=match.indicator,
        matched_field=match.field,
        message=message,
    )


class CorrelationEngine:
    def __init__(
        self,
        store: SearchStore,
        policy: MatchPolicy,
        dedup: DedupStore,
        publisher: AlertPublisher,
        clock: Callable[[], datetime] = utcnow,
        lease_sec: float = _DEFAULT_LEASE_SEC,
        retention: timedelta = _DEFAULT_RETENTION,
        deadline_sec: float | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.policy = policy
        self.dedup = dedup
        self.publisher = publisher
        self.clock = clock
        self.lease_sec = lease_sec
        self.retention = retention
        self.deadline_sec = deadline_sec
        self.monotonic = monotonic

    # ── Public API ───────────────────────────────────────────────────────

    def run(self, window: CorrelationWindow) -> CorrelationResult:
        """Correlate one window.

        Returns:
            CorrelationResult; ``alerts_emitted`` may be zero (success).

        Raises:
            CorrelationError: Query or dedup-store failure; nothing committed.
            DeadlineExceeded: The run was abandoned; claims released.
            PublishError: Matches were found but the notification failed.
        """
        deadline = Deadline(self.deadline_sec, self.monotonic)
        result = CorrelationResult(window=window)

        records = self._fetch(window)
        result.candidates = len(records)
        deadline.check("query")
        if not records:
            log.info("Window %s: no candidate records", window)
            return result

        alerts = self._match(records)
        result.matched = len(alerts)
        deadline.check("match")
        if not alerts:
            log.info("Window %s: %d records, no matches", window, len(records))
            return result

        claimed = self._claim(alerts)
        result.duplicates = len(alerts) - len(claimed)
        if not claimed:
            log.info("Window %s: %d matches, all previously alerted", window, len(alerts))
            return result

        ids = [a.alert_id for a in claimed]
        try:
            deadline.check("publish")
            self.publisher.publish(
                AlertSummary(window=window, alerts=claimed, sample_size=self.publisher.sample_size)
            )
        except (DeadlineExceeded, PublishError):
            self._release(ids)
            raise

        self._confirm(ids)
        self._purge()
        result.alerts = claimed
        log.info(
            "Window %s: %d records, %d matches, %d duplicates, %d alerts emitted",
            window, result.candidates, result.matched, result.duplicates,
            result.alerts_emitted,
        )
        return result

    # ── Phases ───────────────────────────────────────────────────────────

    def _fetch(self, window: CorrelationWindow) -> list[LogRecord]:
        try:
            docs = self.store.query(window, self.policy.query_filter())
        except StoreError as exc:
            raise CorrelationError(f"window query {window} failed: {exc}") from exc

        records: list[LogRecord] = []
        for doc in docs:
            rec = _to_record(doc)
            # the store's range filter is trusted only as far as the half-open bound
            if rec is not None and window.contains(rec.timestamp):
                records.append(rec)
        return records

    def _match(self, records: list[LogRecord]) -> list[Alert]:
        try:
            state = self.policy.prepare(records)
        except StoreError as exc:
            raise CorrelationError(f"indicator lookup failed: {exc}") from exc

        now = self.clock()
        alerts: dict[str, Alert] = {}
        for rec in records:
            for m in self.policy.evaluate(rec, state):
                alert = build_alert(m, now)
                alerts.setdefault(alert.alert_id, alert)
        return list(alerts.values())

    def _claim(self, alerts: list[Alert]) -> list[Alert]:
        now = self.clock()
        claimed: list[Alert] = []
        try:
            for alert in alerts:
                if self.dedup.insert_if_absent(alert.alert_id, now, self.lease_sec):
                    claimed.append(alert)
                else:
                    log.debug("Alert %s already emitted or claimed", alert.alert_id[:12])
        except StoreError as exc:
            self._release(a.alert_id for a in claimed)
            raise CorrelationError(f"dedup store claim failed: {exc}") from exc
        return claimed

    def _release(self, ids: Iterable[str]) -> None:
        ids = list(ids)
        try:
            self.dedup.release(ids)
        except StoreError as exc:
            # claims lapse on their own once the lease expires
            log.error("Could not release %d claims (lease expiry applies): %s", len(ids), exc)

    def _confirm(self, ids: list[str]) -> None:
        try:
            self.dedup.confirm(ids, self.clock())
        except StoreError as exc:
            log.error(
                "Published %d alerts but could not record them; a later run may "
                "notify again: %s", len(ids), exc,
            )

    def _purge(self) -> None:
        try:
            removed = self.dedup.purge(self.clock() - self.retention)
        except StoreError as exc:
            log.warning("Dedup purge failed: %s", exc)
            return
        if removed:
            log.debug("Purged %d dedup entries older than %s", removed, self.retention)


def _to_record(doc: dict[str, Any]) -> LogRecord | None:
    try:
        return LogRecord.from_document(doc)
    except (KeyError, ValueError, TypeError) as exc:
        log.warning("Skipping unreadable document %s: %s", doc.get("doc_id", "?"), exc)
        return None
