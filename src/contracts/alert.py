"""Alert and the per-run AlertSummary notification."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime

from src.contracts.indicator import Indicator
from src.contracts.record import LogRecord
from src.contracts.window import CorrelationWindow
from src.shared.timeutil import format_ts

SUMMARY_SUBJECT = "SIEM Alert"


def make_alert_id(record_key: str, indicator_value: str) -> str:
    """Stable across retries: depends only on the matched pair."""
    return hashlib.sha256(f"{record_key}|{indicator_value}".encode()).hexdigest()


@dataclass(frozen=True, slots=True)
class Alert:
    """Terminal once published."""

    alert_id: str
    created_at: datetime
    matched_record: LogRecord
    matched_indicator: Indicator | None  # None for flag-based matches
    matched_field: str
    message: str

    def detail_line(self) -> str:
        rec = self.matched_record
        if self.matched_indicator is not None:
            ind = self.matched_indicator
            what = f"{self.matched_field}={ind.value} ({ind.type.value} indicator)"
        else:
            what = "ioc_match flag set"
        return f"{format_ts(rec.timestamp)} {rec.source}: {what} [{self.alert_id[:12]}]"


@dataclass(slots=True)
class AlertSummary:
    """One notification per run, however many records matched."""

    window: CorrelationWindow
    alerts: list[Alert]
    sample_size: int = 5
    subject: str = field(default=SUMMARY_SUBJECT)

    @property
    def count(self) -> int:
        return len(self.alerts)

    @property
    def message(self) -> str:
        lines = [f"Detected {self.count} suspicious log entries."]
        lines.append(f"Window: {self.window}")
        sample = self.alerts[: max(self.sample_size, 0)]
        if sample:
            lines.append("")
            lines.append(f"Sample ({len(sample)} of {self.count}):")
            lines.extend(f"  - {a.detail_line()}" for a in sample)
        return "\n".join(lines)
