"""CorrelationWindow: the half-open interval one correlation run scans."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from src.shared.timeutil import format_ts


@dataclass(frozen=True, slots=True)
class CorrelationWindow:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f"empty correlation window: {self}")

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @classmethod
    def trailing(
        cls,
        now: datetime,
        window_size: timedelta,
        overlap: timedelta = timedelta(0),
    ) -> CorrelationWindow:
        """``[now - window_size - overlap, now)``.

        The overlap reaches back into the previous run's window so records
        that were indexed late are still seen; dedup absorbs the repeats.
        """
        # stored timestamps carry millisecond precision; keep the bounds aligned
        now = now.replace(microsecond=now.microsecond - now.microsecond % 1000)
        return cls(start=now - window_size - overlap, end=now)

    def __str__(self) -> str:
        return f"[{format_ts(self.start)}, {format_ts(self.end)})"
