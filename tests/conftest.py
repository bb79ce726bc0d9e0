"""Shared fixtures for SIEM pipeline tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from src.contracts.enums import IndicatorType
from src.contracts.indicator import Indicator
from src.contracts.record import LogRecord
from src.contracts.window import CorrelationWindow
from src.stores.memory import (
    InMemoryChannel,
    InMemoryDedupStore,
    InMemoryIndicatorStore,
    InMemorySearchStore,
)

BASE = datetime(2026, 10, 19, 10, 0, 0, tzinfo=UTC)

# ── Timestamp helpers ────────────────────────────────────────────────────


def ts(seconds: float = 0) -> datetime:
    """Return an aware datetime offset from BASE by *seconds*."""
    return BASE + timedelta(seconds=seconds)


def ts_offset(seconds: float = 0) -> str:
    """ISO-8601 text for ``ts(seconds)``, the way collectors write it."""
    return ts(seconds).strftime("%Y-%m-%dT%H:%M:%SZ")


def window(start_sec: float = -300, end_sec: float = 0) -> CorrelationWindow:
    return CorrelationWindow(ts(start_sec), ts(end_sec))


class FakeClock:
    """Settable wall clock: ``clock()`` returns ``now``; ``advance`` moves it."""

    def __init__(self, now: datetime = BASE) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


# ── Helpers: contracts with sensible defaults ───────────────────────────


def make_record(
    *,
    seconds: float = -60,
    source: str = "firehose://winlogbeat",
    offset: int = 1,
    fields: dict[str, Any] | None = None,
    ioc_match: bool = False,
) -> LogRecord:
    return LogRecord(
        timestamp=ts(seconds),
        source=source,
        offset=offset,
        fields=fields if fields is not None else {"event.code": "4625"},
        ioc_match=ioc_match,
    )


def make_indicator(
    *,
    value: str = "1.2.3.4",
    type: IndicatorType = IndicatorType.IP,
    seen: datetime = BASE,
    source: str = "otx",
) -> Indicator:
    return Indicator(type=type, value=value, first_seen=seen, last_seen=seen, source=source)


def make_raw(
    *,
    seconds: float = -60,
    source_ip: str | None = None,
    ioc_match: bool | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """A raw collector object as it arrives on the transport."""
    raw: dict[str, Any] = {"@timestamp": ts_offset(seconds), "host": {"name": "dc-01"}}
    if source_ip is not None:
        raw["source_ip"] = source_ip
    if ioc_match is not None:
        raw["ioc_match"] = ioc_match
    raw.update(extra)
    return raw


def feed_page(items: list[dict[str, Any]], next_url: str | None = None) -> dict[str, Any]:
    """One OTX-style feed response page."""
    return {"results": items, "next": next_url}


# ── Store fixtures ───────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def search_store() -> InMemorySearchStore:
    return InMemorySearchStore()


@pytest.fixture
def indicator_store() -> InMemoryIndicatorStore:
    return InMemoryIndicatorStore()


@pytest.fixture
def dedup_store() -> InMemoryDedupStore:
    return InMemoryDedupStore()


@pytest.fixture
def channel() -> InMemoryChannel:
    return InMemoryChannel()
