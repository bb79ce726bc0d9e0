"""Abstract collaborator interfaces consumed by the core components.

Every method that talks to an external system must apply a bounded timeout
and surface it as ``StoreTimeoutError`` rather than hang.
"""

from __future__ import annotations

import abc
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from src.contracts.indicator import Indicator
from src.contracts.window import CorrelationWindow


class SearchStore(abc.ABC):
    """Searchable log store."""

    @abc.abstractmethod
    def write_batch(self, docs: Sequence[dict[str, Any]]) -> int:
        """Write documents keyed by their ``doc_id``; return the acknowledged count.

        Raises:
            StoreError: If the store rejects any document or is unreachable.
        """

    @abc.abstractmethod
    def query(
        self,
        window: CorrelationWindow,
        filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Return documents whose ``@timestamp`` lies in *window*.

        *filter* is a flat ``{field: value}`` term filter applied on top of
        the time range.
        """


class IndicatorStore(abc.ABC):
    """Indicator store; upserts are idempotent on ``(type, value)``."""

    @abc.abstractmethod
    def upsert(self, indicator: Indicator) -> None: ...

    def upsert_many(self, indicators: Iterable[Indicator]) -> int:
        n = 0
        for ind in indicators:
            self.upsert(ind)
            n += 1
        return n

    @abc.abstractmethod
    def lookup(self, values: Iterable[str]) -> list[Indicator]:
        """Return every stored indicator whose value is in *values*."""


class DedupStore(abc.ABC):
    """Persisted record of emitted alert ids.

    An entry is first inserted as a *pending claim* with a lease.  Only the
    caller whose ``insert_if_absent`` returned True may publish the alert.
    ``confirm`` turns the claim into a committed entry after the publish was
    acknowledged; ``release`` drops it when the publish did not happen.  An
    expired pending claim counts as absent.
    """

    @abc.abstractmethod
    def insert_if_absent(self, alert_id: str, now: datetime, lease_sec: float) -> bool:
        """Atomically claim *alert_id*; True if this caller now owns it."""

    @abc.abstractmethod
    def confirm(self, alert_ids: Iterable[str], now: datetime) -> None: ...

    @abc.abstractmethod
    def release(self, alert_ids: Iterable[str]) -> None:
        """Drop pending claims; committed entries are left alone."""

    @abc.abstractmethod
    def purge(self, older_than: datetime) -> int:
        """Delete committed entries confirmed before *older_than*."""


class NotificationChannel(abc.ABC):
    @abc.abstractmethod
    def publish(self, subject: str, message: str) -> str:
        """Deliver the message; return the channel's acknowledgment id."""
