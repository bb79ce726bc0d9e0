"""Match policies — decide which records in a window are IOC hits.

Two strategies trade accuracy differently, so the choice is configuration:

  flag    — trust the pre-computed ``ioc_match`` flag set by upstream
            enrichment; the store query is narrowed to flagged records.
  lookup  — compare configured record fields against the indicator store
            for type-compatible indicators (``source.ip`` vs ``ip``).
            Naive equality, so expect false positives on shared values.
  any     — union of both.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from src.contracts.enums import IndicatorType
from src.contracts.indicator import Indicator
from src.contracts.record import LogRecord
from src.intel.normalize import canonical_value
from src.stores.base import IndicatorStore

log = logging.getLogger(__name__)

FLAG_FIELD = "ioc_match"

DEFAULT_FIELD_TYPES: dict[str, tuple[IndicatorType, ...]] = {
    "source_ip": (IndicatorType.IP,),
    "destination_ip": (IndicatorType.IP,),
    "source.ip": (IndicatorType.IP,),
    "destination.ip": (IndicatorType.IP,),
    "client.ip": (IndicatorType.IP,),
    "dns.question.name": (IndicatorType.DOMAIN, IndicatorType.HOSTNAME),
    "url.domain": (IndicatorType.DOMAIN, IndicatorType.HOSTNAME),
    "destination.domain": (IndicatorType.DOMAIN, IndicatorType.HOSTNAME),
    "url.full": (IndicatorType.URL,),
    "url.original": (IndicatorType.URL,),
    "file.hash.md5": (IndicatorType.HASH,),
    "file.hash.sha1": (IndicatorType.HASH,),
    "file.hash.sha256": (IndicatorType.HASH,),
}


@dataclass(frozen=True, slots=True)
class Match:
    record: LogRecord
    indicator: Indicator | None
    field: str
    value: str  # the indicator value the alert id is derived from


class MatchPolicy(abc.ABC):
    name = "abstract"

    def query_filter(self) -> dict[str, Any] | None:
        """Optional term filter pushed down to the window query."""
        return None

    def prepare(self, records: list[LogRecord]) -> Any:
        """Called once per run with every candidate, before ``evaluate``.

        Whatever is returned is that run's state and is handed back to every
        ``evaluate`` call of the same run.  Policies keep no per-run state of
        their own, so one instance serves concurrent runs.
        """
        return None

    @abc.abstractmethod
    def evaluate(self, record: LogRecord, state: Any = None) -> list[Match]: ...


class FlagPolicy(MatchPolicy):
    name = "flag"

    def query_filter(self) -> dict[str, Any] | None:
        return {FLAG_FIELD: True}

    def evaluate(self, record: LogRecord, state: Any = None) -> list[Match]:
        if not record.ioc_match:
            return []
        # enrichment may name the indicator it matched; otherwise one alert per record
        value = record.fields.get("ioc.value") or record.fields.get("ioc_value") or FLAG_FIELD
        return [Match(record, None, FLAG_FIELD, str(value))]


def _string_values(raw: Any) -> list[str]:
    if isinstance(raw, str):
        return [raw] if raw.strip() else []
    if isinstance(raw, list):
        return [v for v in raw if isinstance(v, str) and v.strip()]
    return []


IndicatorIndex = dict[tuple[IndicatorType, str], Indicator]


class IndicatorLookupPolicy(MatchPolicy):
    name = "lookup"

    def __init__(
        self,
        store: IndicatorStore,
        field_types: Mapping[str, Iterable[IndicatorType]] | None = None,
    ) -> None:
        self.store = store
        source = DEFAULT_FIELD_TYPES if field_types is None else field_types
        self.field_types = {f: tuple(types) for f, types in source.items()}

    def _candidates(self, record: LogRecord) -> Iterable[tuple[str, IndicatorType, str]]:
        for field, types in self.field_types.items():
            for raw in _string_values(record.fields.get(field)):
                for itype in types:
                    yield field, itype, canonical_value(itype, raw)

    def prepare(self, records: list[LogRecord]) -> IndicatorIndex:
        """Batch one indicator-store lookup for every candidate value in the run.

        Returns:
            The run's indicators keyed by ``(type, value)``.

        Raises:
            StoreError: If the indicator store lookup fails.
        """
        values = {value for rec in records for _, _, value in self._candidates(rec)}
        if not values:
            return {}
        index: IndicatorIndex = {ind.key: ind for ind in self.store.lookup(values)}
        log.debug("Lookup policy: %d candidate values, %d indicators hit",
                  len(values), len(index))
        return index

    def evaluate(self, record: LogRecord, state: IndicatorIndex | None = None) -> list[Match]:
        index = state or {}
        matches: dict[str, Match] = {}
        for field, itype, value in self._candidates(record):
            ind = index.get((itype, value))
            if ind is not None and ind.value not in matches:
                matches[ind.value] = Match(record, ind, field, ind.value)
        return list(matches.values())


class AnyOfPolicy(MatchPolicy):
    name = "any"

    def __init__(self, policies: list[MatchPolicy]) -> None:
        self.policies = policies

    def prepare(self, records: list[LogRecord]) -> list[Any]:
        return [p.prepare(records) for p in self.policies]

    def evaluate(self, record: LogRecord, state: list[Any] | None = None) -> list[Match]:
        states = state if state is not None else [None] * len(self.policies)
        merged: dict[str, Match] = {}
        for p, s in zip(self.policies, states):
            for m in p.evaluate(record, s):
                merged.setdefault(m.value, m)
        return list(merged.values())


def parse_field_types(cfg: Mapping[str, Any] | None) -> dict[str, tuple[IndicatorType, ...]] | None:
    """``{field: "ip" | [types]}`` from YAML → typed map (None keeps the defaults)."""
    if not cfg:
        return None
    parsed: dict[str, tuple[IndicatorType, ...]] = {}
    for field, types in cfg.items():
        if isinstance(types, str):
            names = [types]
        elif isinstance(types, list):
            names = types
        else:
            raise ValueError(f"field_types entry {field!r} must be a type name or a list of them")
        parsed[field] = tuple(IndicatorType(n) for n in names)
    return parsed


def build_policy(
    name: str,
    indicator_store: IndicatorStore | None = None,
    field_types: Mapping[str, Iterable[IndicatorType]] | None = None,
) -> MatchPolicy:
    """Build a policy by configuration name: ``flag``, ``lookup`` or ``any``."""
    key = name.strip().lower()
    if key == "flag":
        return FlagPolicy()
    if key not in ("lookup", "any"):
        raise ValueError(f"unknown match policy '{name}' (expected flag, lookup or any)")
    if indicator_store is None:
        raise ValueError(f"match policy '{name}' needs an indicator store")
    lookup = IndicatorLookupPolicy(indicator_store, field_types)
    if key == "lookup":
        return lookup
    return AnyOfPolicy([FlagPolicy(), lookup])
