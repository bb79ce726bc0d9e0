"""Indicator of Compromise, keyed by ``(type, value)``."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from src.contracts.enums import IndicatorType
from src.shared.timeutil import format_ts, parse_ts


@dataclass(frozen=True, slots=True)
class Indicator:
    type: IndicatorType
    value: str
    first_seen: datetime
    last_seen: datetime
    source: str = ""  # feed name

    @property
    def key(self) -> tuple[IndicatorType, str]:
        return (self.type, self.value)

    @property
    def doc_id(self) -> str:
        return f"{self.type.value}:{self.value}"

    def observed(self, at: datetime) -> Indicator:
        """Return a copy re-observed at *at*; ``last_seen`` never moves backwards."""
        return replace(
            self,
            first_seen=min(self.first_seen, at),
            last_seen=max(self.last_seen, at),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "value": self.value,
            "first_seen": format_ts(self.first_seen),
            "last_seen": format_ts(self.last_seen),
            "source": self.source,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Indicator:
        try:
            itype = IndicatorType(doc.get("type", "unknown"))
        except ValueError:
            itype = IndicatorType.UNKNOWN
        return cls(
            type=itype,
            value=doc["value"],
            first_seen=parse_ts(doc["first_seen"]),
            last_seen=parse_ts(doc["last_seen"]),
            source=doc.get("source", ""),
        )
