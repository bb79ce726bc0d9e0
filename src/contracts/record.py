"""LogRecord: one structured, indexed log entry."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.shared.timeutil import format_ts, parse_ts

TIMESTAMP_FIELD = "@timestamp"


def make_doc_id(source: str, offset: int) -> str:
    """Deterministic document identity derived from the transport position."""
    return hashlib.sha256(f"{source}|{offset}".encode()).hexdigest()


@dataclass(frozen=True, slots=True)
class LogRecord:
    """Immutable once indexed."""

    timestamp: datetime
    source: str
    offset: int
    fields: dict[str, Any] = field(default_factory=dict)
    ioc_match: bool = False
    ingested_at: datetime | None = None

    @property
    def doc_id(self) -> str:
        return make_doc_id(self.source, self.offset)

    @property
    def natural_key(self) -> str:
        return self.doc_id

    def to_document(self) -> dict[str, Any]:
        return {
            TIMESTAMP_FIELD: format_ts(self.timestamp),
            "doc_id": self.doc_id,
            "source": self.source,
            "offset": self.offset,
            "ioc_match": self.ioc_match,
            "ingested_at": format_ts(self.ingested_at) if self.ingested_at else None,
            "fields": dict(self.fields),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> LogRecord:
        ingested = doc.get("ingested_at")
        return cls(
            timestamp=parse_ts(doc[TIMESTAMP_FIELD]),
            source=doc.get("source", ""),
            offset=int(doc.get("offset", 0)),
            fields=dict(doc.get("fields") or {}),
            ioc_match=bool(doc.get("ioc_match", False)),
            ingested_at=parse_ts(ingested) if ingested else None,
        )
