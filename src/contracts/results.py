"""Per-invocation outcome records returned by each component."""

from __future__ import annotations

from dataclasses import dataclass, field

from src.contracts.alert import Alert
from src.contracts.window import CorrelationWindow


@dataclass(slots=True)
class IndexResult:
    indexed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)  # "<source>#<offset>: <reason>"

    def merge(self, other: IndexResult) -> IndexResult:
        return IndexResult(
            indexed=self.indexed + other.indexed,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
        )


@dataclass(slots=True)
class FetchResult:
    ingested: int = 0
    skipped: int = 0
    pages: int = 0


@dataclass(slots=True)
class CorrelationResult:
    window: CorrelationWindow
    candidates: int = 0   # records returned for the window
    matched: int = 0      # distinct alert ids produced by the predicate
    duplicates: int = 0   # suppressed by the dedup store
    alerts: list[Alert] = field(default_factory=list)

    @property
    def alerts_emitted(self) -> int:
        return len(self.alerts)
