"""Contracts — canonical data structures shared by all modules."""

from src.contracts.alert import Alert, AlertSummary, make_alert_id
from src.contracts.enums import EntryKind, IndicatorType
from src.contracts.indicator import Indicator
from src.contracts.record import LogRecord, make_doc_id
from src.contracts.results import CorrelationResult, FetchResult, IndexResult
from src.contracts.window import CorrelationWindow

__all__ = [
    "Alert",
    "AlertSummary",
    "CorrelationResult",
    "CorrelationWindow",
    "EntryKind",
    "FetchResult",
    "IndexResult",
    "Indicator",
    "IndicatorType",
    "LogRecord",
    "make_alert_id",
    "make_doc_id",
]
