"""Record parser: one decoded raw object → LogRecord.

Collector output (Winlogbeat, Firehose JSON) is nested; the parser
flattens it to dotted keys so that field → indicator-type maps can name
``source.ip`` or ``dns.question.name`` directly.  Host names stay in
``fields``; ``LogRecord.source`` is always the transport source.
"""

from __future__ import annotations

import logging
from typing import Any

from src.contracts.errors import ParseError
from src.contracts.record import TIMESTAMP_FIELD, LogRecord
from src.shared.timeutil import parse_ts

log = logging.getLogger(__name__)

# ── Field candidates (first present wins) ───────────────────────────────────

_TIMESTAMP_KEYS = (TIMESTAMP_FIELD, "timestamp", "event.created")
_RESERVED = {TIMESTAMP_FIELD, "ioc_match"}

_TRUE = {"true", "1", "yes"}


# ── Helpers ──────────────────────────────────────────────────────────────────


def flatten(obj: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested dicts into dotted keys.  Lists are kept as values."""
    flat: dict[str, Any] = {}
    for key, value in obj.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and value:
            flat.update(flatten(value, name))
        else:
            flat[name] = value
    return flat


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE
    if isinstance(value, (int, float)):
        return value != 0
    return False


# ── Main parse function ──────────────────────────────────────────────────────


def parse_record(obj: Any, source: str, offset: int) -> LogRecord:
    """Validate one raw unit and build a LogRecord.

    Args:
        obj: Decoded JSON unit.
        source: Transport-level source (stream, object key).  Together with
            *offset* it fixes the document identity.
        offset: Position of the unit inside *source*.

    Raises:
        ParseError: ``not_an_object``, ``no_timestamp`` or ``bad_timestamp``.
    """
    if not isinstance(obj, dict):
        raise ParseError("not_an_object", source=source, offset=offset)

    flat = flatten(obj)

    raw_ts = next((flat[k] for k in _TIMESTAMP_KEYS if flat.get(k) not in (None, "")), None)
    if raw_ts is None:
        raise ParseError("no_timestamp", source=source, offset=offset)
    try:
        ts = parse_ts(raw_ts)
    except (ValueError, TypeError, OverflowError, OSError) as exc:
        raise ParseError(f"bad_timestamp: {exc}", source=source, offset=offset) from exc

    fields = {k: v for k, v in flat.items() if k not in _RESERVED}

    return LogRecord(
        timestamp=ts,
        source=source,
        offset=offset,
        fields=fields,
        ioc_match=_coerce_flag(flat.get("ioc_match", False)),
    )
