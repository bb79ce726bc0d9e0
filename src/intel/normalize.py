"""Normalise raw feed items into Indicators.

Unknown or missing types are kept as ``IndicatorType.UNKNOWN``: intel is
never silently dropped because we do not recognise its category.
"""

from __future__ import annotations

import ipaddress
import logging
from datetime import datetime
from typing import Any

from src.contracts.enums import IndicatorType
from src.contracts.indicator import Indicator

log = logging.getLogger(__name__)

# Feed type names (OTX spelling) → canonical type.  Matched case-insensitively.
_TYPE_MAP: dict[str, IndicatorType] = {
    "ipv4": IndicatorType.IP,
    "ipv6": IndicatorType.IP,
    "ip": IndicatorType.IP,
    "domain": IndicatorType.DOMAIN,
    "hostname": IndicatorType.HOSTNAME,
    "url": IndicatorType.URL,
    "uri": IndicatorType.URL,
    "filehash-md5": IndicatorType.HASH,
    "filehash-sha1": IndicatorType.HASH,
    "filehash-sha256": IndicatorType.HASH,
    "filehash-pehash": IndicatorType.HASH,
    "filehash-imphash": IndicatorType.HASH,
    "hash": IndicatorType.HASH,
    "email": IndicatorType.EMAIL,
    "cve": IndicatorType.CVE,
}

_LOWERCASE = {
    IndicatorType.DOMAIN,
    IndicatorType.HOSTNAME,
    IndicatorType.HASH,
    IndicatorType.EMAIL,
}


def map_type(raw_type: Any) -> IndicatorType:
    if not isinstance(raw_type, str) or not raw_type.strip():
        return IndicatorType.UNKNOWN
    return _TYPE_MAP.get(raw_type.strip().lower(), IndicatorType.UNKNOWN)


def canonical_value(itype: IndicatorType, value: str) -> str:
    """Canonical form used for the ``(type, value)`` key and for matching."""
    value = value.strip()
    if itype is IndicatorType.IP:
        try:
            return ipaddress.ip_address(value).compressed
        except ValueError:
            return value
    if itype in _LOWERCASE:
        return value.lower().rstrip(".")
    if itype is IndicatorType.CVE:
        return value.upper()
    return value


def normalize_indicator(
    raw: Any,
    observed_at: datetime,
    source: str = "",
) -> Indicator | None:
    """Build an Indicator from one feed item, or None when it is not an object or has no value."""
    if not isinstance(raw, dict):
        return None
    value = raw.get("indicator")
    if not isinstance(value, str) or not value.strip():
        return None
    itype = map_type(raw.get("type"))
    if itype is IndicatorType.UNKNOWN:
        log.debug("Unrecognised indicator type %r kept as unknown", raw.get("type"))
    return Indicator(
        type=itype,
        value=canonical_value(itype, value),
        first_seen=observed_at,
        last_seen=observed_at,
        source=source,
    )
