"""Canonical enumerations shared by the ingest, intel and correlation stages."""

from __future__ import annotations

from enum import Enum


class IndicatorType(str, Enum):
    IP = "ip"
    DOMAIN = "domain"
    HOSTNAME = "hostname"
    URL = "url"
    HASH = "hash"
    EMAIL = "email"
    CVE = "cve"
    UNKNOWN = "unknown"


class EntryKind(str, Enum):
    """How a raw ingest unit arrived from the transport."""

    OBJECT = "object"
    ARRAY = "array"
    TEXT = "text"
