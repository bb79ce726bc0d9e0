"""RawEntry: one unit handed over by the collector transport.

The transport may deliver a single JSON object, an array of objects, or
still-encoded JSON text.  That ambiguity is resolved here, once, into a
tagged variant; everything downstream works on the list returned by
``normalize_entry``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from src.contracts.enums import EntryKind
from src.contracts.errors import ParseError

# unit offsets are entry_offset * ARRAY_STRIDE + element index, so every
# element of every entry in a source has a distinct position
ARRAY_STRIDE = 100_000


@dataclass(frozen=True, slots=True)
class RawEntry:
    source: str
    offset: int
    kind: EntryKind
    payload: Any

    @classmethod
    def object(cls, source: str, offset: int, obj: dict[str, Any]) -> RawEntry:
        return cls(source, offset, EntryKind.OBJECT, obj)

    @classmethod
    def array(cls, source: str, offset: int, items: list[Any]) -> RawEntry:
        return cls(source, offset, EntryKind.ARRAY, items)

    @classmethod
    def text(cls, source: str, offset: int, text: str | bytes) -> RawEntry:
        if isinstance(text, bytes):
            text = text.decode("utf-8", errors="replace")
        return cls(source, offset, EntryKind.TEXT, text)


def decode_text(entry: RawEntry) -> RawEntry:
    """Decode a TEXT entry into an OBJECT or ARRAY entry.

    Raises:
        ParseError: If the text is not JSON, or is JSON but neither an
            object nor an array.
    """
    if entry.kind is not EntryKind.TEXT:
        return entry
    try:
        data = json.loads(entry.payload)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ParseError(
            f"invalid_json: {exc}", source=entry.source, offset=entry.offset
        ) from exc
    if isinstance(data, dict):
        return RawEntry.object(entry.source, entry.offset, data)
    if isinstance(data, list):
        return RawEntry.array(entry.source, entry.offset, data)
    raise ParseError(
        f"unsupported_json_type: {type(data).__name__}",
        source=entry.source,
        offset=entry.offset,
    )


def normalize_entry(entry: RawEntry) -> list[tuple[int, Any]]:
    """Return ``[(offset, unit), ...]`` for any entry kind.

    An OBJECT is treated as a one-element array.

    Raises:
        ParseError: If the entry is not decodable, or is an array with
            ARRAY_STRIDE or more elements (their offsets would run into the
            next entry's).
    """
    entry = decode_text(entry)
    if entry.kind is EntryKind.ARRAY and len(entry.payload) >= ARRAY_STRIDE:
        raise ParseError(
            f"array_too_large: {len(entry.payload)} elements",
            source=entry.source,
            offset=entry.offset,
        )
    base = entry.offset * ARRAY_STRIDE
    if entry.kind is EntryKind.OBJECT:
        return [(base, entry.payload)]
    return [(base + i, item) for i, item in enumerate(entry.payload)]
