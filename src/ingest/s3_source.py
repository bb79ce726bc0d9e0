"""S3 object source: event notifications → RawEntries.

The collector delivery stream lands log objects in an archive bucket; the
bucket's event notifications name the objects to index.  An object holding
one JSON document (object or array) becomes a single entry; anything else
is read as newline-delimited JSON, one TEXT entry per line, so a single bad
line is skipped instead of the whole object.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import unquote_plus

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from src.contracts.errors import ParseError, StoreError, StoreTimeoutError
from src.ingest.entries import RawEntry, decode_text

log = logging.getLogger(__name__)


def object_refs(event: dict[str, Any]) -> list[tuple[str, str]]:
    """Extract ``(bucket, key)`` pairs from an S3 event notification."""
    refs: list[tuple[str, str]] = []
    for record in event.get("Records", []):
        s3 = record.get("s3", {})
        bucket = s3.get("bucket", {}).get("name")
        key = s3.get("object", {}).get("key")
        if bucket and key:
            refs.append((bucket, unquote_plus(key)))
        else:
            log.warning("Ignoring S3 notification without bucket/key: %s", record)
    return refs


def split_body(source: str, body: str) -> list[RawEntry]:
    """Turn an object body into entries (whole document, else one per line)."""
    try:
        return [decode_text(RawEntry.text(source, 0, body))]
    except ParseError:
        pass  # not a single JSON document; fall back to one entry per line
    return [
        RawEntry.text(source, line_no, line)
        for line_no, line in enumerate(body.splitlines(), 1)
        if line.strip()
    ]


class S3ObjectSource:
    def __init__(
        self,
        client: Any = None,
        region: str | None = None,
        timeout_sec: float = 10.0,
    ) -> None:
        self._s3 = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(
                connect_timeout=timeout_sec,
                read_timeout=timeout_sec,
                retries={"max_attempts": 2},
            ),
        )

    def read_object(self, bucket: str, key: str) -> list[RawEntry]:
        source = f"s3://{bucket}/{key}"
        try:
            obj = self._s3.get_object(Bucket=bucket, Key=key)
            body = obj["Body"].read().decode("utf-8", errors="replace")
        except (ConnectTimeoutError, ReadTimeoutError) as exc:
            raise StoreTimeoutError(f"get_object {source} timed out: {exc}") from exc
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"get_object {source} failed: {exc}") from exc
        entries = split_body(source, body)
        log.info("Read %s: %d bytes, %d entries", source, len(body), len(entries))
        return entries

    def entries_for_event(self, event: dict[str, Any]) -> list[RawEntry]:
        entries: list[RawEntry] = []
        for bucket, key in object_refs(event):
            entries.extend(self.read_object(bucket, key))
        return entries
