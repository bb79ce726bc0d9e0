"""OpenSearch adapters for the searchable log store and the indicator store.

Wire protocol
─────────────
  bulk   — ``POST /<index>/_bulk`` with newline-delimited
           ``(action-metadata, document)`` pairs; every action names an
           explicit ``_id`` so a retried batch overwrites instead of
           duplicating.
  query  — ``POST /<index>/_search`` with a ``range`` filter on
           ``@timestamp`` (``gte`` start, ``lt`` end), sorted by
           ``@timestamp, doc_id`` and paged with ``search_after``.

All transport failures surface as ``StoreError``; timeouts as
``StoreTimeoutError``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any

import httpx

from src.contracts.errors import StoreError, StoreTimeoutError
from src.contracts.indicator import Indicator
from src.contracts.record import TIMESTAMP_FIELD
from src.contracts.window import CorrelationWindow
from src.shared.timeutil import format_ts
from src.stores.base import IndicatorStore, SearchStore

log = logging.getLogger(__name__)

_NDJSON = {"Content-Type": "application/x-ndjson"}

LOGS_MAPPING: dict[str, Any] = {
    "mappings": {
        "dynamic": True,
        "properties": {
            TIMESTAMP_FIELD: {"type": "date"},
            "doc_id": {"type": "keyword"},
            "source": {"type": "keyword"},
            "offset": {"type": "long"},
            "ioc_match": {"type": "boolean"},
            "ingested_at": {"type": "date"},
            # _source only: dotted payload keys are never expanded or mapped
            "fields": {"type": "object", "enabled": False},
        },
    }
}

IOC_MAPPING: dict[str, Any] = {
    "mappings": {
        "properties": {
            "type": {"type": "keyword"},
            "value": {"type": "keyword"},
            "first_seen": {"type": "date"},
            "last_seen": {"type": "date"},
            "source": {"type": "keyword"},
        }
    }
}


def build_bulk_body(actions: Iterable[tuple[dict[str, Any], dict[str, Any]]]) -> str:
    """Serialise ``(action-metadata, document)`` pairs to the bulk NDJSON body."""
    lines: list[str] = []
    for meta, doc in actions:
        lines.append(json.dumps(meta, separators=(",", ":")))
        lines.append(json.dumps(doc, ensure_ascii=False, separators=(",", ":")))
    return "\n".join(lines) + "\n"


def _endpoint_url(endpoint: str) -> str:
    # the domain endpoint is published without a scheme
    if endpoint.startswith(("http://", "https://")):
        return endpoint.rstrip("/")
    return f"https://{endpoint.rstrip('/')}"


class OpenSearchClient:
    """Thin JSON-over-HTTP client with bounded timeouts."""

    def __init__(
        self,
        endpoint: str,
        timeout_sec: float = 10.0,
        auth: tuple[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = _endpoint_url(endpoint)
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_sec),
            auth=auth,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        content: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            resp = self._http.request(
                method, path, json=json_body, content=content, headers=headers
            )
        except httpx.TimeoutException as exc:
            raise StoreTimeoutError(f"{method} {path} timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise StoreError(f"{method} {path} -> HTTP {resp.status_code}: {resp.text[:300]}")
        try:
            return resp.json()
        except ValueError as exc:
            raise StoreError(f"{method} {path} returned non-JSON body") from exc

    def bulk(self, index: str, actions: list[tuple[dict[str, Any], dict[str, Any]]]) -> int:
        """Send one bulk request; return the number of acknowledged items."""
        if not actions:
            return 0
        body = build_bulk_body(actions)
        result = self.request("POST", f"/{index}/_bulk", content=body, headers=_NDJSON)
        items = result.get("items", [])
        if result.get("errors"):
            failed = [
                it for it in items
                if next(iter(it.values()), {}).get("status", 500) >= 300
            ]
            first = next(iter(failed[0].values()), {}).get("error") if failed else None
            raise StoreError(
                f"bulk to {index}: {len(failed)} of {len(items)} items rejected "
                f"(first error: {first})"
            )
        return len(items)

    def ensure_index(self, index: str, body: dict[str, Any]) -> bool:
        """Create *index* if missing; return True when it was created."""
        try:
            self._http.head(f"/{index}").raise_for_status()
            return False
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code != 404:
                raise StoreError(f"HEAD /{index} -> HTTP {exc.response.status_code}") from exc
        except httpx.TimeoutException as exc:
            raise StoreTimeoutError(f"HEAD /{index} timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise StoreError(f"HEAD /{index} failed: {exc}") from exc
        self.request("PUT", f"/{index}", json_body=body)
        log.info("Created index %s", index)
        return True

    def close(self) -> None:
        self._http.close()


class OpenSearchLogStore(SearchStore):
    def __init__(
        self,
        client: OpenSearchClient,
        index: str = "logs",
        page_size: int = 500,
    ) -> None:
        self.client = client
        self.index = index
        self.page_size = page_size

    def write_batch(self, docs: Sequence[dict[str, Any]]) -> int:
        actions = [({"index": {"_id": d["doc_id"]}}, d) for d in docs]
        return self.client.bulk(self.index, actions)

    def query(
        self,
        window: CorrelationWindow,
        filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        clauses: list[dict[str, Any]] = [
            {
                "range": {
                    TIMESTAMP_FIELD: {
                        "gte": format_ts(window.start),
                        "lt": format_ts(window.end),
                    }
                }
            }
        ]
        clauses.extend({"term": {k: v}} for k, v in (filter or {}).items())

        body: dict[str, Any] = {
            "size": self.page_size,
            "query": {"bool": {"filter": clauses}},
            "sort": [{TIMESTAMP_FIELD: "asc"}, {"doc_id": "asc"}],
        }
        docs: list[dict[str, Any]] = []
        while True:
            result = self.client.request("POST", f"/{self.index}/_search", json_body=body)
            hits = result.get("hits", {}).get("hits", [])
            docs.extend(h.get("_source", {}) for h in hits)
            if len(hits) < self.page_size:
                break
            body["search_after"] = hits[-1]["sort"]
        log.debug("Query %s on %s returned %d docs", window, self.index, len(docs))
        return docs


class OpenSearchIndicatorStore(IndicatorStore):
    """Indicators keyed by ``<type>:<value>``.

    Upserts use the ``update`` action: ``doc`` advances ``last_seen`` on an
    existing indicator, ``upsert`` creates it with ``first_seen`` intact.
    """

    def __init__(self, client: OpenSearchClient, index: str = "ioc", lookup_chunk: int = 500) -> None:
        self.client = client
        self.index = index
        self.lookup_chunk = lookup_chunk

    @staticmethod
    def _update_action(ind: Indicator) -> tuple[dict[str, Any], dict[str, Any]]:
        doc = ind.to_document()
        partial = {k: doc[k] for k in ("type", "value", "last_seen", "source")}
        return ({"update": {"_id": ind.doc_id}}, {"doc": partial, "upsert": doc})

    def upsert(self, indicator: Indicator) -> None:
        self.client.bulk(self.index, [self._update_action(indicator)])

    def upsert_many(self, indicators: Iterable[Indicator]) -> int:
        actions = [self._update_action(i) for i in indicators]
        return self.client.bulk(self.index, actions)

    def lookup(self, values: Iterable[str]) -> list[Indicator]:
        wanted = sorted(set(values))
        found: list[Indicator] = []
        for i in range(0, len(wanted), self.lookup_chunk):
            chunk = wanted[i : i + self.lookup_chunk]
            body = {
                "size": 10 * len(chunk),
                "query": {"terms": {"value": chunk}},
            }
            result = self.client.request("POST", f"/{self.index}/_search", json_body=body)
            for hit in result.get("hits", {}).get("hits", []):
                try:
                    found.append(Indicator.from_document(hit["_source"]))
                except (KeyError, ValueError) as exc:
                    log.warning("Skipping malformed indicator %s: %s", hit.get("_id"), exc)
        return found
