"""Threat feed client (AlienVault OTX style).

``GET <base>/api/v1/indicators?limit=<page_size>`` with the
``X-OTX-API-KEY`` header.  Each page is ``{"results": [{"type", "indicator"},
...], "next": <url or null>}``; the client follows ``next`` for at most
``max_pages`` pages.  Every failure is a ``FetchError``; there is no
retry here, the next scheduled run is the retry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import httpx

from src.contracts.errors import FetchError

log = logging.getLogger(__name__)

API_KEY_HEADER = "X-OTX-API-KEY"
INDICATORS_PATH = "/api/v1/indicators"


class OtxFeedClient:
    name = "otx"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://otx.alienvault.com",
        page_size: int = 100,
        max_pages: int = 10,
        timeout_sec: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.max_pages = max_pages
        self._http = httpx.Client(
            timeout=httpx.Timeout(timeout_sec),
            transport=transport,
            headers={API_KEY_HEADER: api_key},
        )

    def _get(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            resp = self._http.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise FetchError(f"feed request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"feed request failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise FetchError(f"feed rejected credentials (HTTP {resp.status_code})")
        if resp.status_code != 200:
            raise FetchError(f"feed returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise FetchError("feed returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise FetchError(f"feed page is a JSON {type(data).__name__}, expected an object")
        return data

    def pages(self) -> Iterator[list[dict[str, Any]]]:
        """Yield the ``results`` list of each page, lazily."""
        if not self.api_key:
            raise FetchError("no threat feed API key configured")

        url: str | None = f"{self.base_url}{INDICATORS_PATH}"
        params: dict[str, Any] | None = {"limit": self.page_size}
        for page_no in range(1, self.max_pages + 1):
            data = self._get(url, params)
            results = data.get("results") or []
            if not isinstance(results, list):
                raise FetchError(f"feed page {page_no} has non-list results")
            log.debug("Feed page %d: %d items", page_no, len(results))
            yield results
            url = data.get("next")
            if url is not None and not isinstance(url, str):
                raise FetchError(f"feed page {page_no} has a non-string next link")
            params = None  # next links carry their own query string
            if not url or not results:
                return
        log.info("Feed pagination stopped at max_pages=%d", self.max_pages)

    def close(self) -> None:
        self._http.close()
