# =============================================================================
# Live Search — Backend-less "real-time" Knowledge Source
# =============================================================================
#
# Sources registered without a backend (and the reserved "web_search"
# pseudo-source) are answered by a live search call at query time.
#
# The HTTP implementation speaks the common JSON search-API shape used by
# Tavily-style endpoints:
#   POST <live_search_url>   {"query": "...", "max_results": 3}
#   → {"results": [{"title": "...", "content": "...", "url": "..."}]}
#
# DESIGN DECISION: httpx.AsyncClient, injectable.
# The dispatcher awaits live search alongside other async work, and tests
# inject an httpx.MockTransport instead of patching the network.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LiveSearchHit:
    """A single live search hit."""

    title: str
    snippet: str
    url: str | None = None


class LiveSearch(Protocol):
    """Protocol for the live-search capability."""

    async def search(self, query: str, max_results: int) -> list[LiveSearchHit]:
        ...


class HttpLiveSearch:
    """Live search over a JSON HTTP search endpoint."""

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._timeout = timeout or settings.live_search_timeout_seconds
        self._client = client

    async def search(self, query: str, max_results: int) -> list[LiveSearchHit]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        payload = {"query": query, "max_results": max_results}

        if self._client is not None:
            response = await self._client.post(
                self._url, json=payload, headers=headers, timeout=self._timeout,
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url, json=payload, headers=headers,
                )
        response.raise_for_status()

        results = response.json().get("results") or []
        hits = [
            LiveSearchHit(
                title=(item.get("title") or "").strip(),
                snippet=(
                    item.get("content") or item.get("snippet")
                    or item.get("body") or ""
                ).strip(),
                url=item.get("url") or item.get("href"),
            )
            for item in results[:max_results]
        ]
        logger.info("Live search returned %d hits for '%s'", len(hits), query[:80])
        return hits


def get_live_search() -> HttpLiveSearch | None:
    """Build the configured live search, or None when it is disabled."""
    if not settings.live_search_url:
        return None
    return HttpLiveSearch(
        url=settings.live_search_url,
        api_key=settings.live_search_api_key,
    )
