from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from tournament_ingest.core.config import Settings
from tournament_ingest.core.errors import ExternalProviderUnavailable
from tournament_ingest.core.urls import domain_of

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search.json"
BING_URL = "https://api.bing.microsoft.com/v7.0/search"
BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_MIN_INTERVAL_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class SearchResult:
    url: str
    title: str | None
    snippet: str | None
    domain: str | None


class SearchProvider(Protocol):
    name: str

    async def search(self, query: str, limit: int) -> list[SearchResult]: ...


def _clamp_limit(limit: int) -> int:
    return min(50, max(1, int(limit)))


class _HttpSearchProvider:
    name = "base"

    def __init__(self, api_key: str | None, *, client: httpx.AsyncClient, timeout_seconds: float = 10.0) -> None:
        if not api_key:
            raise ExternalProviderUnavailable(f"{self.name} search is not configured (missing API key)")
        self.api_key = api_key
        self.client = client
        self.timeout_seconds = timeout_seconds

    async def search(self, query: str, limit: int) -> list[SearchResult]:
        request = self._request(query, _clamp_limit(limit))
        response = await asyncio.wait_for(
            self.client.get(request["url"], params=request["params"], headers=request.get("headers")),
            timeout=self.timeout_seconds,
        )
        if response.status_code in (401, 403):
            raise ExternalProviderUnavailable(f"{self.name} rejected the configured credentials")
        response.raise_for_status()
        rows = self._rows(response.json())
        results: list[SearchResult] = []
        for row in rows:
            url = row.get("url")
            if not isinstance(url, str) or not url.strip():
                continue
            results.append(
                SearchResult(
                    url=url.strip(),
                    title=row.get("title") or None,
                    snippet=row.get("snippet") or None,
                    domain=domain_of(url),
                )
            )
        return results

    def _request(self, query: str, count: int) -> dict[str, Any]:
        raise NotImplementedError

    def _rows(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        raise NotImplementedError


class SerpApiProvider(_HttpSearchProvider):
    name = "serpapi"

    def _request(self, query: str, count: int) -> dict[str, Any]:
        return {
            "url": SERPAPI_URL,
            "params": {"engine": "google", "q": query, "num": count, "api_key": self.api_key},
        }

    def _rows(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        rows = payload.get("organic_results") or []
        return [{"url": row.get("link"), "title": row.get("title"), "snippet": row.get("snippet")} for row in rows]


class BingProvider(_HttpSearchProvider):
    name = "bing"

    def _request(self, query: str, count: int) -> dict[str, Any]:
        return {
            "url": BING_URL,
            "params": {"q": query, "count": count, "responseFilter": "Webpages", "mkt": "en-US"},
            "headers": {"Ocp-Apim-Subscription-Key": self.api_key},
        }

    def _rows(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        rows = (payload.get("webPages") or {}).get("value") or []
        return [{"url": row.get("url"), "title": row.get("name"), "snippet": row.get("snippet")} for row in rows]


class BraveProvider(_HttpSearchProvider):
    name = "brave"

    def __init__(self, api_key: str | None, *, client: httpx.AsyncClient, timeout_seconds: float = 10.0) -> None:
        super().__init__(api_key, client=client, timeout_seconds=timeout_seconds)
        self._throttle_lock = asyncio.Lock()
        self._last_request_at = 0.0

    async def search(self, query: str, limit: int) -> list[SearchResult]:
        async with self._throttle_lock:
            wait_for = BRAVE_MIN_INTERVAL_SECONDS - (time.monotonic() - self._last_request_at)
            if wait_for > 0:
                await asyncio.sleep(wait_for)
            self._last_request_at = time.monotonic()
        return await super().search(query, limit)

    def _request(self, query: str, count: int) -> dict[str, Any]:
        return {
            "url": BRAVE_URL,
            "params": {"q": query, "count": count},
            "headers": {"Accept": "application/json", "X-Subscription-Token": self.api_key},
        }

    def _rows(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        rows = (payload.get("web") or {}).get("results") or []
        return [{"url": row.get("url"), "title": row.get("title"), "snippet": row.get("description")} for row in rows]


def build_search_provider(settings: Settings, *, client: httpx.AsyncClient) -> SearchProvider:
    provider = (settings.search_provider or "serpapi").strip().lower()
    timeout = settings.search_timeout_seconds
    if provider == "bing":
        return BingProvider(settings.bing_search_api_key, client=client, timeout_seconds=timeout)
    if provider == "brave":
        return BraveProvider(settings.brave_search_api_key, client=client, timeout_seconds=timeout)
    if provider != "serpapi":
        logger.warning("unknown search provider %s; using serpapi", provider)
    return SerpApiProvider(settings.serpapi_api_key, client=client, timeout_seconds=timeout)
