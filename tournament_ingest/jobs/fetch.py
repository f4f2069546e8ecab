from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx

from tournament_ingest.core.errors import SourceFetchFailed

logger = logging.getLogger(__name__)

REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}
MAX_REDIRECT_HOPS = 10
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
USER_AGENT = "tournament-ingest/0.1 (+source sweep)"


@dataclass(slots=True)
class FetchedPage:
    url: str
    final_url: str
    status_code: int
    content_type: str | None
    html: str
    diagnostics: dict[str, Any] = field(default_factory=dict)


def is_html_content_type(content_type: str | None) -> bool:
    normalized = (content_type or "").lower()
    return any(kind in normalized for kind in HTML_CONTENT_TYPES)


def classify_html_payload(content_type: str | None, byte_count: int, *, min_bytes: int) -> str | None:
    if not is_html_content_type(content_type):
        return "non_html_response"
    if byte_count < min_bytes:
        return "empty_html"
    return None


async def fetch_page(
    url: str,
    *,
    client: httpx.AsyncClient,
    timeout_seconds: float = 12.0,
    min_html_bytes: int = 2048,
    max_hops: int = MAX_REDIRECT_HOPS,
) -> FetchedPage:
    """GET an HTML page, following redirects by hand so loops and hop limits are reported."""
    diagnostics: dict[str, Any] = {"url": url, "redirect_chain": []}
    try:
        response = await asyncio.wait_for(
            _follow_redirects(client, url, max_hops=max_hops, diagnostics=diagnostics),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        diagnostics["error"] = "timeout"
        raise SourceFetchFailed(
            "fetch_failed", f"fetch timed out after {timeout_seconds}s", diagnostics=diagnostics
        ) from exc
    except httpx.HTTPError as exc:
        diagnostics["error"] = type(exc).__name__
        raise SourceFetchFailed("fetch_failed", f"fetch failed: {exc}", diagnostics=diagnostics) from exc

    content_type = response.headers.get("content-type")
    body = response.content
    diagnostics.update(
        {
            "status": int(response.status_code),
            "content_type": content_type,
            "bytes": len(body),
            "final_url": str(response.url),
            "redirect_count": len(diagnostics["redirect_chain"]),
        }
    )

    if response.status_code >= 400:
        raise SourceFetchFailed(
            f"http_error_{response.status_code}",
            f"source responded with HTTP {response.status_code}",
            diagnostics=diagnostics,
        )

    error_code = classify_html_payload(content_type, len(body), min_bytes=min_html_bytes)
    if error_code == "non_html_response":
        raise SourceFetchFailed(
            error_code, f"expected HTML, got {content_type or 'no content type'}", diagnostics=diagnostics
        )
    if error_code == "empty_html":
        raise SourceFetchFailed(error_code, f"HTML body too small ({len(body)} bytes)", diagnostics=diagnostics)

    logger.debug("fetched url=%s final_url=%s bytes=%s", url, response.url, len(body))
    return FetchedPage(
        url=url,
        final_url=str(response.url),
        status_code=int(response.status_code),
        content_type=content_type,
        html=response.text,
        diagnostics=diagnostics,
    )


async def _follow_redirects(
    client: httpx.AsyncClient,
    source_url: str,
    *,
    max_hops: int,
    diagnostics: dict[str, Any],
) -> httpx.Response:
    current_url = source_url
    seen_urls: set[str] = set()
    redirect_chain: list[dict[str, Any]] = diagnostics["redirect_chain"]

    for _ in range(max_hops + 1):
        if urlparse(current_url).scheme.lower() not in {"http", "https"}:
            raise SourceFetchFailed("fetch_failed", f"unsupported scheme in {current_url!r}", diagnostics=diagnostics)
        seen_urls.add(current_url)

        response = await client.get(current_url, headers={"User-Agent": USER_AGENT}, follow_redirects=False)
        location = response.headers.get("location")
        if response.status_code not in REDIRECT_STATUS_CODES or not location:
            return response

        next_url = urljoin(str(response.url), location)
        redirect_chain.append({"status": int(response.status_code), "location": next_url})
        if next_url in seen_urls:
            diagnostics["final_url"] = next_url
            raise SourceFetchFailed("redirect_loop", f"redirect loop at {next_url}", diagnostics=diagnostics)
        current_url = next_url

    diagnostics["final_url"] = current_url
    raise SourceFetchFailed("redirect_limit", f"more than {max_hops} redirects", diagnostics=diagnostics)
