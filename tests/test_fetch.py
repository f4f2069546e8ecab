import asyncio

import httpx
import pytest

from tournament_ingest.core.errors import SourceFetchFailed
from tournament_ingest.jobs.fetch import classify_html_payload, fetch_page

PAGE = "<html><body>" + "<p>tournament</p>" * 200 + "</body></html>"


def _fetch(handler, url: str = "https://example.com/events", **kwargs):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_page(url, client=client, **kwargs)

    return asyncio.run(run())


def _failure(handler, **kwargs) -> SourceFetchFailed:
    with pytest.raises(SourceFetchFailed) as excinfo:
        _fetch(handler, **kwargs)
    return excinfo.value


def test_classify_html_payload() -> None:
    assert classify_html_payload("text/html; charset=utf-8", 5000, min_bytes=2048) is None
    assert classify_html_payload("application/xhtml+xml", 5000, min_bytes=2048) is None
    assert classify_html_payload("application/json", 5000, min_bytes=2048) == "non_html_response"
    assert classify_html_payload(None, 5000, min_bytes=2048) == "non_html_response"
    assert classify_html_payload("text/html", 100, min_bytes=2048) == "empty_html"


def test_fetch_follows_redirects_and_records_the_chain() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/events":
            return httpx.Response(301, headers={"location": "/calendar"})
        return httpx.Response(200, headers={"content-type": "text/html"}, text=PAGE)

    page = _fetch(handler)
    assert page.final_url == "https://example.com/calendar"
    assert page.diagnostics["redirect_count"] == 1
    assert page.diagnostics["redirect_chain"] == [{"status": 301, "location": "https://example.com/calendar"}]
    assert page.diagnostics["status"] == 200
    assert "tournament" in page.html


def test_redirect_loop_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        target = "/b" if request.url.path == "/a" else "/a"
        return httpx.Response(302, headers={"location": target})

    failure = _failure(handler, url="https://example.com/a")
    assert failure.code == "redirect_loop"
    assert failure.diagnostics["final_url"] == "https://example.com/a"


def test_redirect_limit_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        hop = int(request.url.params.get("hop", "0"))
        return httpx.Response(302, headers={"location": f"/next?hop={hop + 1}"})

    failure = _failure(handler, max_hops=3)
    assert failure.code == "redirect_limit"
    assert len(failure.diagnostics["redirect_chain"]) == 4


def test_http_error_status_becomes_its_own_code() -> None:
    failure = _failure(lambda request: httpx.Response(404, headers={"content-type": "text/html"}, text=PAGE))
    assert failure.code == "http_error_404"
    assert failure.diagnostics["status"] == 404


def test_non_html_and_tiny_bodies_are_rejected() -> None:
    non_html = _failure(lambda request: httpx.Response(200, json={"events": []}))
    assert non_html.code == "non_html_response"

    tiny = _failure(lambda request: httpx.Response(200, headers={"content-type": "text/html"}, text="<p>hi</p>"))
    assert tiny.code == "empty_html"
    assert tiny.diagnostics["bytes"] == len("<p>hi</p>")


def test_transport_errors_become_fetch_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    failure = _failure(handler)
    assert failure.code == "fetch_failed"
    assert failure.diagnostics["error"] == "ConnectError"
