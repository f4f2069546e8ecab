import asyncio
import json
from datetime import timedelta

import httpx

from tournament_ingest.core.config import Settings
from tournament_ingest.jobs.sweep import run_sweeps, sweep_source
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.sources import register_source
from tournament_ingest.services.store import InMemoryRepository

PADDING = "<!-- " + "x" * 2200 + " -->"

CALENDAR_PAGE = """
<html><body>
<h2>June 2026</h2>
<div class="event-block">
  <a class="event-block-info-title" href="/event/101">Summer Slam</a>
  <ul><li class="text-side-date">Jun 12 - 14</li><li>Boise, ID</li></ul>
</div>
<div class="event-block">
  <a class="event-block-info-title" href="/event/102">Fall Ball</a>
  <ul><li class="text-side-date">Sep 5</li><li>Nampa, ID</li></ul>
</div>
</body></html>
"""

DIRECTORY_PAGE = (
    """
<html><body>
<a href="https://wabaseball.usssa.example.com/">Washington</a>
<a href="https://orbaseball.usssa.example.com/">Oregon</a>
</body></html>
"""
    + PADDING
)

WA_PAGE = (
    """
<html><body>
<div class="event-block">
  <a class="event-block-info-title" href="/e/1">Evergreen Open</a>
  <ul><li class="text-side-date">Jun 6</li><li>Spokane</li></ul>
</div>
</body></html>
"""
    + PADDING
)


def _settings() -> Settings:
    return Settings(network_concurrency=2, crawl_default_status="draft")


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


def test_pasted_html_sweep_imports_events_and_stamps_the_source() -> None:
    repository = InMemoryRepository()

    async def run():
        source = await register_source(
            repository,
            url="https://idbaseball.example.com/calendar",
            source_type="venue_calendar",
            sport="Baseball",
            state="id",
        )
        async with _client(_unreachable) as client:
            first = await sweep_source(
                repository, source, client=client, settings=_settings(), html=CALENDAR_PAGE, reference_year=2026
            )
            second = await sweep_source(
                repository, source, client=client, settings=_settings(), html=CALENDAR_PAGE, reference_year=2026
            )
        return first, second, await repository.get_source(source.id)

    first, second, stored = asyncio.run(run())
    assert first.status == "success"
    assert first.counts["found"] == 2
    assert first.counts["created"] == 2
    assert first.sample == ["Summer Slam", "Fall Ball"]
    assert second.counts["created"] == 0
    assert second.counts["updated"] == 0
    assert second.counts["imported"] == 2
    assert len(repository.tournaments) == 2
    assert all(row.sport == "baseball" and row.status == "draft" for row in repository.tournaments.values())

    assert stored.last_sweep_status == "success"
    summary = json.loads(stored.last_sweep_summary)
    assert summary["counts"]["imported"] == 2
    assert summary["diagnostics"]["provided_html"] is True


def test_page_without_events_is_a_failed_sweep() -> None:
    repository = InMemoryRepository()
    empty_page = "<html><body><p>No events scheduled.</p></body></html>" + PADDING

    async def run():
        source = await register_source(
            repository, url="https://example.com/events", source_type="venue_calendar", sport="softball"
        )
        handler = lambda request: httpx.Response(200, headers={"content-type": "text/html"}, text=empty_page)
        async with _client(handler) as client:
            outcome = await sweep_source(repository, source, client=client, settings=_settings())
        return outcome, await repository.get_source(source.id)

    outcome, stored = asyncio.run(run())
    assert outcome.status == "failed"
    assert outcome.error_code == "html_received_no_events"
    summary = json.loads(stored.last_sweep_summary)
    assert summary["error_code"] == "html_received_no_events"
    assert summary["diagnostics"]["status"] == 200
    assert stored.last_sweep_status == "failed"


def test_state_directory_sweep_is_partial_when_a_state_page_fails() -> None:
    repository = InMemoryRepository()

    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "usssa.example.com":
            return httpx.Response(200, headers={"content-type": "text/html"}, text=DIRECTORY_PAGE)
        if host == "wabaseball.usssa.example.com":
            return httpx.Response(200, headers={"content-type": "text/html"}, text=WA_PAGE)
        return httpx.Response(503, text="down")

    async def run():
        source = await register_source(
            repository, url="https://usssa.example.com/", source_type="state_directory", sport="baseball"
        )
        async with _client(handler) as client:
            outcome = await sweep_source(repository, source, client=client, settings=_settings(), reference_year=2026)
        return outcome, await repository.get_source(source.id)

    outcome, stored = asyncio.run(run())
    assert outcome.status == "partial"
    assert outcome.counts["page_errors"] == 1
    assert outcome.counts["pages"] == 2
    summary = json.loads(stored.last_sweep_summary)
    assert summary["diagnostics"]["states_found"] == 2
    assert summary["diagnostics"]["state_pages_processed"] == 1
    [tournament] = repository.tournaments.values()
    assert tournament.state == "WA"
    assert tournament.name == "Evergreen Open"


def test_fetch_failure_feeds_the_dead_domain_tracker() -> None:
    repository = InMemoryRepository()

    async def never_resolves(domain: str) -> bool:
        return False

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name or service not known", request=request)

    async def run():
        tracker = DeadDomainTracker(
            repository, failure_threshold=2, recheck_after=timedelta(hours=72), resolver=never_resolves
        )
        source = await register_source(
            repository, url="https://gone.example.net/events", source_type="venue_calendar", sport="softball"
        )
        async with _client(handler) as client:
            first = await sweep_source(repository, source, client=client, settings=_settings(), dead_domains=tracker)
            second = await sweep_source(repository, source, client=client, settings=_settings(), dead_domains=tracker)
            third = await sweep_source(repository, source, client=client, settings=_settings(), dead_domains=tracker)
        return first, second, third

    first, second, third = asyncio.run(run())
    assert first.error_code == "fetch_failed"
    assert second.error_code == "fetch_failed"
    assert third.error_code == "dead_domain"
    assert repository.dead_domains["gone.example.net"].failure_count == 2


def test_run_sweeps_counts_outcomes_and_skips_inactive_sources() -> None:
    repository = InMemoryRepository()
    page = CALENDAR_PAGE + PADDING

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "good.example.com":
            return httpx.Response(200, headers={"content-type": "text/html"}, text=page)
        return httpx.Response(500, text="error")

    async def run():
        await register_source(repository, url="https://good.example.com/", source_type="venue_calendar", sport="baseball")
        await register_source(repository, url="https://bad.example.com/", source_type="venue_calendar", sport="baseball")
        await register_source(
            repository,
            url="https://off.example.com/",
            source_type="venue_calendar",
            sport="baseball",
            is_active=False,
        )
        async with _client(handler) as client:
            return await run_sweeps(repository, client=client, settings=_settings())

    summary = asyncio.run(run())
    assert summary == {"processed": 2, "succeeded": 1, "partial": 0, "skipped": 0, "failed": 1}
