import asyncio
from datetime import timedelta

import httpx
import pytest

from tournament_ingest.core.config import Settings
from tournament_ingest.core.errors import ExternalProviderUnavailable
from tournament_ingest.jobs.url_discovery import discover_for_tournament, run_url_discovery
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.records import CandidateEventRecord, UrlCandidate
from tournament_ingest.services.resolver import upsert_from_source
from tournament_ingest.services.search import SearchResult
from tournament_ingest.services.store import InMemoryRepository
from tournament_ingest.services.url_candidates import (
    TournamentUrlContext,
    build_queries,
    find_candidates,
    pick_auto_apply,
    score_result,
    tokenize,
    validate_candidate,
)

CONTEXT = TournamentUrlContext(
    tournament_id="t1",
    name="Rose City Classic",
    state="OR",
    city="Portland",
    sport="softball",
)
OFFICIAL = SearchResult(
    url="https://rosecityclassic.example.com/?utm_source=google",
    title="Rose City Classic Softball Tournament",
    snippet="Portland, Oregon fastpitch event",
    domain="rosecityclassic.example.com",
)
UNRELATED = SearchResult(url="https://news.example.com/", title="Weather", snippet=None, domain="news.example.com")


class FakeProvider:
    name = "fake"

    def __init__(self, results, failing=()) -> None:
        self.results = results
        self.failing = set(failing)
        self.queries: list[str] = []

    async def search(self, query: str, limit: int) -> list[SearchResult]:
        self.queries.append(query)
        if len(self.queries) in self.failing:
            raise RuntimeError("search backend hiccup")
        return list(self.results)


def _html(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/html"}, text="<html>ok</html>")


def test_tokenize_drops_short_and_stop_words() -> None:
    assert tokenize("The Rose City Classic of PDX 14U") == ["rose", "city", "pdx", "14u"]


def test_build_queries_are_deduplicated_and_capped() -> None:
    queries = build_queries(TournamentUrlContext(tournament_id="t1", name="Rose City Classic", state="OR"))
    assert queries == ['"Rose City Classic" OR tournament', '"Rose City Classic" OR']

    with_host = build_queries(
        TournamentUrlContext(
            tournament_id="t1", name="Rose City", state="OR", city="Portland", sport="softball", host_org="PDX FC"
        )
    )
    assert len(with_host) == 4
    assert with_host[2] == '"PDX FC" OR softball tournament'


def test_state_code_must_match_as_a_word_or_full_name() -> None:
    context = TournamentUrlContext(tournament_id="t1", name="Spring Cup", state="OR")
    hidden = SearchResult(url="https://spring.example.com/", title="Spring Cup for everyone", snippet=None, domain=None)
    named = SearchResult(url="https://spring.example.com/", title="Spring Cup, Oregon", snippet=None, domain=None)
    assert score_result(context, hidden)[1]["state_hit"] == 0
    assert score_result(context, named)[1]["state_hit"] == 1


def test_find_candidates_tolerates_failing_queries() -> None:
    provider = FakeProvider([OFFICIAL, UNRELATED, OFFICIAL], failing={1, 2})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(_html)) as client:
            return await find_candidates(CONTEXT, provider, client=client)

    result = asyncio.run(run())
    assert len(result.queries) == 3
    assert result.failed_queries == 2
    assert [candidate.candidate_url for candidate in result.candidates] == [
        "https://rosecityclassic.example.com/",
        "https://news.example.com/",
    ]
    best = result.candidates[0]
    assert best.score == 0.9
    assert best.matched_fields["validation"] == "html_ok"
    assert pick_auto_apply(result) is best


def test_validation_adjusts_scores_by_what_came_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "pdf.example.com":
            return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF")
        raise httpx.ConnectError("refused", request=request)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            pdf = await validate_candidate(
                UrlCandidate(tournament_id="t1", candidate_url="https://pdf.example.com/", score=0.5), client=client
            )
            down = await validate_candidate(
                UrlCandidate(tournament_id="t1", candidate_url="https://down.example.com/", score=0.05), client=client
            )
        return pdf, down

    pdf, down = asyncio.run(run())
    assert pdf.score == 0.45
    assert pdf.matched_fields["validation"] == "non_html"
    assert pdf.http_status == 200
    assert down.score == 0.0
    assert down.matched_fields["validation"] == "fetch_failed"


def test_dead_domains_are_not_fetched() -> None:
    repository = InMemoryRepository()

    async def resolver(domain: str) -> bool:
        return False

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("dead domain was fetched")

    async def run():
        tracker = DeadDomainTracker(repository, failure_threshold=1, recheck_after=timedelta(hours=1), resolver=resolver)
        await tracker.check("gone.example.com")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await validate_candidate(
                UrlCandidate(
                    tournament_id="t1",
                    candidate_url="https://gone.example.com/",
                    candidate_domain="gone.example.com",
                    score=0.6,
                ),
                client=client,
                dead_domains=tracker,
            )

    candidate = asyncio.run(run())
    assert candidate.matched_fields["dead_domain"] is True
    assert candidate.score == 0.5


def test_auto_apply_happens_once_and_never_overwrites() -> None:
    repository = InMemoryRepository()
    settings = Settings(network_concurrency=2)

    async def run():
        outcome = await upsert_from_source(
            repository,
            CandidateEventRecord(name="Rose City Classic", state="OR", city="Portland", source_url="https://asa.example.org/"),
            source="manual",
            sport="softball",
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(_html)) as client:
            tournament = await repository.get_tournament(outcome.tournament_id)
            _, first = await discover_for_tournament(
                repository, tournament, FakeProvider([OFFICIAL]), client=client, settings=settings
            )
            tournament = await repository.get_tournament(outcome.tournament_id)
            _, second = await discover_for_tournament(
                repository, tournament, FakeProvider([OFFICIAL]), client=client, settings=settings
            )
        return outcome.tournament_id, first, second

    tournament_id, first, second = asyncio.run(run())
    assert first is True
    assert second is False
    assert repository.tournaments[tournament_id].official_website_url == "https://rosecityclassic.example.com/"
    [stored] = list(repository.url_candidates.values())
    assert stored.auto_applied is True
    assert stored.applied_at is not None


def test_run_url_discovery_only_visits_tournaments_without_an_official_url() -> None:
    repository = InMemoryRepository()
    settings = Settings(network_concurrency=2, discovery_batch_size=10)

    async def run():
        for name in ("Rose City Classic", "Lonely Cup"):
            await upsert_from_source(
                repository,
                CandidateEventRecord(name=name, state="OR", city="Portland", source_url="https://asa.example.org/"),
                source="manual",
                sport="softball",
            )
        async with httpx.AsyncClient(transport=httpx.MockTransport(_html)) as client:
            first = await run_url_discovery(repository, FakeProvider([OFFICIAL]), client=client, settings=settings)
            second = await run_url_discovery(repository, FakeProvider([]), client=client, settings=settings)
        return first, second

    first, second = asyncio.run(run())
    assert first == {"processed": 2, "with_candidates": 2, "auto_applied": 1, "failed": 0}
    assert second == {"processed": 1, "with_candidates": 0, "auto_applied": 0, "failed": 0}


def test_xhtml_counts_as_html_during_validation() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "application/xhtml+xml; charset=utf-8"}, text="<html/>")

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await validate_candidate(
                UrlCandidate(tournament_id="t1", candidate_url="https://xhtml.example.com/", score=0.5), client=client
            )

    candidate = asyncio.run(run())
    assert candidate.matched_fields["validation"] == "html_ok"
    assert candidate.score == 0.6


def test_batch_discovery_searches_for_the_stored_host() -> None:
    repository = InMemoryRepository()
    settings = Settings(network_concurrency=1)
    provider = FakeProvider([])

    async def run():
        outcome = await upsert_from_source(
            repository,
            CandidateEventRecord(
                name="Rose City Classic",
                state="OR",
                city="Portland",
                host_org="PDX Fastpitch Club",
                source_url="https://asa.example.org/",
            ),
            source="manual",
            sport="softball",
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(_html)) as client:
            await run_url_discovery(repository, provider, client=client, settings=settings)
        return outcome.tournament_id

    tournament_id = asyncio.run(run())
    assert repository.tournaments[tournament_id].host_org == "PDX Fastpitch Club"
    assert '"PDX Fastpitch Club" OR softball tournament' in provider.queries


class RevokedKeyProvider:
    name = "revoked"

    def __init__(self) -> None:
        self.calls = 0

    async def search(self, query: str, limit: int) -> list[SearchResult]:
        self.calls += 1
        call = self.calls
        await asyncio.sleep(0)
        if call == 1:
            raise ExternalProviderUnavailable("search key revoked")
        await asyncio.sleep(0.01)
        return [OFFICIAL]


def test_unavailable_provider_stops_every_tournament_in_the_batch() -> None:
    repository = InMemoryRepository()
    settings = Settings(network_concurrency=5, discovery_batch_size=10)
    provider = RevokedKeyProvider()

    async def run():
        for index in range(5):
            await upsert_from_source(
                repository,
                CandidateEventRecord(
                    name=f"Rose City Classic {index}", state="OR", city="Portland", source_url="https://asa.example.org/"
                ),
                source="manual",
                sport="softball",
            )
        async with httpx.AsyncClient(transport=httpx.MockTransport(_html)) as client:
            with pytest.raises(ExternalProviderUnavailable):
                await run_url_discovery(repository, provider, client=client, settings=settings)
            calls_at_abort = provider.calls
            await asyncio.sleep(0.2)
        return calls_at_abort

    calls_at_abort = asyncio.run(run())
    assert provider.calls == calls_at_abort
    assert repository.url_candidates == {}
    assert all(row.official_website_url is None for row in repository.tournaments.values())
