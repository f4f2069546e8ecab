import asyncio
from datetime import timedelta

import httpx
import pytest

from tournament_ingest.core.config import Settings
from tournament_ingest.core.errors import ExternalProviderUnavailable
from tournament_ingest.jobs.runner import UnknownJobKind, _as_limit, execute_job
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.records import CandidateEventRecord
from tournament_ingest.services.resolver import upsert_from_source
from tournament_ingest.services.store import InMemoryRepository


def _run_job(kind: str, repository: InMemoryRepository, **kwargs):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404))) as client:
            return await execute_job(kind, repository, Settings(), client=client, **kwargs)

    return asyncio.run(run())


def test_unknown_job_kind_is_rejected() -> None:
    with pytest.raises(UnknownJobKind):
        _run_job("reindex", InMemoryRepository())


def test_recompute_scores_covers_every_kind_by_default() -> None:
    repository = InMemoryRepository()
    repository.add_review("school", {"school_id": "s1", "status": "approved", "overall_score": 5})
    outcome = _run_job("recompute_scores", repository)
    assert outcome["kind"] == "recompute_scores"
    assert outcome["result"] == {
        "tournament": {"processed": 0, "upserted": 0, "deleted": 0},
        "school": {"processed": 1, "upserted": 1, "deleted": 0},
    }


def test_sweep_job_with_no_sources_is_a_no_op() -> None:
    outcome = _run_job("sweep_sources", InMemoryRepository(), options={"limit": "10"})
    assert outcome["result"] == {"processed": 0, "succeeded": 0, "partial": 0, "skipped": 0, "failed": 0}


def test_enrich_facts_counts_unreachable_sites_as_failed() -> None:
    repository = InMemoryRepository()

    async def seed():
        outcome = await upsert_from_source(
            repository,
            CandidateEventRecord(name="Site Cup", state="OR", source_url="https://example.org/"),
            source="manual",
            sport="softball",
        )
        await repository.apply_url_candidate(
            tournament_id=outcome.tournament_id, candidate_url="https://sitecup.example.com/", auto=False
        )

    asyncio.run(seed())
    outcome = _run_job("enrich_facts", repository, options={"limit": 5})
    assert outcome["kind"] == "enrich_facts"
    assert outcome["result"] == {
        "processed": 1,
        "succeeded": 0,
        "skipped": 0,
        "failed": 1,
        "pages": 0,
        "facts_inserted": 0,
    }
    assert repository.facts == {}


def test_discover_urls_without_search_credentials_fails_loudly() -> None:
    repository = InMemoryRepository()

    async def seed():
        await upsert_from_source(
            repository,
            CandidateEventRecord(name="Lonely Cup", state="OR", source_url="https://example.org/"),
            source="manual",
            sport="softball",
        )

    asyncio.run(seed())
    with pytest.raises(ExternalProviderUnavailable):
        _run_job("discover_urls", repository)


def test_recheck_dead_domains_uses_the_given_tracker() -> None:
    repository = InMemoryRepository()

    async def resolver(domain: str) -> bool:
        return True

    tracker = DeadDomainTracker(repository, recheck_after=timedelta(0), resolver=resolver)

    async def seed():
        await repository.record_domain_failure("back.example.com", error="nxdomain")

    asyncio.run(seed())
    outcome = _run_job("recheck_dead_domains", repository, dead_domains=tracker)
    assert outcome["result"]["revived"] == 1
    assert repository.dead_domains == {}


def test_as_limit_parses_positive_integers_only() -> None:
    assert _as_limit("25") == 25
    assert _as_limit(0) is None
    assert _as_limit("many") is None
    assert _as_limit(None) is None
