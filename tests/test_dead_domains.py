import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from tournament_ingest.core.errors import DeadDomain
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.store import InMemoryRepository


def _tracker(repository: InMemoryRepository, answers: dict[str, bool | None]) -> DeadDomainTracker:
    async def resolver(domain: str) -> bool | None:
        return answers.get(domain)

    return DeadDomainTracker(repository, failure_threshold=2, recheck_after=timedelta(hours=72), resolver=resolver)


def test_domain_is_dead_only_after_repeated_failures() -> None:
    repository = InMemoryRepository()
    tracker = _tracker(repository, {"gone.example.com": False})

    async def run():
        await tracker.check("gone.example.com")
        after_one = await tracker.is_dead("gone.example.com")
        await tracker.check("gone.example.com")
        after_two = await tracker.is_dead("gone.example.com")
        later = datetime.now(timezone.utc) + timedelta(hours=73)
        due_for_recheck = await tracker.is_dead("gone.example.com", now=later)
        return after_one, after_two, due_for_recheck

    assert asyncio.run(run()) == (False, True, False)
    assert repository.dead_domains["gone.example.com"].last_error == "nxdomain"


def test_inconclusive_lookups_leave_the_record_alone() -> None:
    repository = InMemoryRepository()
    tracker = _tracker(repository, {"flaky.example.com": None})
    assert asyncio.run(tracker.check("flaky.example.com")) is None
    assert repository.dead_domains == {}


def test_is_dead_ignores_empty_domains() -> None:
    tracker = _tracker(InMemoryRepository(), {})
    assert asyncio.run(tracker.is_dead(None)) is False
    assert asyncio.run(tracker.is_dead("")) is False


def test_recheck_due_revives_domains_that_resolve_again() -> None:
    repository = InMemoryRepository()
    tracker = _tracker(
        repository,
        {"back.example.com": True, "still-gone.example.com": False, "flaky.example.com": None},
    )

    async def run():
        for domain in ("back.example.com", "still-gone.example.com", "flaky.example.com", "fresh.example.com"):
            await repository.record_domain_failure(domain, error="nxdomain")
        old = datetime.now(timezone.utc) - timedelta(hours=100)
        for domain in ("back.example.com", "still-gone.example.com", "flaky.example.com"):
            repository.dead_domains[domain] = replace(repository.dead_domains[domain], last_checked_at=old)
        return await tracker.recheck_due()

    result = asyncio.run(run())
    assert result == {"processed": 3, "revived": 1, "still_dead": 1, "inconclusive": 1}
    assert "back.example.com" not in repository.dead_domains
    assert repository.dead_domains["still-gone.example.com"].failure_count == 2
    assert repository.dead_domains["fresh.example.com"].failure_count == 1


def test_ensure_alive_raises_for_dead_domains() -> None:
    repository = InMemoryRepository()
    tracker = _tracker(repository, {"gone.example.com": False})

    async def run():
        await tracker.ensure_alive("gone.example.com")
        await tracker.check("gone.example.com")
        await tracker.check("gone.example.com")
        await tracker.ensure_alive("gone.example.com")

    with pytest.raises(DeadDomain) as excinfo:
        asyncio.run(run())
    assert excinfo.value.domain == "gone.example.com"
