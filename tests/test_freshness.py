import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from tournament_ingest.jobs.freshness import freshness_cutoffs, run_freshness_check
from tournament_ingest.services.records import CandidateEventRecord
from tournament_ingest.services.resolver import upsert_from_source
from tournament_ingest.services.store import InMemoryRepository

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def test_archive_window_is_never_shorter_than_stale_window() -> None:
    stale_before, archive_before = freshness_cutoffs(now=NOW, stale_after_hours=48, archive_after_hours=24)
    assert stale_before == NOW - timedelta(hours=48)
    assert archive_before == stale_before


def test_freshness_moves_unseen_tournaments_to_stale_then_archived() -> None:
    repository = InMemoryRepository()

    async def seed(name: str, *, status: str, seen_days_ago: int) -> str:
        outcome = await upsert_from_source(
            repository,
            CandidateEventRecord(name=name, state="WA", city="Yakima", source_url="https://example.org/"),
            source="manual",
            sport="softball",
            status=status,
        )
        row = repository.tournaments[outcome.tournament_id]
        repository.tournaments[row.id] = replace(row, source_last_seen_at=NOW - timedelta(days=seen_days_ago))
        return row.id

    async def run():
        recent = await seed("Recent Cup", status="published", seen_days_ago=2)
        quiet = await seed("Quiet Cup", status="published", seen_days_ago=40)
        gone = await seed("Gone Cup", status="stale", seen_days_ago=200)
        draft = await seed("Draft Cup", status="draft", seen_days_ago=200)
        result = await run_freshness_check(repository, stale_after_hours=720, archive_after_hours=2880, now=NOW)
        return result, recent, quiet, gone, draft

    result, recent, quiet, gone, draft = asyncio.run(run())
    assert result["stale"] == 1
    assert result["archived"] == 1
    assert result["stale_before"] == (NOW - timedelta(hours=720)).isoformat()
    assert repository.tournaments[recent].status == "published"
    assert repository.tournaments[quiet].status == "stale"
    assert repository.tournaments[gone].status == "archived"
    assert repository.tournaments[draft].status == "draft"
