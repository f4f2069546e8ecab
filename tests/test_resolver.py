import asyncio
from dataclasses import replace
from datetime import date

import pytest

from tournament_ingest.core.errors import InvalidRecord
from tournament_ingest.services.records import CandidateEventRecord
from tournament_ingest.services.repository import RepositoryConflictError
from tournament_ingest.services.resolver import (
    SLUG_MAX_LENGTH,
    build_slug,
    link_series,
    slugify,
    upsert_from_source,
)
from tournament_ingest.services.store import InMemoryRepository


def _record(**overrides) -> CandidateEventRecord:
    base = CandidateEventRecord(
        name="Winter Classic",
        state="WA",
        city="Seattle",
        source_url="https://asa.example.org/sanctioned",
        approximate_dates="12-14",
        start_date=date(2025, 12, 12),
        end_date=date(2025, 12, 14),
    )
    return replace(base, **overrides)


def test_slug_is_deterministic_and_capped() -> None:
    assert slugify("  Rock & Roll  Cup!! ") == "rock-and-roll-cup"
    assert build_slug("Winter Classic", "Seattle", "WA") == "winter-classic-seattle-wa"
    assert build_slug("Winter Classic", None, "WA") == "winter-classic-wa"

    long_slug = build_slug("x " * 100, "City", "WA")
    assert len(long_slug) <= SLUG_MAX_LENGTH
    assert not long_slug.endswith("-")
    assert long_slug == build_slug("x " * 100, "City", "WA")


def test_upsert_is_idempotent_for_identical_input() -> None:
    repository = InMemoryRepository()

    async def run():
        first = await upsert_from_source(repository, _record(), source="source-1", sport="softball")
        stored = await repository.get_tournament(first.tournament_id)
        second = await upsert_from_source(repository, _record(), source="source-1", sport="softball")
        again = await repository.get_tournament(first.tournament_id)
        assert (await repository.get_tournament_by_slug("winter-classic-seattle-wa")).id == first.tournament_id
        return first, second, stored, again

    first, second, stored, again = asyncio.run(run())
    assert first.created is True
    assert second.created is False
    assert second.changed is False
    assert second.tournament_id == first.tournament_id
    assert len(repository.tournaments) == 1
    assert len(repository.listings) == 1
    assert again.updated_at == stored.updated_at
    assert again.source_last_seen_at >= stored.source_last_seen_at


def test_resweep_updates_mutable_fields_but_never_status_or_official_url() -> None:
    repository = InMemoryRepository()

    async def run():
        outcome = await upsert_from_source(repository, _record(), source="source-1", sport="softball")
        tournament = repository.tournaments[outcome.tournament_id]
        repository.tournaments[outcome.tournament_id] = replace(
            tournament, status="published", official_website_url="https://winterclassic.example.com/"
        )
        changed = await upsert_from_source(
            repository,
            _record(venue="Starfire Sports", start_date=None, end_date=None),
            source="source-1",
            sport="softball",
            status="draft",
        )
        return changed, await repository.get_tournament(outcome.tournament_id)

    changed, stored = asyncio.run(run())
    assert changed.changed is True
    assert stored.venue == "Starfire Sports"
    assert stored.start_date == date(2025, 12, 12)
    assert stored.status == "published"
    assert stored.official_website_url == "https://winterclassic.example.com/"


def test_stale_tournament_is_revived_when_seen_again() -> None:
    repository = InMemoryRepository()

    async def run():
        outcome = await upsert_from_source(repository, _record(), source="source-1", sport="softball")
        tournament = repository.tournaments[outcome.tournament_id]
        repository.tournaments[outcome.tournament_id] = replace(tournament, status="stale")
        await upsert_from_source(repository, _record(), source="source-1", sport="softball")
        return await repository.get_tournament(outcome.tournament_id)

    assert asyncio.run(run()).status == "published"


@pytest.mark.parametrize(
    ("overrides", "missing"),
    [
        ({"name": "  "}, ["name"]),
        ({"state": None, "city": None}, ["state_or_city"]),
        ({"source_url": ""}, ["source_url"]),
    ],
)
def test_invalid_record_is_rejected_before_any_write(overrides, missing) -> None:
    repository = InMemoryRepository()
    with pytest.raises(InvalidRecord) as excinfo:
        asyncio.run(upsert_from_source(repository, _record(**overrides), source="source-1", sport="softball"))
    assert excinfo.value.missing == missing
    assert repository.tournaments == {}


def test_link_series_rules() -> None:
    repository = InMemoryRepository()

    async def run():
        parent = await upsert_from_source(repository, _record(), source="s", sport="softball")
        child = await upsert_from_source(repository, _record(city="Tacoma"), source="s", sport="softball")
        other = await upsert_from_source(repository, _record(city="Everett"), source="s", sport="softball")

        linked = await link_series(repository, tournament_id=child.tournament_id, canonical_id=parent.tournament_id)

        with pytest.raises(InvalidRecord):
            await link_series(repository, tournament_id=parent.tournament_id, canonical_id=parent.tournament_id)
        with pytest.raises(RepositoryConflictError):
            # child is no longer canonical
            await link_series(repository, tournament_id=other.tournament_id, canonical_id=child.tournament_id)
        with pytest.raises(RepositoryConflictError):
            # parent still has a child pointing at it
            await link_series(repository, tournament_id=parent.tournament_id, canonical_id=other.tournament_id)
        return linked, parent

    linked, parent = asyncio.run(run())
    assert linked.is_canonical is False
    assert linked.canonical_tournament_id == parent.tournament_id


def test_series_link_survives_resweeps_of_both_editions() -> None:
    repository = InMemoryRepository()

    async def run():
        parent = await upsert_from_source(repository, _record(), source="s", sport="softball")
        child = await upsert_from_source(repository, _record(city="Tacoma"), source="s", sport="softball")
        await link_series(repository, tournament_id=child.tournament_id, canonical_id=parent.tournament_id)

        await upsert_from_source(repository, _record(venue="Starfire"), source="s", sport="softball")
        resweep = await upsert_from_source(
            repository, _record(city="Tacoma", venue="Heidelberg Park"), source="s", sport="softball"
        )
        return (
            parent.tournament_id,
            resweep,
            await repository.get_tournament(parent.tournament_id),
            await repository.get_tournament(child.tournament_id),
        )

    parent_id, resweep, parent, child = asyncio.run(run())
    assert resweep.changed is True
    assert child.venue == "Heidelberg Park"
    assert child.is_canonical is False
    assert child.canonical_tournament_id == parent_id
    assert parent.venue == "Starfire"
    assert parent.is_canonical is True
    assert parent.canonical_tournament_id is None


def test_concurrent_upserts_of_one_slug_create_a_single_row() -> None:
    repository = InMemoryRepository()

    async def run():
        return await asyncio.gather(
            upsert_from_source(repository, _record(), source="a", sport="softball"),
            upsert_from_source(repository, _record(venue="Starfire"), source="b", sport="softball"),
        )

    first, second = asyncio.run(run())
    assert first.tournament_id == second.tournament_id
    assert sorted([first.created, second.created]) == [False, True]
    assert len(repository.tournaments) == 1
    assert len(repository.listings) == 2
