import asyncio

import pytest
from asyncpg import exceptions as pg_exc  # type: ignore[import-untyped]

from tournament_ingest.services.repository import PostgresRepository, RepositoryNotFoundError


class MalformedIdPool:
    """Pool whose every query fails the way Postgres rejects a non-UUID literal."""

    def __init__(self) -> None:
        self.queries = 0

    def _reject(self) -> None:
        self.queries += 1
        raise pg_exc.InvalidTextRepresentationError('invalid input syntax for type uuid: "abc"')

    async def fetchrow(self, *args, **kwargs):
        self._reject()

    async def fetch(self, *args, **kwargs):
        self._reject()

    def acquire(self):
        self._reject()


def _repository(pool: MalformedIdPool) -> PostgresRepository:
    repository = PostgresRepository(database_url="postgresql://unused", min_pool_size=1, max_pool_size=1)

    async def get_pool():
        return pool

    repository._get_pool = get_pool  # type: ignore[method-assign]
    return repository


def test_lookups_by_malformed_id_find_nothing() -> None:
    pool = MalformedIdPool()
    repository = _repository(pool)

    async def run():
        return (
            await repository.get_tournament("abc"),
            await repository.get_source("abc"),
            await repository.list_facts(tournament_id="abc"),
            await repository.list_fact_signatures(tournament_id="abc", kind="contact"),
            await repository.list_url_candidates("abc"),
        )

    assert asyncio.run(run()) == (None, None, [], set(), [])
    assert pool.queries == 5


@pytest.mark.parametrize(
    "call",
    [
        lambda repository: repository.delete_fact_set(kind="contact", fact_id="abc"),
        lambda repository: repository.stamp_fact_set(kind="contact", fact_id="abc", decision="accepted"),
        lambda repository: repository.set_source_active("abc", is_active=False),
        lambda repository: repository.record_sweep("abc", status="failed", summary=None),
        lambda repository: repository.insert_facts(tournament_id="abc", kind="contact", facts=[({}, "sig")]),
        lambda repository: repository.link_series(tournament_id="abc", canonical_id="def"),
        lambda repository: repository.apply_url_candidate(
            tournament_id="abc", candidate_url="https://x.example.com/", auto=False
        ),
    ],
)
def test_writes_by_malformed_id_are_not_found(call) -> None:
    repository = _repository(MalformedIdPool())
    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(call(repository))
