import json

import pytest

import tournament_ingest.cli as cli
from tournament_ingest.core.config import get_settings
from tournament_ingest.services.store import InMemoryRepository


@pytest.fixture
def repository(monkeypatch: pytest.MonkeyPatch) -> InMemoryRepository:
    monkeypatch.setenv("TI_OTEL_ENABLED", "false")
    get_settings.cache_clear()
    repo = InMemoryRepository()
    monkeypatch.setattr(cli, "get_repository", lambda: repo)
    yield repo
    get_settings.cache_clear()


def test_register_source_prints_the_stored_row(repository: InMemoryRepository, capsys) -> None:
    code = cli.main(
        ["register-source", "www.example.com/events?utm_campaign=x", "--type", "table_listing", "--sport", "Softball"]
    )
    assert code == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed["canonical_url"] == "https://example.com/events"
    assert printed["sport"] == "softball"
    assert printed["is_active"] is True
    assert len(repository.sources) == 1


def test_run_job_prints_counts(repository: InMemoryRepository, capsys) -> None:
    code = cli.main(["run", "recompute_scores", "--entity-kind", "school"])
    assert code == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed == {"kind": "recompute_scores", "result": {"school": {"deleted": 0, "processed": 0, "upserted": 0}}}


def test_failures_return_a_non_zero_exit_code(repository: InMemoryRepository, capsys) -> None:
    assert cli.main(["link-series", "missing-a", "missing-b"]) == 1
    assert cli.main(["register-source", "https://", "--type", "table_listing", "--sport", "softball"]) == 1
    assert capsys.readouterr().out == ""


def test_unknown_job_is_an_argparse_error(repository: InMemoryRepository) -> None:
    with pytest.raises(SystemExit):
        cli.main(["run", "reindex"])


def test_discover_sources_without_search_credentials_fails(
    repository: InMemoryRepository, monkeypatch: pytest.MonkeyPatch, capsys
) -> None:
    monkeypatch.delenv("TI_SERPAPI_API_KEY", raising=False)
    get_settings.cache_clear()
    code = cli.main(["discover-sources", "oregon softball", "--type", "table_listing", "--sport", "softball"])
    assert code == 1
    assert capsys.readouterr().out == ""
    assert repository.sources == {}


def test_new_commands_parse_their_options() -> None:
    parser = cli.build_parser()
    discover = parser.parse_args(
        ["discover-sources", "a", "b", "--type", "state_directory", "--sport", "soccer", "--max-total", "5"]
    )
    assert (discover.queries, discover.source_type, discover.max_total) == (["a", "b"], "state_directory", 5)
    assert discover.per_query_limit is None

    paste = parser.parse_args(["paste-url", "https://summerslam.example.com/", "--sport", "baseball"])
    assert (paste.url, paste.sport, paste.status) == ("https://summerslam.example.com/", "baseball", None)
