import pytest

from tournament_ingest.core.errors import InvalidUrl
from tournament_ingest.core.urls import domain_of, normalize_source_url, try_normalize_source_url


def test_normalize_source_url_strips_tracking_and_www() -> None:
    normalized = normalize_source_url("http://WWW.Example.com/events?utm_source=x&id=4&gclid=abc#top")
    assert normalized.canonical == "https://example.com/events?id=4"
    assert normalized.host == "example.com"


def test_normalize_source_url_tracking_only_query_matches_bare_host() -> None:
    tracked = normalize_source_url("http://example.com?utm_source=x")
    bare = normalize_source_url("example.com")
    assert tracked == bare
    assert bare.canonical == "https://example.com/"


def test_normalize_source_url_keeps_param_order_and_port() -> None:
    normalized = normalize_source_url("https://example.com:8443/list?b=2&a=1&fbclid=z&a=3")
    assert normalized.canonical == "https://example.com:8443/list?b=2&a=1&a=3"


def test_normalize_source_url_drops_default_port() -> None:
    assert normalize_source_url("https://example.com:443/a").canonical == "https://example.com/a"


def test_normalize_source_url_is_idempotent() -> None:
    raw = "www.Example.org/Tournaments/?mc_cid=1&Page=2&utm_medium=email"
    first = normalize_source_url(raw)
    assert normalize_source_url(first.canonical) == first


def test_normalize_source_url_accepts_custom_tracking_keys() -> None:
    normalized = normalize_source_url("https://example.com/?ref=feed&x=1", tracking_keys={"ref"})
    assert normalized.canonical == "https://example.com/?x=1"


@pytest.mark.parametrize("raw", ["", "   ", "https://", "http://exa mple.com/", "https://bad..host/"])
def test_normalize_source_url_rejects_invalid_input(raw: str) -> None:
    with pytest.raises(InvalidUrl):
        normalize_source_url(raw)


def test_try_normalize_and_domain_helpers_return_none_for_garbage() -> None:
    assert try_normalize_source_url("https://") is None
    assert domain_of("not a url at all") is None
    assert domain_of("https://www.club.example.com/x") == "club.example.com"
