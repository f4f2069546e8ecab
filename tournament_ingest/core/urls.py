from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from tournament_ingest.core.errors import InvalidUrl

TRACKING_KEYS = frozenset({"gclid", "fbclid", "mc_cid", "mc_eid"})
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_HOST_RE = re.compile(r"^[a-z0-9](?:[a-z0-9.-]*[a-z0-9])?$")


@dataclass(frozen=True, slots=True)
class CanonicalUrl:
    canonical: str
    host: str


def normalize_source_url(raw_url: str, *, tracking_keys: frozenset[str] | set[str] | None = None) -> CanonicalUrl:
    """Canonicalize a URL into a stable comparison key.

    Plain http is upgraded to https so that scheme differences do not split
    one source into two keys.
    """
    if not isinstance(raw_url, str) or not raw_url.strip():
        raise InvalidUrl("url is empty")

    trimmed = raw_url.strip()
    with_scheme = trimmed if _SCHEME_RE.match(trimmed) else f"https://{trimmed}"
    try:
        parsed = urlparse(with_scheme)
        port = parsed.port
    except ValueError as exc:
        raise InvalidUrl(f"url does not parse: {raw_url!r}") from exc

    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if not host or not _HOST_RE.match(host) or ".." in host:
        raise InvalidUrl(f"url has no valid host: {raw_url!r}")

    netloc = host
    if port is not None and port not in (80, 443):
        netloc = f"{host}:{port}"

    keys = TRACKING_KEYS if tracking_keys is None else frozenset(key.lower() for key in tracking_keys)
    kept_pairs = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not _is_tracking_param(key, keys)
    ]
    query = urlencode(kept_pairs, doseq=True)
    path = parsed.path or "/"
    return CanonicalUrl(canonical=urlunparse(("https", netloc, path, "", query, "")), host=host)


def try_normalize_source_url(raw_url: str | None) -> CanonicalUrl | None:
    if not raw_url:
        return None
    try:
        return normalize_source_url(raw_url)
    except InvalidUrl:
        return None


def domain_of(raw_url: str | None) -> str | None:
    normalized = try_normalize_source_url(raw_url)
    return normalized.host if normalized else None


def _is_tracking_param(key: str, tracking_keys: frozenset[str]) -> bool:
    lowered = key.lower()
    return lowered.startswith("utm_") or lowered in tracking_keys
