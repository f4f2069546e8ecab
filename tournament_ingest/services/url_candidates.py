from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from tournament_ingest.core.errors import ExternalProviderUnavailable
from tournament_ingest.core.urls import try_normalize_source_url
from tournament_ingest.jobs.fetch import is_html_content_type
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.extractors.base import US_STATE_NAMES
from tournament_ingest.services.records import UrlCandidate
from tournament_ingest.services.search import SearchProvider, SearchResult

logger = logging.getLogger(__name__)

MAX_QUERIES = 4
MAX_RESULTS_PER_QUERY = 5
AUTO_APPLY_THRESHOLD = 0.85
VALIDATION_USER_AGENT = "tournament-ingest-url-discovery/1.0"

STOP_WORDS = frozenset(
    {
        "the",
        "and",
        "for",
        "with",
        "from",
        "by",
        "of",
        "tournament",
        "cup",
        "classic",
        "series",
        "open",
        "invitation",
        "invite",
        "showcase",
    }
)
KEYWORDS = ("tournament", "registration", "schedule")
WEIGHTS = {
    "name": 0.45,
    "host": 0.20,
    "state": 0.15,
    "city": 0.10,
    "sport": 0.05,
    "keyword": 0.05,
}
_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")
_STATE_CODE_NAMES = {code: name for name, code in US_STATE_NAMES.items()}


@dataclass(slots=True)
class TournamentUrlContext:
    tournament_id: str
    name: str
    state: str | None = None
    city: str | None = None
    sport: str | None = None
    host_org: str | None = None


@dataclass(slots=True)
class CandidateSearchResult:
    candidates: list[UrlCandidate] = field(default_factory=list)
    auto_apply_threshold: float = AUTO_APPLY_THRESHOLD
    queries: list[str] = field(default_factory=list)
    failed_queries: int = 0


def tokenize(value: str | None) -> list[str]:
    if not value:
        return []
    return [token for token in _TOKEN_SPLIT_RE.split(value.lower()) if len(token) >= 3 and token not in STOP_WORDS]


def build_queries(context: TournamentUrlContext) -> list[str]:
    name = (context.name or "").strip()
    state = (context.state or "").strip()
    city = (context.city or "").strip()
    sport = (context.sport or "").strip()
    host = (context.host_org or "").strip()

    raw: list[str] = []
    if name:
        raw.append(f'"{name}" {city} {state} {sport} tournament')
        raw.append(f'"{name}" {state} {sport}')
    if host:
        raw.append(f'"{host}" {state} {sport} tournament')
    if name and city:
        raw.append(f'"{name}" {city} {state} registration')

    queries: list[str] = []
    for query in raw:
        compact = " ".join(query.split())
        if compact and compact not in queries:
            queries.append(compact)
    return queries[:MAX_QUERIES]


def score_result(context: TournamentUrlContext, result: SearchResult) -> tuple[float, dict[str, Any]]:
    """Weighted token overlap between the tournament context and one search hit."""
    text = " ".join(part for part in (result.title, result.snippet, result.url) if part).lower()
    words = set(_TOKEN_SPLIT_RE.split(text))

    def overlap(tokens: list[str]) -> float:
        if not tokens:
            return 0.0
        return sum(1 for token in tokens if token in text) / len(tokens)

    name_hits = overlap(tokenize(context.name))
    host_hits = overlap(tokenize(context.host_org))
    state_hit = 1 if _state_mentioned(context.state, text, words) else 0
    city_hit = 1 if context.city and context.city.strip().lower() in text else 0
    sport_hit = 1 if context.sport and context.sport.strip().lower() in text else 0
    keyword_hit = 1 if any(keyword in text for keyword in KEYWORDS) else 0

    score = (
        WEIGHTS["name"] * name_hits
        + WEIGHTS["host"] * host_hits
        + WEIGHTS["state"] * state_hit
        + WEIGHTS["city"] * city_hit
        + WEIGHTS["sport"] * sport_hit
        + WEIGHTS["keyword"] * keyword_hit
    )
    matched_fields = {
        "name_hits": round(name_hits, 4),
        "host_hits": round(host_hits, 4),
        "state_hit": state_hit,
        "city_hit": city_hit,
        "sport_hit": sport_hit,
        "keyword_hit": keyword_hit,
    }
    return _clamp(score), matched_fields


def _state_mentioned(state: str | None, text: str, words: set[str]) -> bool:
    if not state or not state.strip():
        return False
    code = state.strip().lower()
    if code in words:
        return True
    full_name = _STATE_CODE_NAMES.get(code.upper())
    return bool(full_name and full_name in text)


def _clamp(score: float) -> float:
    return round(min(1.0, max(0.0, score)), 4)


async def validate_candidate(
    candidate: UrlCandidate,
    *,
    client: httpx.AsyncClient,
    timeout_seconds: float = 8.0,
    dead_domains: DeadDomainTracker | None = None,
) -> UrlCandidate:
    """Fetch the candidate once and adjust its score by what came back."""
    outcome = "fetch_failed"
    if dead_domains is not None and await dead_domains.is_dead(candidate.candidate_domain):
        candidate.matched_fields["dead_domain"] = True
    else:
        try:
            response = await asyncio.wait_for(
                client.get(
                    candidate.candidate_url,
                    headers={"User-Agent": VALIDATION_USER_AGENT},
                    follow_redirects=True,
                ),
                timeout=timeout_seconds,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            logger.info("candidate validation failed url=%s error=%s", candidate.candidate_url, type(exc).__name__)
        else:
            candidate.http_status = int(response.status_code)
            candidate.content_type = response.headers.get("content-type")
            candidate.final_url = str(response.url)
            if response.is_success:
                outcome = "html_ok" if is_html_content_type(candidate.content_type) else "non_html"

    adjustment = {"html_ok": 0.10, "non_html": -0.05, "fetch_failed": -0.10}[outcome]
    candidate.score = _clamp(candidate.score + adjustment)
    candidate.matched_fields["validation"] = outcome
    return candidate


async def find_candidates(
    context: TournamentUrlContext,
    provider: SearchProvider,
    *,
    client: httpx.AsyncClient,
    validation_timeout_seconds: float = 8.0,
    concurrency: int = 5,
    dead_domains: DeadDomainTracker | None = None,
) -> CandidateSearchResult:
    """Search, score and validate candidate official URLs for one tournament.

    A failing query is logged and skipped. ExternalProviderUnavailable is
    not caught: a provider without credentials fails every query alike.
    """
    queries = build_queries(context)
    result = CandidateSearchResult(queries=queries)
    seen: set[str] = set()

    for query in queries:
        try:
            hits = await provider.search(query, MAX_RESULTS_PER_QUERY)
        except ExternalProviderUnavailable:
            raise
        except Exception:
            result.failed_queries += 1
            logger.warning("search query failed tournament_id=%s query=%s", context.tournament_id, query, exc_info=True)
            continue

        for hit in hits[:MAX_RESULTS_PER_QUERY]:
            normalized = try_normalize_source_url(hit.url)
            if normalized is None or normalized.canonical in seen:
                continue
            seen.add(normalized.canonical)
            score, matched_fields = score_result(context, hit)
            result.candidates.append(
                UrlCandidate(
                    tournament_id=context.tournament_id,
                    candidate_url=normalized.canonical,
                    score=score,
                    candidate_domain=normalized.host,
                    title=hit.title,
                    snippet=hit.snippet,
                    matched_fields=matched_fields,
                )
            )

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def validate(candidate: UrlCandidate) -> UrlCandidate:
        async with semaphore:
            return await validate_candidate(
                candidate,
                client=client,
                timeout_seconds=validation_timeout_seconds,
                dead_domains=dead_domains,
            )

    await asyncio.gather(*(validate(candidate) for candidate in result.candidates))
    result.candidates.sort(key=lambda candidate: candidate.score, reverse=True)
    return result


def pick_auto_apply(result: CandidateSearchResult) -> UrlCandidate | None:
    if not result.candidates:
        return None
    best = result.candidates[0]
    return best if best.score >= result.auto_apply_threshold else None
