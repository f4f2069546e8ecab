from dataclasses import asdict

import httpx
from fastapi import APIRouter, Body, Depends, HTTPException, status

from tournament_ingest.api.deps import get_dead_domain_tracker, get_http_client, get_search_provider
from tournament_ingest.core.config import Settings, get_settings
from tournament_ingest.core.errors import ExternalProviderUnavailable, InvalidRecord, InvalidUrl, SourceFetchFailed
from tournament_ingest.core.security import get_admin_principal
from tournament_ingest.core.urls import normalize_source_url
from tournament_ingest.jobs.enrichment import enrich_tournament
from tournament_ingest.jobs.paste_url import create_tournament_from_url
from tournament_ingest.jobs.url_discovery import discover_for_tournament
from tournament_ingest.schemas.tournaments import (
    EnrichmentOut,
    FromUrlOut,
    FromUrlRequest,
    SeriesLinkRequest,
    TournamentIngestRequest,
    TournamentOut,
    UpsertOut,
    UrlApplyRequest,
    UrlCandidateOut,
    UrlSearchOut,
    UrlSearchRequest,
)
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.records import CandidateEventRecord
from tournament_ingest.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from tournament_ingest.services.resolver import link_series, upsert_from_source
from tournament_ingest.services.search import SearchProvider

router = APIRouter()


@router.post("/ingest", response_model=UpsertOut)
async def ingest_tournament(
    payload: TournamentIngestRequest,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> UpsertOut:
    try:
        principal.require_scopes({"tournaments:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    record = CandidateEventRecord(
        name=payload.name,
        state=payload.state,
        city=payload.city,
        source_url=payload.source_url,
        approximate_dates=payload.approximate_dates,
        start_date=payload.start_date,
        end_date=payload.end_date,
        venue=payload.venue,
        host_org=payload.host_org,
        level=payload.level,
        raw_fields=dict(payload.raw_fields),
    )
    try:
        outcome = await upsert_from_source(
            repository,
            record,
            source=payload.source,
            sport=payload.sport.strip().lower(),
            status=payload.status or settings.crawl_default_status,
            source_event_id=payload.source_event_id,
            confidence=payload.confidence,
        )
    except InvalidRecord as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return UpsertOut(tournament_id=outcome.tournament_id, created=outcome.created, changed=outcome.changed)


@router.post("/from-url", response_model=FromUrlOut)
async def create_from_url(
    payload: FromUrlRequest,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> FromUrlOut:
    try:
        principal.require_scopes({"tournaments:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await create_tournament_from_url(
            repository,
            payload.url,
            sport=payload.sport,
            client=client,
            settings=settings,
            status=payload.status,
            html=payload.html,
        )
    except (InvalidUrl, InvalidRecord) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except SourceFetchFailed as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"{exc.code}: {exc}") from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    metadata = asdict(result.metadata)
    return FromUrlOut(
        tournament_id=result.outcome.tournament_id,
        created=result.outcome.created,
        changed=result.outcome.changed,
        official_url_applied=result.official_url_applied,
        **metadata,
    )


@router.get("/{tournament_id}", response_model=TournamentOut)
async def get_tournament(
    tournament_id: str,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> TournamentOut:
    try:
        principal.require_scopes({"tournaments:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        record = await repository.get_tournament(tournament_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="tournament not found")
    return TournamentOut(**asdict(record))


@router.post("/{tournament_id}/series-link", response_model=TournamentOut)
async def link_tournament_series(
    tournament_id: str,
    payload: SeriesLinkRequest,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> TournamentOut:
    try:
        principal.require_scopes({"tournaments:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        record = await link_series(repository, tournament_id=tournament_id, canonical_id=payload.canonical_id)
    except (InvalidRecord, RepositoryValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return TournamentOut(**asdict(record))


@router.get("/{tournament_id}/url-candidates", response_model=list[UrlCandidateOut])
async def list_url_candidates(
    tournament_id: str,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> list[UrlCandidateOut]:
    try:
        principal.require_scopes({"tournaments:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_url_candidates(tournament_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [UrlCandidateOut(**asdict(row)) for row in rows]


@router.post("/{tournament_id}/url-candidates/search", response_model=UrlSearchOut)
async def search_url_candidates(
    tournament_id: str,
    payload: UrlSearchRequest | None = Body(default=None),
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
    provider: SearchProvider = Depends(get_search_provider),
    dead_domains: DeadDomainTracker = Depends(get_dead_domain_tracker),
) -> UrlSearchOut:
    try:
        principal.require_scopes({"tournaments:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    options = payload or UrlSearchRequest()
    try:
        tournament = await repository.get_tournament(tournament_id)
        if tournament is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="tournament not found")
        result, applied = await discover_for_tournament(
            repository,
            tournament,
            provider,
            client=client,
            settings=settings,
            dead_domains=dead_domains,
            auto_apply=options.auto_apply,
            host_org=options.host_org,
        )
    except ExternalProviderUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return UrlSearchOut(
        candidates=[UrlCandidateOut(**asdict(candidate)) for candidate in result.candidates],
        auto_apply_threshold=result.auto_apply_threshold,
        applied=applied,
    )


@router.post("/{tournament_id}/url-candidates/apply", response_model=TournamentOut)
async def apply_url_candidate(
    tournament_id: str,
    payload: UrlApplyRequest,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> TournamentOut:
    try:
        principal.require_scopes({"tournaments:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        candidate_url = normalize_source_url(payload.candidate_url).canonical
        await repository.apply_url_candidate(tournament_id=tournament_id, candidate_url=candidate_url, auto=False)
        record = await repository.get_tournament(tournament_id)
    except InvalidUrl as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="tournament not found")
    return TournamentOut(**asdict(record))


@router.post("/{tournament_id}/enrich", response_model=EnrichmentOut)
async def enrich_one_tournament(
    tournament_id: str,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
    dead_domains: DeadDomainTracker = Depends(get_dead_domain_tracker),
) -> EnrichmentOut:
    try:
        principal.require_scopes({"tournaments:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        tournament = await repository.get_tournament(tournament_id)
        if tournament is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="tournament not found")
        outcome = await enrich_tournament(
            repository,
            tournament,
            client=client,
            settings=settings,
            dead_domains=dead_domains,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return EnrichmentOut(**asdict(outcome))
