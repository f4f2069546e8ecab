from dataclasses import asdict

import httpx
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from tournament_ingest.api.deps import get_dead_domain_tracker, get_http_client, get_search_provider
from tournament_ingest.core.config import Settings, get_settings
from tournament_ingest.core.errors import ExternalProviderUnavailable, InvalidUrl
from tournament_ingest.core.security import get_admin_principal
from tournament_ingest.jobs.source_discovery import discover_sources
from tournament_ingest.jobs.sweep import sweep_source
from tournament_ingest.schemas.sources import (
    SourceActiveRequest,
    SourceCreateRequest,
    SourceDiscoveryOut,
    SourceDiscoveryRequest,
    SourceOut,
    SourceType,
    SweepOut,
    SweepRequest,
)
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from tournament_ingest.services.search import SearchProvider
from tournament_ingest.services.sources import get_source_by_url, register_source

router = APIRouter()


@router.post("", response_model=SourceOut, status_code=status.HTTP_201_CREATED)
async def create_source(
    payload: SourceCreateRequest,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> SourceOut:
    try:
        principal.require_scopes({"sources:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        record = await register_source(repository, **payload.model_dump())
    except InvalidUrl as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return SourceOut(**asdict(record))


@router.get("", response_model=list[SourceOut])
async def list_sources(
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
    active_only: bool = Query(default=False),
    sport: str | None = Query(default=None),
    state: str | None = Query(default=None, max_length=2),
    source_type: SourceType | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
) -> list[SourceOut]:
    try:
        principal.require_scopes({"sources:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_sources(
            active_only=active_only,
            sport=sport.lower() if sport else None,
            state=state.upper() if state else None,
            source_type=source_type,
            limit=limit,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [SourceOut(**asdict(row)) for row in rows]


@router.get("/lookup", response_model=SourceOut)
async def lookup_source(
    url: str = Query(min_length=1),
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> SourceOut:
    try:
        principal.require_scopes({"sources:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        record = await get_source_by_url(repository, url)
    except InvalidUrl as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="source not found")
    return SourceOut(**asdict(record))


@router.post("/{source_id}/active", response_model=SourceOut)
async def set_source_active(
    source_id: str,
    payload: SourceActiveRequest,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> SourceOut:
    try:
        principal.require_scopes({"sources:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        record = await repository.set_source_active(source_id, is_active=payload.is_active)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return SourceOut(**asdict(record))


@router.post("/{source_id}/sweep", response_model=SweepOut)
async def sweep_one_source(
    source_id: str,
    payload: SweepRequest | None = Body(default=None),
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
    dead_domains: DeadDomainTracker = Depends(get_dead_domain_tracker),
) -> SweepOut:
    try:
        principal.require_scopes({"sources:write", "tournaments:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        source = await repository.get_source(source_id)
        if source is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="source not found")
        outcome = await sweep_source(
            repository,
            source,
            client=client,
            settings=settings,
            html=payload.html if payload else None,
            dead_domains=dead_domains,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return SweepOut(
        source_id=outcome.source_id,
        status=outcome.status,
        counts=outcome.counts,
        error_code=outcome.error_code,
        message=outcome.message,
        sample=outcome.sample,
    )


@router.post("/discover", response_model=SourceDiscoveryOut)
async def discover_new_sources(
    payload: SourceDiscoveryRequest,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
    provider: SearchProvider = Depends(get_search_provider),
) -> SourceDiscoveryOut:
    try:
        principal.require_scopes({"sources:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await discover_sources(repository, provider, **payload.model_dump())
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except ExternalProviderUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return SourceDiscoveryOut(**result)
