from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from tournament_ingest.core.security import get_admin_principal
from tournament_ingest.schemas.candidate_facts import (
    FactActionOut,
    FactActionRequest,
    FactOut,
    FactProposeOut,
    FactProposeRequest,
)
from tournament_ingest.services.candidate_facts import (
    FactKind,
    accept_fact,
    delete_fact,
    parse_fact_kind,
    propose_facts,
    reject_fact,
)
from tournament_ingest.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    get_repository,
)

router = APIRouter()

_ACTIONS = {
    "delete": delete_fact,
    "accept": accept_fact,
    "reject": reject_fact,
}


def _kind_or_422(value: str) -> FactKind:
    try:
        return parse_fact_kind(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.post("/{action}", response_model=FactActionOut)
async def act_on_facts(
    action: str,
    payload: FactActionRequest,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> FactActionOut:
    """Delete, accept or reject every fact sharing the named fact's signature.

    Accepts a single `kind`/`id` pair or an `items` batch.
    """
    handler = _ACTIONS.get(action)
    if handler is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"unknown action: {action}")
    try:
        principal.require_scopes({"facts:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    items = [(item.kind, item.id) for item in payload.items]
    if payload.kind and payload.id:
        items.append((payload.kind, payload.id))
    if not items:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="kind and id are required")

    affected: list[str] = []
    try:
        for raw_kind, fact_id in items:
            kind = _kind_or_422(raw_kind)
            for affected_id in await handler(repository, kind=kind, fact_id=fact_id):
                if affected_id not in affected:
                    affected.append(affected_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return FactActionOut(affected_ids=affected)


@router.post("/{tournament_id}/{kind}", response_model=FactProposeOut)
async def propose_candidate_facts(
    tournament_id: str,
    kind: str,
    payload: FactProposeRequest,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> FactProposeOut:
    try:
        principal.require_scopes({"facts:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    fact_kind = _kind_or_422(kind)
    try:
        result = await propose_facts(repository, tournament_id=tournament_id, kind=fact_kind, facts=payload.facts)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return FactProposeOut(
        inserted=[FactOut(**asdict(fact)) for fact in result.inserted],
        skipped_known=result.skipped_known,
        skipped_in_batch=result.skipped_in_batch,
    )


@router.get("/{tournament_id}", response_model=list[FactOut])
async def list_candidate_facts(
    tournament_id: str,
    kind: str | None = Query(default=None),
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> list[FactOut]:
    try:
        principal.require_scopes({"facts:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    fact_kind = _kind_or_422(kind) if kind else None
    try:
        rows = await repository.list_facts(
            tournament_id=tournament_id,
            kind=fact_kind.value if fact_kind else None,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [FactOut(**asdict(row)) for row in rows]
