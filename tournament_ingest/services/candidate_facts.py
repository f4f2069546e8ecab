from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from tournament_ingest.services.records import CandidateFact

logger = logging.getLogger(__name__)

_NON_DIGIT_RE = re.compile(r"\D+")


class FactKind(str, Enum):
    CONTACT = "contact"
    VENUE = "venue"
    DATE = "date"
    COMP_RATE = "comp-rate"
    COMP_HOTEL = "comp-hotel"
    COMP_CASH = "comp-cash"


class FactRepository(Protocol):
    async def list_fact_signatures(self, *, tournament_id: str, kind: str) -> set[str]: ...

    async def insert_facts(
        self, *, tournament_id: str, kind: str, facts: list[tuple[dict[str, Any], str]]
    ) -> list[CandidateFact]: ...

    async def delete_fact_set(self, *, kind: str, fact_id: str) -> list[str]: ...

    async def stamp_fact_set(self, *, kind: str, fact_id: str, decision: str) -> list[str]: ...


@dataclass(slots=True)
class ProposeResult:
    inserted: list[CandidateFact]
    skipped_known: int
    skipped_in_batch: int


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _date_text(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value).strip()


def _contact_signature(fields: dict[str, Any]) -> str:
    role = _text(fields.get("role")) or "general"
    phone = _NON_DIGIT_RE.sub("", str(fields.get("phone") or ""))
    return "|".join([role, _text(fields.get("name")), _text(fields.get("email")), phone])


def _venue_signature(fields: dict[str, Any]) -> str:
    return "|".join([_text(fields.get("venue_name")), _text(fields.get("address_text"))])


def _date_signature(fields: dict[str, Any]) -> str:
    return "|".join(
        [
            _text(fields.get("date_text")),
            _date_text(fields.get("start_date")),
            _date_text(fields.get("end_date")),
        ]
    )


def _comp_signature(fields: dict[str, Any]) -> str:
    return "|".join([_text(fields.get("rate_text")), _text(fields.get("travel_lodging"))])


def content_signature(kind: FactKind, fields: dict[str, Any]) -> str:
    match kind:
        case FactKind.CONTACT:
            return _contact_signature(fields)
        case FactKind.VENUE:
            return _venue_signature(fields)
        case FactKind.DATE:
            return _date_signature(fields)
        case FactKind.COMP_RATE | FactKind.COMP_HOTEL | FactKind.COMP_CASH:
            return _comp_signature(fields)
    raise ValueError(f"unsupported fact kind: {kind!r}")


def parse_fact_kind(value: str) -> FactKind:
    try:
        return FactKind(value)
    except ValueError as exc:
        raise ValueError(f"unsupported fact kind: {value!r}") from exc


async def propose_facts(
    repository: FactRepository,
    *,
    tournament_id: str,
    kind: FactKind,
    facts: list[dict[str, Any]],
) -> ProposeResult:
    """Insert proposed facts whose signature is not yet known for the tournament.

    Rejected facts keep their signature, so a re-crawl does not resurface them.
    """
    known = await repository.list_fact_signatures(tournament_id=tournament_id, kind=kind.value)
    pending: list[tuple[dict[str, Any], str]] = []
    seen_in_batch: set[str] = set()
    skipped_known = 0
    skipped_in_batch = 0
    for fields in facts:
        signature = content_signature(kind, fields)
        if signature in known:
            skipped_known += 1
            continue
        if signature in seen_in_batch:
            skipped_in_batch += 1
            continue
        seen_in_batch.add(signature)
        pending.append((dict(fields), signature))

    inserted: list[CandidateFact] = []
    if pending:
        inserted = await repository.insert_facts(tournament_id=tournament_id, kind=kind.value, facts=pending)
    logger.info(
        "candidate facts proposed tournament_id=%s kind=%s inserted=%s known=%s duplicate=%s",
        tournament_id,
        kind.value,
        len(inserted),
        skipped_known,
        skipped_in_batch,
    )
    return ProposeResult(inserted=inserted, skipped_known=skipped_known, skipped_in_batch=skipped_in_batch)


async def delete_fact(repository: FactRepository, *, kind: FactKind, fact_id: str) -> list[str]:
    return await repository.delete_fact_set(kind=kind.value, fact_id=fact_id)


async def accept_fact(repository: FactRepository, *, kind: FactKind, fact_id: str) -> list[str]:
    return await repository.stamp_fact_set(kind=kind.value, fact_id=fact_id, decision="accepted")


async def reject_fact(repository: FactRepository, *, kind: FactKind, fact_id: str) -> list[str]:
    return await repository.stamp_fact_set(kind=kind.value, fact_id=fact_id, decision="rejected")
