from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class FactProposeRequest(BaseModel):
    facts: list[dict[str, Any]] = Field(default_factory=list)


class FactOut(BaseModel):
    id: str
    tournament_id: str
    kind: str
    fields: dict[str, Any] = Field(default_factory=dict)
    content_signature: str
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime


class FactProposeOut(BaseModel):
    inserted: list[FactOut] = Field(default_factory=list)
    skipped_known: int = 0
    skipped_in_batch: int = 0


class FactActionItem(BaseModel):
    kind: str
    id: str


class FactActionRequest(BaseModel):
    kind: str | None = None
    id: str | None = None
    items: list[FactActionItem] = Field(default_factory=list)


class FactActionOut(BaseModel):
    affected_ids: list[str] = Field(default_factory=list)
