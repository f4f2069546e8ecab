from typing import Any

from pydantic import BaseModel, Field


class JobRunRequest(BaseModel):
    limit: int | None = Field(default=None, ge=1, le=1000)
    sport: str | None = None
    state: str | None = None
    entity_kind: str | None = None


class JobRunOut(BaseModel):
    kind: str
    result: dict[str, Any] = Field(default_factory=dict)
