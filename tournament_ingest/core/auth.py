from dataclasses import dataclass
from enum import Enum


class PrincipalType(str, Enum):
    ADMIN = "admin"
    SCHEDULER = "scheduler"


ADMIN_SCOPES = {
    "sources:read",
    "sources:write",
    "tournaments:read",
    "tournaments:write",
    "facts:read",
    "facts:write",
    "scores:read",
    "jobs:run",
}
SCHEDULER_SCOPES = {"jobs:run"}


@dataclass(slots=True)
class Principal:
    principal_type: PrincipalType
    subject: str
    scopes: set[str]

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")
