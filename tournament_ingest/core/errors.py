from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base error for ingestion and resolution failures."""


class InvalidUrl(PipelineError):
    """Raised when a raw string does not parse as an http(s) URL."""


class InvalidRecord(PipelineError):
    """Raised when a candidate record lacks a field required for resolution."""

    def __init__(self, message: str, *, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])


class SourceFetchFailed(PipelineError):
    """Raised when a source page or candidate URL cannot be fetched."""

    def __init__(self, code: str, message: str, *, diagnostics: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.diagnostics = dict(diagnostics or {})


class DeadDomain(PipelineError):
    """Raised when a domain is on the dead-domain list and is skipped."""

    def __init__(self, domain: str) -> None:
        super().__init__(f"domain is marked dead: {domain}")
        self.domain = domain


class ExternalProviderUnavailable(PipelineError):
    """Raised when a search provider is not configured or rejects its credentials."""
