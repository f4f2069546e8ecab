from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, ClassVar
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from tournament_ingest.core.urls import try_normalize_source_url
from tournament_ingest.services.records import CandidateEventRecord

logger = logging.getLogger(__name__)

US_STATE_NAMES = {
    "alabama": "AL",
    "alaska": "AK",
    "arizona": "AZ",
    "arkansas": "AR",
    "california": "CA",
    "colorado": "CO",
    "connecticut": "CT",
    "delaware": "DE",
    "district of columbia": "DC",
    "florida": "FL",
    "georgia": "GA",
    "hawaii": "HI",
    "idaho": "ID",
    "illinois": "IL",
    "indiana": "IN",
    "iowa": "IA",
    "kansas": "KS",
    "kentucky": "KY",
    "louisiana": "LA",
    "maine": "ME",
    "maryland": "MD",
    "massachusetts": "MA",
    "michigan": "MI",
    "minnesota": "MN",
    "mississippi": "MS",
    "missouri": "MO",
    "montana": "MT",
    "nebraska": "NE",
    "nevada": "NV",
    "new hampshire": "NH",
    "new jersey": "NJ",
    "new mexico": "NM",
    "new york": "NY",
    "north carolina": "NC",
    "north dakota": "ND",
    "ohio": "OH",
    "oklahoma": "OK",
    "oregon": "OR",
    "pennsylvania": "PA",
    "rhode island": "RI",
    "south carolina": "SC",
    "south dakota": "SD",
    "tennessee": "TN",
    "texas": "TX",
    "utah": "UT",
    "vermont": "VT",
    "virginia": "VA",
    "washington": "WA",
    "west virginia": "WV",
    "wisconsin": "WI",
    "wyoming": "WY",
}
US_STATES = frozenset(US_STATE_NAMES.values())

_CITY_STATE_RE = re.compile(r"([A-Za-z][A-Za-z .'-]+?)\s*,\s*([A-Za-z][A-Za-z .]+?)\s*(?:\d{5}(?:-\d{4})?)?\s*$")
_STATE_TOKEN_RE = re.compile(r"\b([A-Z]{2})\b")


def clean_text(value: Any) -> str:
    if isinstance(value, Tag):
        value = value.get_text(" ", strip=True)
    if not isinstance(value, str):
        return ""
    return " ".join(value.split())


def normalize_state(raw: str | None) -> str | None:
    if not raw:
        return None
    compact = " ".join(raw.replace(".", " ").split())
    if not compact:
        return None
    if len(compact) == 2 and compact.upper() in US_STATES:
        return compact.upper()
    return US_STATE_NAMES.get(compact.lower())


def parse_city_state(text: str | None) -> tuple[str | None, str | None]:
    """Split "City, ST" (or "City, State Name") location text."""
    compact = clean_text(text)
    if not compact:
        return None, None
    match = _CITY_STATE_RE.search(compact)
    if match:
        state = normalize_state(match.group(2))
        if state:
            city = match.group(1).split(",")[-1].strip() or None
            return city, state
    state = normalize_state(compact)
    if state:
        return None, state
    token = _STATE_TOKEN_RE.search(compact)
    if token and token.group(1) in US_STATES and compact.endswith(token.group(1)):
        return compact[: token.start()].strip(" ,-") or None, token.group(1)
    return compact, None


def absolute_url(href: str | None, base_url: str) -> str | None:
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
        return None
    normalized = try_normalize_source_url(urljoin(base_url, href))
    return normalized.canonical if normalized else None


class Extractor(ABC):
    """Turns one page of third-party HTML into candidate event records.

    Subclasses implement `parse`; `extract` never raises and scopes records
    to the supported states.
    """

    source_type: ClassVar[str]

    def __init__(
        self,
        *,
        supported_states: frozenset[str] | set[str] | None = None,
        default_state: str | None = None,
        default_year: int | None = None,
    ) -> None:
        self.default_state = normalize_state(default_state)
        if supported_states:
            self.supported_states = frozenset(state.upper() for state in supported_states)
        elif self.default_state:
            self.supported_states = frozenset({self.default_state})
        else:
            self.supported_states = US_STATES
        self.default_year = default_year

    def extract(self, html: str, source_url: str) -> list[CandidateEventRecord]:
        if not html or not html.strip():
            return []
        try:
            soup = BeautifulSoup(html, "html.parser")
            parsed = self.parse(soup, source_url)
        except Exception:  # pragma: no cover - malformed third-party markup
            logger.exception("extractor failed type=%s source_url=%s", self.source_type, source_url)
            return []

        accepted: list[CandidateEventRecord] = []
        for record in parsed:
            finalized = self._finalize(record)
            if finalized is not None:
                accepted.append(finalized)
        return accepted

    @abstractmethod
    def parse(self, soup: BeautifulSoup, source_url: str) -> list[CandidateEventRecord]:
        raise NotImplementedError

    def _finalize(self, record: CandidateEventRecord) -> CandidateEventRecord | None:
        record.name = clean_text(record.name)
        if not record.name:
            return None
        record.state = normalize_state(record.state) or self.default_state
        if not record.state:
            return None
        if record.state not in self.supported_states:
            return None
        record.city = clean_text(record.city) or None
        record.venue = clean_text(record.venue) or None
        return record
