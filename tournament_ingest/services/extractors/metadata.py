from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date

from bs4 import BeautifulSoup

from tournament_ingest.services.extractors.base import US_STATES, clean_text, parse_city_state
from tournament_ingest.services.extractors.dates import DATE_PHRASE_RE, parse_date_range

logger = logging.getLogger(__name__)

SUMMARY_MAX_LENGTH = 500

_CITY_STATE_RE = re.compile(rf"\b([A-Z][A-Za-z.'-]+(?: [A-Z][A-Za-z.'-]+){{0,2}}),\s*({'|'.join(sorted(US_STATES))})\b")
_HOST_RE = re.compile(
    r"\b(?:(?i:hosted by|organized by|presented by)\s*:?|(?i:organizer|host|club)\s*:)\s*"
    r"([A-Z][\w&'-]*(?:\s+[A-Z0-9][\w&'-]*){0,5})"
)


@dataclass(slots=True)
class PageMetadata:
    name: str | None = None
    summary: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    city: str | None = None
    state: str | None = None
    host_org: str | None = None
    image_url: str | None = None
    warnings: list[str] = field(default_factory=list)


def _meta(soup: BeautifulSoup, *, name: str | None = None, prop: str | None = None) -> str | None:
    attrs = {"name": name} if name else {"property": prop}
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    return clean_text(tag.get("content")) or None


def parse_page_metadata(html: str) -> PageMetadata:
    """Best-effort tournament fields from a pasted event page.

    Missing name or summary are reported as warnings rather than errors.
    """
    metadata = PageMetadata()
    soup = BeautifulSoup(html or "", "html.parser")

    heading = soup.find("h1")
    title = soup.find("title")
    metadata.name = (
        _meta(soup, prop="og:title")
        or (clean_text(heading) if heading else None)
        or (clean_text(title) if title else None)
    )
    summary = _meta(soup, name="description") or _meta(soup, prop="og:description")
    metadata.summary = summary[:SUMMARY_MAX_LENGTH] if summary else None
    metadata.image_url = _meta(soup, prop="og:image")

    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = clean_text(soup.get_text(" "))

    date_match = DATE_PHRASE_RE.search(text)
    if date_match:
        metadata.start_date, metadata.end_date = parse_date_range(date_match.group(0))

    place = _CITY_STATE_RE.search(text)
    if place:
        metadata.city, metadata.state = parse_city_state(place.group(0))

    host = _HOST_RE.search(text)
    if host:
        metadata.host_org = host.group(1).strip(" .,")

    if not metadata.name:
        metadata.warnings.append("name_not_found")
    if not metadata.summary:
        metadata.warnings.append("summary_not_found")
    logger.debug("page metadata parsed name=%s warnings=%s", metadata.name, metadata.warnings)
    return metadata
