from __future__ import annotations

import logging
import re
from urllib.parse import parse_qsl, urlsplit

from bs4 import BeautifulSoup

from tournament_ingest.services.extractors.base import US_STATE_NAMES, US_STATES, absolute_url
from tournament_ingest.services.extractors.calendar import VenueCalendarExtractor
from tournament_ingest.services.records import CandidateEventRecord

logger = logging.getLogger(__name__)

SPORT_LABEL_WORDS = (
    "baseball",
    "softball",
    "fastpitch",
    "soccer",
    "futsal",
    "hockey",
    "basketball",
    "volleyball",
    "lacrosse",
    "football",
    "wrestling",
)

# wabaseball.usssa.com, txsoftball.example.org
_STATE_LABEL_RE = re.compile(rf"^([a-z]{{2}})(?:{'|'.join(SPORT_LABEL_WORDS)})$")
_STATE_NAME_LABELS = {name.replace(" ", ""): code for name, code in US_STATE_NAMES.items()}
_STATE_PATH_RE = re.compile(r"/states?/([a-z]{2})(?:/|$)", re.I)


def _parent_domain(host: str) -> str:
    labels = host.split(".")
    return ".".join(labels[-2:])


def state_from_url(url: str | None) -> str | None:
    """State code encoded in a state sub-page URL, if any."""
    if not url:
        return None
    parts = urlsplit(url)
    path_match = _STATE_PATH_RE.search(parts.path or "")
    if path_match and path_match.group(1).upper() in US_STATES:
        return path_match.group(1).upper()
    for key, value in parse_qsl(parts.query):
        if key.lower() == "state" and value.strip().upper() in US_STATES:
            return value.strip().upper()
    host = (parts.hostname or "").lower()
    labels = host.split(".")
    if len(labels) >= 3:
        return _state_from_label(labels[0])
    return None


def _state_from_label(label: str) -> str | None:
    """`wabaseball`, `oregon` or `texassoftball`; a bare prefix like `calendar` is not a state."""
    label_match = _STATE_LABEL_RE.match(label)
    if label_match and label_match.group(1).upper() in US_STATES:
        return label_match.group(1).upper()
    for name, code in _STATE_NAME_LABELS.items():
        if label == name or (label.startswith(name) and label[len(name) :] in SPORT_LABEL_WORDS):
            return code
    return None


class StateDirectoryExtractor(VenueCalendarExtractor):
    """National index that links to one calendar page per state.

    `discover_pages` runs on the index; `extract` runs on each state page
    and fills a missing record state from the page URL.
    """

    source_type = "state_directory"

    def discover_pages(self, html: str, source_url: str) -> list[str]:
        if not html or not html.strip():
            return []
        source_host = (urlsplit(source_url).hostname or "").lower()
        parent = _parent_domain(source_host)
        soup = BeautifulSoup(html, "html.parser")

        # one page per state; the shortest link is the state landing page
        pages: dict[str, str] = {}
        for link in soup.find_all("a", href=True):
            url = absolute_url(link["href"], source_url)
            if url is None or url == source_url:
                continue
            host = (urlsplit(url).hostname or "").lower()
            if host != source_host and not host.endswith("." + parent):
                continue
            state = state_from_url(url)
            if state is None or state not in self.supported_states:
                continue
            if host == source_host and state_from_url(source_url) == state:
                continue
            current = pages.get(state)
            if current is None or (len(url), url) < (len(current), current):
                pages[state] = url

        discovered = sorted(pages.values())
        logger.info("state pages discovered source_url=%s count=%s", source_url, len(discovered))
        return discovered

    def parse(self, soup: BeautifulSoup, source_url: str) -> list[CandidateEventRecord]:
        records = super().parse(soup, source_url)
        page_state = state_from_url(source_url)
        if page_state:
            for record in records:
                if not record.state:
                    record.state = page_state
        return records
