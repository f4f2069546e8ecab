from __future__ import annotations

import re

from bs4 import BeautifulSoup
from bs4.element import Tag

from tournament_ingest.services.extractors.base import Extractor, absolute_url, clean_text, parse_city_state
from tournament_ingest.services.extractors.dates import MonthContext, parse_date_range, parse_month_heading
from tournament_ingest.services.records import CandidateEventRecord

EVENT_BLOCK_SELECTOR = ", ".join(
    [
        ".vevent",
        ".event",
        ".event-card",
        ".event-block",
        ".calendar-event",
        ".tribe-events-calendar-list__event",
    ]
)
TITLE_SELECTOR = ", ".join(
    [
        ".summary",
        ".event-title",
        ".event-block-info-title",
        ".tribe-events-calendar-list__event-title",
        "h2",
        "h3",
        "h4",
    ]
)
DATE_SELECTOR = ", ".join([".event-dates", ".event-date", ".text-side-date", ".date", ".when"])
LOCATION_SELECTOR = ", ".join([".event-location", ".location", ".locality", ".where"])
VENUE_SELECTOR = ", ".join([".venue", ".event-venue", ".location-name"])
HOST_SELECTOR = ", ".join([".host", ".organizer", ".event-host"])
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

_LOCATION_HINT_RE = re.compile(r",\s*[A-Za-z]{2}")
_AGE_HINT_RE = re.compile(r"\b\d{1,2}U\b", re.I)


class VenueCalendarExtractor(Extractor):
    """Calendar markup where each event is its own block element."""

    source_type = "venue_calendar"

    def parse(self, soup: BeautifulSoup, source_url: str) -> list[CandidateEventRecord]:
        records: list[CandidateEventRecord] = []
        for block in self._event_blocks(soup):
            record = self._parse_block(block, source_url)
            if record is not None:
                records.append(record)
        return records

    @staticmethod
    def _event_blocks(soup: BeautifulSoup) -> list[Tag]:
        blocks = soup.select(EVENT_BLOCK_SELECTOR)
        block_ids = {id(block) for block in blocks}
        # nested matches (".event" inside ".event-card") describe the same event
        return [block for block in blocks if not any(id(parent) in block_ids for parent in block.parents)]

    def _parse_block(self, block: Tag, source_url: str) -> CandidateEventRecord | None:
        title = block.select_one(TITLE_SELECTOR)
        name = clean_text(title) if title is not None else ""
        if not name:
            return None

        context = self._heading_context(block)
        default_month = context.month if context else None
        default_year = (context.year if context else None) or self.default_year

        date_text, start, end = self._dates(block, default_month=default_month, default_year=default_year)

        list_items = [clean_text(item) for item in block.find_all("li")]
        location = block.select_one(LOCATION_SELECTOR)
        location_text = clean_text(location) if location is not None else ""
        if not location_text:
            location_text = next(
                (item for item in list_items if _LOCATION_HINT_RE.search(item) and parse_city_state(item)[1]),
                "",
            )
        city, state = parse_city_state(location_text)

        venue = clean_text(block.select_one(VENUE_SELECTOR)) or None
        host = clean_text(block.select_one(HOST_SELECTOR)) or None
        level = next((item for item in list_items if _AGE_HINT_RE.search(item)), None)

        link = title.find("a", href=True) if title.name != "a" else title
        if link is None or not link.get("href"):
            link = block.find("a", href=True)
        event_url = absolute_url(link["href"], source_url) if link is not None else None

        raw_fields = {
            "date_text": date_text or None,
            "location_text": location_text or None,
            "event_url": event_url,
        }
        return CandidateEventRecord(
            name=name,
            state=state,
            city=city,
            venue=venue,
            source_url=source_url,
            approximate_dates=date_text or None,
            start_date=start,
            end_date=end,
            host_org=host,
            website_url=event_url,
            level=level,
            raw_fields={key: value for key, value in raw_fields.items() if value},
        )

    @staticmethod
    def _dates(block: Tag, *, default_month: int | None, default_year: int | None):
        times = [node for node in block.find_all("time") if node.get("datetime")]
        start_node = block.select_one(".dtstart[datetime], .dtstart[title]")
        end_node = block.select_one(".dtend[datetime], .dtend[title]")
        if start_node is not None:
            times = [start_node] + ([end_node] if end_node is not None else [])
        if times:
            first = times[0].get("datetime") or times[0].get("title") or ""
            last = times[-1].get("datetime") or times[-1].get("title") or first
            start, _ = parse_date_range(first[:10])
            end, _ = parse_date_range(last[:10])
            if start is not None:
                if end is None or end < start:
                    end = start
                return clean_text(times[0]) or first, start, end

        date_node = block.select_one(DATE_SELECTOR)
        date_text = clean_text(date_node) if date_node is not None else ""
        start, end = parse_date_range(date_text, default_month=default_month, default_year=default_year)
        return date_text, start, end

    @staticmethod
    def _heading_context(block: Tag) -> MonthContext | None:
        heading = block.find_previous(HEADING_TAGS)
        while heading is not None:
            context = parse_month_heading(clean_text(heading))
            if context is not None:
                return context
            heading = heading.find_previous(HEADING_TAGS)
        return None
