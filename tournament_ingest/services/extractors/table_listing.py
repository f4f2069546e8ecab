from __future__ import annotations

from bs4 import BeautifulSoup
from bs4.element import Tag

from tournament_ingest.services.extractors.base import (
    Extractor,
    absolute_url,
    clean_text,
    normalize_state,
    parse_city_state,
)
from tournament_ingest.services.extractors.dates import MonthContext, parse_date_range, parse_month_heading
from tournament_ingest.services.records import CandidateEventRecord

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


def _header_key(text: str) -> str:
    return " ".join("".join(ch if ch.isalnum() else " " for ch in text.lower()).split())


def _column_index(headers: list[str]) -> dict[str, int]:
    def find(*needles: str, exclude: tuple[str, ...] = ()) -> int:
        for position, header in enumerate(headers):
            if any(needle in header for needle in needles) and not any(word in header for word in exclude):
                return position
        return -1

    return {
        "name": find("tournament", "event", "name", exclude=("date", "website", "director", "host")),
        "dates": find("date", "when"),
        "location": find("location", "city", "where"),
        "state": find("state"),
        "venue": find("venue", "facility", "field", "complex"),
        "host": find("host", "club", "organizer"),
        "website": find("website", "link", "url"),
        "ages": find("age", "division", "level"),
        "director": find("director", "contact"),
    }


class TableListingExtractor(Extractor):
    """Month-headed listing tables ("December 2025" followed by a <table>)."""

    source_type = "table_listing"

    def parse(self, soup: BeautifulSoup, source_url: str) -> list[CandidateEventRecord]:
        records: list[CandidateEventRecord] = []
        seen_tables: set[int] = set()

        for table in soup.find_all("table"):
            context = self._heading_context(table)
            if context is None:
                continue
            seen_tables.add(id(table))
            records.extend(self._parse_table(table, source_url, context))

        if not records:
            for table in soup.find_all("table"):
                if id(table) in seen_tables:
                    continue
                records.extend(self._parse_table(table, source_url, None))
        return records

    @staticmethod
    def _heading_context(table: Tag) -> MonthContext | None:
        heading = table.find_previous(HEADING_TAGS)
        while heading is not None:
            context = parse_month_heading(clean_text(heading))
            if context is not None:
                return context
            heading = heading.find_previous(HEADING_TAGS)
        return None

    def _parse_table(
        self,
        table: Tag,
        source_url: str,
        context: MonthContext | None,
    ) -> list[CandidateEventRecord]:
        rows = table.find_all("tr")
        if len(rows) < 2:
            return []
        headers = [_header_key(clean_text(cell)) for cell in rows[0].find_all(["th", "td"])]
        index = _column_index(headers)
        default_month = context.month if context else None
        default_year = (context.year if context else None) or self.default_year

        records: list[CandidateEventRecord] = []
        for row in rows[1:]:
            cells = row.find_all("td")
            if not cells:
                continue

            def cell_text(key: str) -> str:
                position = index[key]
                if position < 0 or position >= len(cells):
                    return ""
                return clean_text(cells[position])

            name = cell_text("name") or clean_text(cells[0])
            if not name:
                continue
            date_text = cell_text("dates")
            city, state = parse_city_state(cell_text("location"))
            state = normalize_state(cell_text("state")) or state
            start, end = parse_date_range(date_text, default_month=default_month, default_year=default_year)

            website = None
            if index["website"] >= 0 and index["website"] < len(cells):
                link = cells[index["website"]].find("a", href=True)
                website = absolute_url(link["href"] if link else cell_text("website"), source_url)
            if website is None:
                for link in row.find_all("a", href=True):
                    if "website" in clean_text(link).lower():
                        website = absolute_url(link["href"], source_url)
                        break

            raw_fields = {
                "date_text": date_text or None,
                "location_text": cell_text("location") or None,
                "host_text": cell_text("host") or None,
                "ages_text": cell_text("ages") or None,
                "director_text": cell_text("director") or None,
                "website_url": website,
            }
            records.append(
                CandidateEventRecord(
                    name=name,
                    state=state,
                    city=city,
                    venue=cell_text("venue") or None,
                    source_url=source_url,
                    approximate_dates=date_text or None,
                    start_date=start,
                    end_date=end,
                    host_org=cell_text("host") or None,
                    website_url=website,
                    level=cell_text("ages") or None,
                    raw_fields={key: value for key, value in raw_fields.items() if value},
                )
            )
        return records
