from __future__ import annotations

from datetime import date

from tournament_ingest.core.errors import SourceFetchFailed
from tournament_ingest.services.extractors.base import Extractor
from tournament_ingest.services.extractors.calendar import VenueCalendarExtractor
from tournament_ingest.services.extractors.state_directory import StateDirectoryExtractor
from tournament_ingest.services.extractors.table_listing import TableListingExtractor
from tournament_ingest.services.records import SourceRecord

EXTRACTORS: dict[str, type[Extractor]] = {
    TableListingExtractor.source_type: TableListingExtractor,
    VenueCalendarExtractor.source_type: VenueCalendarExtractor,
    StateDirectoryExtractor.source_type: StateDirectoryExtractor,
}


def get_extractor(source: SourceRecord, *, reference_year: int | None = None) -> Extractor:
    extractor_cls = EXTRACTORS.get(source.source_type)
    if extractor_cls is None:
        raise SourceFetchFailed(
            "unsupported_source_type",
            f"no extractor registered for source_type={source.source_type!r}",
        )
    return extractor_cls(
        default_state=source.state,
        default_year=reference_year or date.today().year,
    )
