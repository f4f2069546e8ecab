from datetime import date

from tournament_ingest.services.extractors.dates import MonthContext, parse_date_range, parse_month_heading


def test_parse_month_heading_reads_month_and_year() -> None:
    assert parse_month_heading("December 2025") == MonthContext(month=12, year=2025)
    assert parse_month_heading("  Jan.  ") == MonthContext(month=1, year=None)
    assert parse_month_heading("March Madness Shootout") is None
    assert parse_month_heading("Tournament schedule") is None


def test_bare_day_range_uses_heading_month_and_year() -> None:
    assert parse_date_range("12-14", default_month=12, default_year=2025) == (date(2025, 12, 12), date(2025, 12, 14))


def test_bare_days_without_month_context_are_unresolved() -> None:
    assert parse_date_range("12-14") == (None, None)


def test_named_month_range_and_single_day() -> None:
    assert parse_date_range("Dec 12-14", default_year=2025) == (date(2025, 12, 12), date(2025, 12, 14))
    assert parse_date_range("Sat, June 7th", default_year=2026) == (date(2026, 6, 7), date(2026, 6, 7))
    assert parse_date_range("Dec 12, 2025") == (date(2025, 12, 12), date(2025, 12, 12))


def test_range_across_new_year_rolls_end_year_forward() -> None:
    assert parse_date_range("Dec 30 - Jan 2", default_year=2025) == (date(2025, 12, 30), date(2026, 1, 2))


def test_numeric_and_iso_dates() -> None:
    assert parse_date_range("12/12/2025") == (date(2025, 12, 12), date(2025, 12, 12))
    assert parse_date_range("3/7 - 3/9", default_year=2026) == (date(2026, 3, 7), date(2026, 3, 9))
    assert parse_date_range("2026-04-10 to 2026-04-12") == (date(2026, 4, 10), date(2026, 4, 12))


def test_out_of_range_day_rejects_whole_date() -> None:
    assert parse_date_range("35", default_month=12, default_year=2025) == (None, None)
    assert parse_date_range("Feb 30, 2026") == (None, None)
    assert parse_date_range("Dec 12-35", default_year=2025) == (None, None)
