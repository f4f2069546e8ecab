from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

MONTH_NUMBERS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}
MONTH_PATTERN = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
_ORDINAL = r"(?:st|nd|rd|th)?"
_WEEKDAY_RE = re.compile(r"\b(?:mon|tue|tues|wed|thu|thur|thurs|fri|sat|sun)(?:day|nesday|sday|urday)?\b\.?,?", re.I)
_DASH_RE = re.compile(r"\s*(?:[-–—]|\bto\b|\bthru\b|\bthrough\b)\s*", re.I)

_ISO_RE = re.compile(
    r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b(?:\s*(?:/|[-–—]|to|through)\s*(\d{4})-(\d{1,2})-(\d{1,2})\b)?", re.I
)
_NUMERIC_RE = re.compile(
    r"\b(\d{1,2})/(\d{1,3})(?:/(\d{4}|\d{2}))?(?:\s*-\s*(\d{1,2})/(\d{1,3})(?:/(\d{4}|\d{2}))?)?(?!\d)"
)
_NAMED_RE = re.compile(
    rf"\b({MONTH_PATTERN})\.?\s+(\d{{1,3}}){_ORDINAL}(?!\d)(?:,?\s+(\d{{4}}))?"
    rf"(?:\s*-\s*(?:({MONTH_PATTERN})\.?\s+)?(\d{{1,3}}){_ORDINAL}(?!\d)(?:,?\s+(\d{{4}}))?)?",
    re.I,
)
DATE_PHRASE_RE = re.compile(
    rf"\b{MONTH_PATTERN}\.?\s+\d{{1,2}}{_ORDINAL}"
    rf"(?:\s*[-–]\s*(?:{MONTH_PATTERN}\.?\s+)?\d{{1,2}}{_ORDINAL})?,?\s+\d{{4}}\b",
    re.I,
)
_BARE_DAYS_RE = re.compile(r"^(\d{1,3})" + _ORDINAL + r"(?:\s*-\s*(\d{1,3})" + _ORDINAL + r")?$", re.I)
_HEADING_RE = re.compile(rf"^\s*({MONTH_PATTERN})\b\.?(?:\s*,?\s*(\d{{4}}))?", re.I)
_YEAR_RE = re.compile(r"\b(19\d{2}|20\d{2})\b")


@dataclass(frozen=True, slots=True)
class MonthContext:
    month: int
    year: int | None


def month_number(token: str | None) -> int | None:
    if not token:
        return None
    return MONTH_NUMBERS.get(token.strip().lower()[:3])


def parse_month_heading(text: str | None) -> MonthContext | None:
    """Recognize headings like "December 2025" or "March"."""
    if not text:
        return None
    compact = " ".join(text.split())
    match = _HEADING_RE.match(compact)
    if not match:
        return None
    # long text that starts with a month name is content, not a heading
    if len(compact) > 40:
        return None
    month = month_number(match.group(1))
    if month is None:
        return None
    year = int(match.group(2)) if match.group(2) else None
    if year is None:
        year_match = _YEAR_RE.search(compact)
        year = int(year_match.group(1)) if year_match else None
    # "March Madness" is an event title, "March" alone is a heading
    if year is None and compact[match.end() :].strip(" .:"):
        return None
    return MonthContext(month=month, year=year)


def parse_date_range(
    text: str | None,
    *,
    default_month: int | None = None,
    default_year: int | None = None,
) -> tuple[date | None, date | None]:
    """Resolve free-form date text into ISO start/end dates.

    Out-of-range days or impossible calendar dates yield (None, None).
    """
    if not text:
        return None, None
    cleaned = _WEEKDAY_RE.sub(" ", text)
    cleaned = _DASH_RE.sub(" - ", " ".join(cleaned.split()))
    cleaned = " ".join(cleaned.split()).strip(" ,")
    if not cleaned:
        return None, None

    iso = _ISO_RE.search(text)
    if iso:
        start = _build_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        end = start
        if iso.group(4):
            end = _build_date(int(iso.group(4)), int(iso.group(5)), int(iso.group(6)))
        return _ordered(start, end)

    numeric = _NUMERIC_RE.search(cleaned)
    if numeric:
        start_year = _expand_year(numeric.group(3))
        end_year = _expand_year(numeric.group(6))
        start_month, start_day = int(numeric.group(1)), int(numeric.group(2))
        end_month = int(numeric.group(4)) if numeric.group(4) else start_month
        end_day = int(numeric.group(5)) if numeric.group(5) else start_day
        return _resolve(
            start_month, start_day, start_year, end_month, end_day, end_year, default_year=default_year
        )

    named = _NAMED_RE.search(cleaned)
    if named:
        start_month = month_number(named.group(1))
        start_day = int(named.group(2))
        start_year = int(named.group(3)) if named.group(3) else None
        end_month = month_number(named.group(4)) if named.group(4) else start_month
        end_day = int(named.group(5)) if named.group(5) else start_day
        end_year = int(named.group(6)) if named.group(6) else None
        if start_year is None and end_year is None:
            year_match = _YEAR_RE.search(cleaned)
            end_year = int(year_match.group(1)) if year_match else None
        if start_month is None or end_month is None:
            return None, None
        return _resolve(
            start_month, start_day, start_year, end_month, end_day, end_year, default_year=default_year
        )

    bare = _BARE_DAYS_RE.match(cleaned)
    if bare and default_month is not None:
        start_day = int(bare.group(1))
        end_day = int(bare.group(2)) if bare.group(2) else start_day
        return _resolve(default_month, start_day, None, default_month, end_day, None, default_year=default_year)

    return None, None


def _resolve(
    start_month: int,
    start_day: int,
    start_year: int | None,
    end_month: int,
    end_day: int,
    end_year: int | None,
    *,
    default_year: int | None,
) -> tuple[date | None, date | None]:
    if not (1 <= start_day <= 31 and 1 <= end_day <= 31):
        return None, None
    if not (1 <= start_month <= 12 and 1 <= end_month <= 12):
        return None, None

    year = start_year or end_year or default_year or date.today().year
    if start_year is None and end_year is not None and end_month < start_month:
        year = end_year - 1
    resolved_end_year = end_year or year
    if end_year is None and end_month < start_month:
        resolved_end_year = year + 1

    start = _build_date(year, start_month, start_day)
    end = _build_date(resolved_end_year, end_month, end_day)
    return _ordered(start, end)


def _ordered(start: date | None, end: date | None) -> tuple[date | None, date | None]:
    if start is None or end is None or end < start:
        return None, None
    return start, end


def _build_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _expand_year(raw: str | None) -> int | None:
    if not raw:
        return None
    value = int(raw)
    return value + 2000 if value < 100 else value
