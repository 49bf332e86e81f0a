"""English date parsing utilities (calendar days, no time component).

All parsed dates are calendar days. Ranges are inclusive: `[start, end]`. Relative expressions
("last week", "last 30 days") are resolved against an injectable `today` so that parsing stays
deterministic under test.

A month mentioned without a year does not produce a year here; callers that need one apply their
own documented default.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Literal

import dateparser
from dateparser.conf import Settings as DateparserSettings

DateKind = Literal["single", "range", "quarter", "month", "year"]

MONTHS: dict[str, int] = {
    "january": 1,
    "jan": 1,
    "february": 2,
    "feb": 2,
    "march": 3,
    "mar": 3,
    "april": 4,
    "apr": 4,
    "may": 5,
    "june": 6,
    "jun": 6,
    "july": 7,
    "jul": 7,
    "august": 8,
    "aug": 8,
    "september": 9,
    "sep": 9,
    "sept": 9,
    "october": 10,
    "oct": 10,
    "november": 11,
    "nov": 11,
    "december": 12,
    "dec": 12,
}
MONTH_NAMES: tuple[str, ...] = tuple(calendar.month_name)[1:]
MONTH_PATTERN = "|".join(sorted(MONTHS, key=len, reverse=True))

_ORDINAL = r"(?:st|nd|rd|th)?"
_YEAR_RE = re.compile(r"\b(20\d{2})\b")
_MONTH_RE = re.compile(rf"\b(?P<m>{MONTH_PATTERN})\b(?:\s*,?\s*(?P<y>20\d{{2}}))?")
_QUARTER_NUM_RE = re.compile(r"\bq([1-4])(?:\s+(?:of\s+)?(20\d{2}))?\b")
_QUARTER_WORD_RE = re.compile(r"\b(first|second|third|fourth)\s+quarter(?:\s+(?:of\s+)?(20\d{2}))?\b")
_QUARTER_WORDS = {"first": 1, "second": 2, "third": 3, "fourth": 4}

_ISO_RE = re.compile(r"\b(20\d{2})-(\d{1,2})-(\d{1,2})\b")
_SLASH_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(20\d{2})\b")
_MONTH_DAY_RE = re.compile(
    rf"\b(?P<m>{MONTH_PATTERN})\s+(?P<d>\d{{1,2}}){_ORDINAL}(?:\s*,?\s*(?P<y>20\d{{2}}))?\b"
)
_DAY_MONTH_RE = re.compile(
    rf"\b(?P<d>\d{{1,2}}){_ORDINAL}\s+(?:of\s+)?(?P<m>{MONTH_PATTERN})(?:\s*,?\s*(?P<y>20\d{{2}}))?\b"
)
_DAY_TO_DAY_RE = re.compile(
    rf"\b(?P<m1>{MONTH_PATTERN})\s+(?P<d1>\d{{1,2}}){_ORDINAL}\s+(?:to|until|through|-)\s+"
    rf"(?:(?P<m2>{MONTH_PATTERN})\s+)?(?P<d2>\d{{1,2}}){_ORDINAL}(?:\s*,?\s*(?P<y>20\d{{2}}))?\b"
)
_EXPLICIT_RANGE_RE = re.compile(
    r"\b(?:from|between)\s+(?P<a>.+?)\s+(?:to|and|until|through)\s+(?P<b>.+?)(?=$|[,.?!]|\s+(?:for|in|by|on|with|where|shift)\b)"
)
_LAST_N_RE = re.compile(r"\b(?:last|past|previous)\s+(\d+)\s+(day|week|month|year)s?\b")

_DATEPARSER_SETTINGS = DateparserSettings().replace(
    DATE_ORDER="DMY",
    PREFER_DAY_OF_MONTH="first",
    REQUIRE_PARTS=["day", "month"],
)


@dataclass(frozen=True)
class ParsedDate:
    """A calendar constraint found in text."""

    kind: DateKind
    start: date | None = None
    end: date | None = None
    year: int | None = None
    quarter: int | None = None
    month: int | None = None
    label: str | None = None

    @property
    def month_name(self) -> str | None:
        return MONTH_NAMES[self.month - 1] if self.month else None


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last day of a month."""

    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def quarter_bounds(year: int, quarter: int) -> tuple[date, date]:
    """Return the first and last day of a calendar quarter."""

    start, _ = month_bounds(year, (quarter - 1) * 3 + 1)
    _, end = month_bounds(year, quarter * 3)
    return start, end


def _shift_months(value: date, months: int) -> date:
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    day = min(value.day, calendar.monthrange(year, month + 1)[1])
    return date(year, month + 1, day)


def _parse_fragment(fragment: str, today: date) -> date | None:
    settings = _DATEPARSER_SETTINGS.replace(
        RELATIVE_BASE=datetime.combine(today, datetime.min.time())
    )
    dt = dateparser.parse(fragment, languages=["en"], settings=settings)
    return dt.date() if dt else None


def parse_year(text: str) -> int | None:
    match = _YEAR_RE.search(text.lower())
    return int(match.group(1)) if match else None


def parse_quarter(text: str, today: date) -> ParsedDate | None:
    """Parse "Q3", "Q1 2024" or "second quarter of 2025"."""

    value = text.lower()
    match = _QUARTER_NUM_RE.search(value)
    if match:
        quarter = int(match.group(1))
        explicit_year = match.group(2)
    else:
        match = _QUARTER_WORD_RE.search(value)
        if not match:
            return None
        quarter = _QUARTER_WORDS[match.group(1)]
        explicit_year = match.group(2)

    year = int(explicit_year) if explicit_year else None
    start, end = quarter_bounds(year or today.year, quarter)
    return ParsedDate(kind="quarter", start=start, end=end, year=year, quarter=quarter)


def parse_specific_date(text: str, today: date) -> ParsedDate | None:
    """Parse a single calendar day ("2025-01-15", "January 15, 2025", "15 Jan", "15/01/2025")."""

    value = text.lower()
    for pattern in (_ISO_RE, _SLASH_RE, _MONTH_DAY_RE, _DAY_MONTH_RE):
        match = pattern.search(value)
        if not match:
            continue
        parsed = _parse_fragment(match.group(0), today)
        if parsed is None:
            continue
        has_year = _YEAR_RE.search(match.group(0)) is not None
        return ParsedDate(
            kind="single",
            start=parsed,
            end=parsed,
            year=parsed.year if has_year else None,
            month=parsed.month,
        )
    return None


def parse_relative_date(text: str, today: date) -> ParsedDate | None:
    """Parse relative periods (today, yesterday, this/last week|month|year, last N days...)."""

    value = text.lower()

    if re.search(r"\btoday\b", value):
        return ParsedDate(kind="single", start=today, end=today, label="today")

    if re.search(r"\byesterday\b", value):
        day = today - timedelta(days=1)
        return ParsedDate(kind="single", start=day, end=day, label="yesterday")

    if "this week" in value:
        start = today - timedelta(days=today.weekday())
        return ParsedDate(kind="range", start=start, end=start + timedelta(days=6), label="this_week")

    if "last week" in value:
        start = today - timedelta(days=today.weekday() + 7)
        return ParsedDate(kind="range", start=start, end=start + timedelta(days=6), label="last_week")

    if "this month" in value:
        start, end = month_bounds(today.year, today.month)
        return ParsedDate(
            kind="range", start=start, end=end, year=today.year, month=today.month, label="this_month"
        )

    if "last month" in value:
        anchor = _shift_months(today.replace(day=1), -1)
        start, end = month_bounds(anchor.year, anchor.month)
        return ParsedDate(
            kind="range", start=start, end=end, year=anchor.year, month=anchor.month, label="last_month"
        )

    if "this year" in value:
        return ParsedDate(
            kind="year",
            start=date(today.year, 1, 1),
            end=date(today.year, 12, 31),
            year=today.year,
            label="this_year",
        )

    if "last year" in value:
        year = today.year - 1
        return ParsedDate(
            kind="year", start=date(year, 1, 1), end=date(year, 12, 31), year=year, label="last_year"
        )

    match = _LAST_N_RE.search(value)
    if match:
        count = int(match.group(1))
        unit = match.group(2)
        if unit == "day":
            start = today - timedelta(days=count)
        elif unit == "week":
            start = today - timedelta(weeks=count)
        elif unit == "month":
            start = _shift_months(today, -count)
        else:
            start = _shift_months(today, -12 * count)
        return ParsedDate(kind="range", start=start, end=today, label=f"last_{count}_{unit}s")

    return None


def parse_month(text: str) -> ParsedDate | None:
    """Parse the first month name with an optional year ("March", "jan 2025")."""

    match = _MONTH_RE.search(text.lower())
    if not match:
        return None
    month = MONTHS[match.group("m")]
    year = int(match.group("y")) if match.group("y") else None
    start = end = None
    if year is not None:
        start, end = month_bounds(year, month)
    return ParsedDate(kind="month", start=start, end=end, year=year, month=month)


def _parse_endpoint(fragment: str, today: date, *, is_end: bool, year: int | None) -> date | None:
    specific = parse_specific_date(fragment, today)
    if specific is not None and specific.start is not None:
        if specific.year is None and year is not None:
            return specific.start.replace(year=year)
        return specific.start

    month = parse_month(fragment)
    if month is not None and month.month is not None:
        first, last = month_bounds(month.year or year or today.year, month.month)
        return last if is_end else first
    return None


def parse_date_range(text: str, today: date) -> ParsedDate | None:
    """Parse explicit ranges ("from January to March 2024", "jan 12th to jan 24th")."""

    value = text.lower()

    match = _DAY_TO_DAY_RE.search(value)
    if match:
        year = int(match.group("y")) if match.group("y") else today.year
        m1 = MONTHS[match.group("m1")]
        m2 = MONTHS[match.group("m2")] if match.group("m2") else m1
        try:
            start = date(year, m1, int(match.group("d1")))
            end = date(year, m2, int(match.group("d2")))
        except ValueError:
            return None
        if start > end:
            start, end = end, start
        return ParsedDate(kind="range", start=start, end=end, year=int(match.group("y")) if match.group("y") else None)

    match = _EXPLICIT_RANGE_RE.search(value)
    if not match:
        return None
    year = parse_year(value)
    start = _parse_endpoint(match.group("a"), today, is_end=False, year=year)
    end = _parse_endpoint(match.group("b"), today, is_end=True, year=year)
    if start is None or end is None:
        return None
    if start > end:
        start, end = end, start
    return ParsedDate(kind="range", start=start, end=end, year=year)


def parse_date(text: str, *, today: date | None = None) -> ParsedDate | None:
    """Parse the most specific calendar constraint found in text.

    Strategy (most specific first):
        quarter -> explicit range -> specific day -> relative period -> month -> bare year.
    """

    value = (text or "").strip()
    if not value:
        return None
    base = today or date.today()

    for parser in (parse_quarter, parse_date_range, parse_specific_date, parse_relative_date):
        parsed = parser(value, base)
        if parsed is not None:
            return parsed

    parsed = parse_month(value)
    if parsed is not None:
        return parsed

    year = parse_year(value)
    if year is not None:
        return ParsedDate(kind="year", start=date(year, 1, 1), end=date(year, 12, 31), year=year)
    return None


def all_months(text: str) -> list[int]:
    """Return distinct month numbers in order of first mention."""

    seen: list[int] = []
    for match in _MONTH_RE.finditer(text.lower()):
        month = MONTHS[match.group("m")]
        if month not in seen:
            seen.append(month)
    return seen
