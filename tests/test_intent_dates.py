"""Tests for English date parsing (relative periods resolved against a fixed day)."""

from __future__ import annotations

from datetime import date

from src.intent.dates import all_months, month_bounds, parse_date, quarter_bounds

# A Wednesday.
TODAY = date(2025, 6, 18)


def test_last_week_is_the_previous_monday_to_sunday() -> None:
    parsed = parse_date("production last week", today=TODAY)
    assert parsed is not None
    assert parsed.kind == "range"
    assert parsed.start == date(2025, 6, 9)
    assert parsed.end == date(2025, 6, 15)
    assert parsed.label == "last_week"


def test_this_week_starts_on_monday() -> None:
    parsed = parse_date("trips this week", today=TODAY)
    assert parsed is not None
    assert (parsed.start, parsed.end) == (date(2025, 6, 16), date(2025, 6, 22))


def test_yesterday_and_last_n_days() -> None:
    yesterday = parse_date("tonnage yesterday", today=TODAY)
    assert yesterday is not None
    assert yesterday.kind == "single"
    assert yesterday.start == date(2025, 6, 17)

    last_days = parse_date("trips in the last 7 days", today=TODAY)
    assert last_days is not None
    assert (last_days.start, last_days.end) == (date(2025, 6, 11), TODAY)


def test_last_month_crosses_year_boundary() -> None:
    parsed = parse_date("production last month", today=date(2025, 1, 10))
    assert parsed is not None
    assert (parsed.start, parsed.end) == (date(2024, 12, 1), date(2024, 12, 31))
    assert (parsed.year, parsed.month) == (2024, 12)


def test_quarters_with_and_without_year() -> None:
    explicit = parse_date("tonnage in Q3 2024", today=TODAY)
    assert explicit is not None
    assert explicit.kind == "quarter"
    assert (explicit.quarter, explicit.year) == (3, 2024)
    assert (explicit.start, explicit.end) == (date(2024, 7, 1), date(2024, 9, 30))

    implicit = parse_date("second quarter production", today=TODAY)
    assert implicit is not None
    assert implicit.quarter == 2
    assert implicit.year is None
    assert implicit.start == date(2025, 4, 1)


def test_explicit_month_range() -> None:
    parsed = parse_date("from January to March 2024", today=TODAY)
    assert parsed is not None
    assert parsed.kind == "range"
    assert (parsed.start, parsed.end) == (date(2024, 1, 1), date(2024, 3, 31))
    assert parsed.year == 2024


def test_day_to_day_range_defaults_to_current_year() -> None:
    parsed = parse_date("jan 12th to jan 24th", today=TODAY)
    assert parsed is not None
    assert (parsed.start, parsed.end) == (date(2025, 1, 12), date(2025, 1, 24))
    assert parsed.year is None


def test_specific_day_with_month_name() -> None:
    parsed = parse_date("tonnage on 15 march 2025", today=TODAY)
    assert parsed is not None
    assert parsed.kind == "single"
    assert parsed.start == date(2025, 3, 15)
    assert (parsed.year, parsed.month) == (2025, 3)


def test_month_without_year_leaves_year_unset() -> None:
    parsed = parse_date("production in March", today=TODAY)
    assert parsed is not None
    assert parsed.kind == "month"
    assert parsed.month == 3
    assert parsed.month_name == "March"
    assert parsed.year is None


def test_empty_and_dateless_text() -> None:
    assert parse_date("", today=TODAY) is None
    assert parse_date("which tipper made the most trips", today=TODAY) is None


def test_month_and_quarter_bounds() -> None:
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert quarter_bounds(2025, 4) == (date(2025, 10, 1), date(2025, 12, 31))


def test_all_months_in_order_of_first_mention() -> None:
    assert all_months("compare january, march and january") == [1, 3]
    assert all_months("the market was busy") == []
