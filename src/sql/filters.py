"""Reusable WHERE conditions.

Date conditions follow one priority order: a single day, then an explicit range, then month(s),
then quarter, then year. A month or quarter without a year is taken in the year of the reference
day the question was classified against.
"""

from __future__ import annotations

from datetime import date

from src.intent.schema import Comparator, NumericFilter, Parameters
from src.sql.columns import EXCAVATOR_COLUMN, TIPPER_COLUMN, equipment_column
from src.sql.query import equals_or_in, in_list, literal, month_of, year_of

_ALLOWED_OPERATORS: dict[Comparator, str] = {
    ">": ">",
    ">=": ">=",
    "<": "<",
    "<=": "<=",
    "=": "=",
}


def period_year(params: Parameters) -> int:
    """Year of the requested period: the stated year, else the year of the reference day."""

    if params.year is not None:
        return params.year
    if params.reference_year is not None:
        return params.reference_year
    return date.today().year


def month_conditions(column: str, month: int, year: int) -> list[str]:
    return [
        f"{month_of(column)} = {literal(month)}",
        f"{year_of(column)} = {literal(year)}",
    ]


def date_conditions(params: Parameters, column: str) -> list[str]:
    """Calendar conditions on `column`, or an empty list when no period was given."""

    if params.date is not None:
        return [f"{column} = {literal(params.date)}"]
    if params.date_range is not None:
        start, end = params.date_range.start_date, params.date_range.end_date
        return [f"{column} BETWEEN {literal(start)} AND {literal(end)}"]
    if len(params.months) > 1:
        return [
            in_list(month_of(column), params.months),
            f"{year_of(column)} = {literal(period_year(params))}",
        ]
    if params.month is not None:
        return month_conditions(column, params.month, period_year(params))
    if params.quarter is not None:
        first = (params.quarter - 1) * 3 + 1
        return [
            f"{month_of(column)} BETWEEN {literal(first)} AND {literal(first + 2)}",
            f"{year_of(column)} = {literal(period_year(params))}",
        ]
    if params.year is not None:
        return [f"{year_of(column)} = {literal(params.year)}"]
    return []


def shift_conditions(params: Parameters) -> list[str]:
    if not params.shifts:
        return []
    return [in_list("shift", params.shifts)]


def equipment_conditions(column: str, ids: list[str]) -> list[str]:
    if not ids:
        return []
    return [equals_or_in(column, ids)]


def exclusion_conditions(column: str, ids: list[str]) -> list[str]:
    if not ids:
        return []
    return [in_list(column, ids, negate=True)]


def numeric_conditions(column: str, numeric_filter: NumericFilter | None) -> list[str]:
    """Render a numeric constraint with an allowlisted operator."""

    if numeric_filter is None:
        return []
    if numeric_filter.op == "between":
        return [f"{column} BETWEEN {literal(numeric_filter.low)} AND {literal(numeric_filter.high)}"]
    operator = _ALLOWED_OPERATORS[numeric_filter.op]
    return [f"{column} {operator} {literal(numeric_filter.value)}"]


def equipment_exclusions(params: Parameters) -> list[str]:
    """NOT IN conditions for excluded equipment.

    Each ID is excluded on the column its prefix belongs to; an unknown prefix is excluded on both.
    """

    clauses: list[str] = []
    for column in (TIPPER_COLUMN, EXCAVATOR_COLUMN):
        ids = [i for i in params.exclude_equipment if equipment_column(i) in (column, None)]
        clauses.extend(exclusion_conditions(column, ids))
    return clauses
