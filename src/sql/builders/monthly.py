"""Monthly builders: month summaries, month rankings and aggregation summaries.

A month without a year is read as a month of the current year.
"""

from __future__ import annotations

import re

from src.intent.schema import Parameters
from src.sql import filters
from src.sql.builders.patterns import CHART_RE, SHIFT_COMPARISON_RE, SUPERLATIVE_RE, extract_limit, sort_direction
from src.sql.columns import PRODUCTION_TABLE, TRIPS_TABLE
from src.sql.query import Query, literal, month_name_case, month_of, subquery, year_of

_TOP_BOTTOM_RE = re.compile(r"top|highest|best|bottom|lowest|worst")
_NEEDS_TRIPS_RE = re.compile(r"\b(trip|trips|trip[_ ]count)\b")
_NEEDS_EQUIPMENT_RE = re.compile(r"\b(equipment|utilization|excavator|tipper|dumper|machine|vehicle)s?\b")

_MONTH_REFERENCE_RE = re.compile(r"\b(which|what|select|show|find|get|all|chart|graph).*\bmonths?\b")
_MONTH_WITH_RE = re.compile(r"\bmonths?\b.*(with|had|has|by)")
_BY_MONTH_RE = re.compile(r"\bby\s+months?\b")
_ORDERING_RE = re.compile(r"\b(order|sort|rank|arrange).*\b(by|descending|ascending|desc|asc)\b|\b(descending|ascending|desc|asc)\b")
_ALL_MONTHS_RE = re.compile(r"\ball\s+months?\b")
_MONTH_TRIPS_RE = re.compile(r"\b(trip count|trips|trip_count|total trips|number of trips)\b")


def _period(params: Parameters, column: str) -> list[str]:
    return filters.month_conditions(column, params.month, filters.period_year(params)) + filters.shift_conditions(params)


def build_monthly_summary(params: Parameters, text: str) -> str | None:
    """Totals for one month.

    Strategy:
        - Declines single-day questions, top/bottom wording and shift comparisons (other builders
          own those shapes).
        - Trip or equipment wording switches to scalar subqueries over both tables instead of a
          join, which would duplicate production rows.
    """

    if params.month is None or params.date is not None:
        return None
    if _TOP_BOTTOM_RE.search(text) or SHIFT_COMPARISON_RE.search(text):
        return None

    needs_trips = _NEEDS_TRIPS_RE.search(text) is not None
    needs_equipment = _NEEDS_EQUIPMENT_RE.search(text) is not None
    if needs_trips or needs_equipment:
        production_where = tuple(_period(params, "date"))
        trips_where = tuple(_period(params, "trip_date") + filters.equipment_exclusions(params))
        select = [
            subquery(Query(("SUM(qty_ton)",), PRODUCTION_TABLE, production_where), "total_tonnage"),
            subquery(Query(("SUM(qty_m3)",), PRODUCTION_TABLE, production_where), "total_cubic_meters"),
            subquery(Query(("COUNT(DISTINCT date)",), PRODUCTION_TABLE, production_where), "production_days"),
        ]
        if needs_trips:
            select.append(subquery(Query(("SUM(trip_count)",), TRIPS_TABLE, trips_where), "total_trips"))
        if needs_equipment:
            select.append(subquery(Query(("COUNT(DISTINCT tipper_id)",), TRIPS_TABLE, trips_where), "unique_tippers"))
            select.append(
                subquery(Query(("COUNT(DISTINCT excavator)",), TRIPS_TABLE, trips_where), "unique_excavators")
            )
        return Query(select=tuple(select), source=None).render()

    query = Query(
        select=(
            "SUM(qty_ton) AS total_tonnage",
            "SUM(qty_m3) AS total_cubic_meters",
            "AVG(qty_ton) AS avg_daily_tonnage",
            "MAX(qty_ton) AS max_daily_tonnage",
            "MIN(qty_ton) AS min_daily_tonnage",
            "COUNT(DISTINCT date) AS production_days",
        ),
        source=PRODUCTION_TABLE,
        where=tuple(_period(params, "date")),
    )
    return query.render()


def build_month_comparison(params: Parameters, text: str) -> str | None:
    """Months ranked by production or trips ("which month had the highest production").

    Charts list every month chronologically; rankings order by the total.
    """

    has_month_reference = bool(
        _MONTH_REFERENCE_RE.search(text) or _MONTH_WITH_RE.search(text) or _BY_MONTH_RE.search(text)
    )
    has_signal = bool(SUPERLATIVE_RE.search(text) or _ORDERING_RE.search(text) or _BY_MONTH_RE.search(text))
    if not (has_month_reference and has_signal):
        return None

    exclusions: list[str] = []
    if _MONTH_TRIPS_RE.search(text):
        table, column, metric, alias = TRIPS_TABLE, "trip_date", "trip_count", "total_trips"
        exclusions = filters.equipment_exclusions(params)
    else:
        table, column, metric, alias = PRODUCTION_TABLE, "date", "qty_ton", "total_tonnage"

    is_chart = CHART_RE.search(text) is not None
    limit = 12 if is_chart or _ALL_MONTHS_RE.search(text) else extract_limit(text, 1)
    month_expr = month_of(column)
    query = Query(
        select=(
            f"{month_expr} AS month_number",
            f"{month_name_case(month_expr)} AS month_name",
            f"SUM({metric}) AS {alias}",
        ),
        source=table,
        where=(f"{year_of(column)} = {literal(filters.period_year(params))}", *exclusions),
        group_by=("1",),
        order_by=("1",) if is_chart else (f"3 {sort_direction(text)}",),
        limit=limit,
    )
    return query.render()


def build_aggregation_summary(params: Parameters, text: str) -> str | None:
    """Compact totals for one month, used when the summary builder declined."""

    if params.month is None or params.date is not None:
        return None
    query = Query(
        select=(
            "SUM(qty_ton) AS total_tonnage",
            "SUM(qty_m3) AS total_cubic_meters",
            "AVG(qty_ton) AS avg_daily_tonnage",
            "COUNT(DISTINCT date) AS production_days",
        ),
        source=PRODUCTION_TABLE,
        where=tuple(_period(params, "date")),
    )
    return query.render()
