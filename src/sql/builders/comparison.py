"""Comparison builder: two months, shifts, pieces of equipment or dates side by side."""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass

from src.intent.dates import MONTH_NAMES, MONTHS
from src.intent.schema import Comparison, ComparisonKind, Parameters
from src.sql import filters
from src.sql.builders.patterns import PRODUCTIVITY_RE, TRIPS_RE
from src.sql.columns import EXCAVATOR_COLUMN, PRODUCTION_TABLE, TIPPER_COLUMN, TRIPS_TABLE, equipment_column
from src.sql.query import Query, in_list, literal, month_of, year_of

_EQUIPMENT_ID_RE = re.compile(r"^[A-Z]{2,4}-\d{1,4}$")


@dataclass(frozen=True)
class _Metric:
    table: str
    date_column: str
    expression: str
    alias: str


def _metric(text: str) -> _Metric:
    """Trips, trips per day (productivity) or tonnage, in that order of precedence."""

    if TRIPS_RE.search(text):
        return _Metric(TRIPS_TABLE, "trip_date", "SUM(trip_count)", "total_trips")
    if PRODUCTIVITY_RE.search(text):
        return _Metric(
            TRIPS_TABLE,
            "trip_date",
            "ROUND(SUM(trip_count) * 1.0 / COUNT(DISTINCT trip_date), 2)",
            "trips_per_day",
        )
    return _Metric(PRODUCTION_TABLE, "date", "SUM(qty_ton)", "total_tonnage")


def _month_number(entity: str) -> int | None:
    return MONTHS.get(entity.strip().lower())


def _build_month(comparison: Comparison, params: Parameters, metric: _Metric) -> str | None:
    first = _month_number(comparison.entity_a)
    second = _month_number(comparison.entity_b)
    if first is None or second is None:
        return None
    month_expr = month_of(metric.date_column)
    label = (
        f"CASE {month_expr} WHEN {first} THEN {literal(MONTH_NAMES[first - 1])} "
        f"WHEN {second} THEN {literal(MONTH_NAMES[second - 1])} END AS month"
    )
    query = Query(
        select=(label, f"{metric.expression} AS {metric.alias}"),
        source=metric.table,
        where=(
            in_list(month_expr, [first, second]),
            f"{year_of(metric.date_column)} = {literal(filters.period_year(params))}",
        ),
        group_by=(month_expr,),
        order_by=(f"{metric.alias} DESC",),
    )
    return query.render()


def _build_shift(comparison: Comparison, params: Parameters, metric: _Metric) -> str | None:
    shifts = [comparison.entity_a.upper(), comparison.entity_b.upper()]
    if any(shift not in ("A", "B", "C") for shift in shifts):
        return None
    where = filters.date_conditions(params, metric.date_column)
    if not where:
        where = [f"{year_of(metric.date_column)} = {literal(filters.period_year(params))}"]
    query = Query(
        select=("shift", f"{metric.expression} AS {metric.alias}"),
        source=metric.table,
        where=tuple([in_list("shift", shifts)] + where),
        group_by=("shift",),
        order_by=(f"{metric.alias} DESC",),
    )
    return query.render()


def _build_equipment(comparison: Comparison, params: Parameters, text: str) -> str | None:
    ids = [comparison.entity_a.upper(), comparison.entity_b.upper()]
    if not all(_EQUIPMENT_ID_RE.match(i) for i in ids):
        return None
    is_tipper = any(equipment_column(i) == TIPPER_COLUMN for i in ids)
    column = TIPPER_COLUMN if is_tipper else EXCAVATOR_COLUMN
    if PRODUCTIVITY_RE.search(text):
        expression, alias = "ROUND(SUM(trip_count) * 1.0 / COUNT(DISTINCT trip_date), 2)", "trips_per_day"
    else:
        expression, alias = "SUM(trip_count)", "total_trips"
    query = Query(
        select=(column, f"{expression} AS {alias}"),
        source=TRIPS_TABLE,
        where=tuple([in_list(column, ids)] + filters.date_conditions(params, "trip_date")),
        group_by=(column,),
        order_by=(f"{alias} DESC",),
    )
    return query.render()


def _build_date(comparison: Comparison, metric: _Metric) -> str | None:
    try:
        days = [dt.date.fromisoformat(comparison.entity_a), dt.date.fromisoformat(comparison.entity_b)]
    except ValueError:
        return None
    query = Query(
        select=(f"{metric.date_column} AS date", f"{metric.expression} AS {metric.alias}"),
        source=metric.table,
        where=(in_list(metric.date_column, days),),
        group_by=(metric.date_column,),
        order_by=(f"{metric.alias} DESC",),
    )
    return query.render()


def build_comparison(params: Parameters, text: str) -> str | None:
    """Compare the two sides of `params.comparison`.

    Returns:
        The query, or None when the comparison kind is not one of month/shift/equipment/date or a
        side cannot be resolved.
    """

    comparison = params.comparison
    if comparison is None:
        return None

    metric = _metric(text)
    if comparison.kind == ComparisonKind.month:
        return _build_month(comparison, params, metric)
    if comparison.kind == ComparisonKind.shift:
        return _build_shift(comparison, params, metric)
    if comparison.kind == ComparisonKind.equipment:
        return _build_equipment(comparison, params, text)
    if comparison.kind == ComparisonKind.date:
        return _build_date(comparison, metric)
    return None
