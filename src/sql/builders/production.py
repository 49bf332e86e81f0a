"""Production builders: heatmaps, routes and faces, mining vs reclaim, totals and date listings."""

from __future__ import annotations

import re

from src.intent.dictionaries import ROUTE_FACE_RE
from src.intent.schema import Parameters
from src.sql import filters
from src.sql.builders.patterns import HEATMAP_RE, TOTAL_M3_RE, TOTAL_TONNAGE_RE, TRIP_KEYWORD_RE
from src.sql.columns import PRODUCTION_TABLE, TRIPS_TABLE
from src.sql.query import Query, literal, month_name_case, month_of, year_of

_MONTH_WORD_RE = re.compile(r"\bmonths?\b")
_SHIFT_WORD_RE = re.compile(r"\bshifts?\b")
_EQUIPMENT_WORD_RE = re.compile(r"\b(tippers?|excavators?|equipment|vehicles?)\b")
_ROUTE_WORD_RE = re.compile(r"\b(routes?|faces?)\b")

_MINING_RE = re.compile(r"\b(mining|mine)\b")
_RECLAIM_RE = re.compile(r"\b(reclaim|reclai)\b")
_PER_DAY_RE = re.compile(r"\b(per day|daily|by date|each day)\b")
_PER_SHIFT_RE = re.compile(r"\b(per shift|by shift|each shift|shift-wise)\b")
_PER_MONTH_RE = re.compile(r"\b(per month|monthly|by month|each month)\b")
_TRIPS_WORD_RE = re.compile(r"\btrips?\b")

_ROUTES_LIMIT = 20


def build_heatmap(params: Parameters, text: str) -> str | None:
    """Two categorical dimensions and one value for a heatmap.

    Strategy:
        - shift x equipment and route x shift read trip summaries.
        - Everything else (including month x shift) reads production summaries by month name.
    """

    if not HEATMAP_RE.search(text):
        return None

    has_month = _MONTH_WORD_RE.search(text) is not None
    has_shift = _SHIFT_WORD_RE.search(text) is not None
    has_equipment = _EQUIPMENT_WORD_RE.search(text) is not None
    has_route = _ROUTE_WORD_RE.search(text) is not None
    year = filters.period_year(params)

    if has_shift and has_equipment and not has_month:
        query = Query(
            select=("shift", "tipper_id", "SUM(trip_count) AS total_trips"),
            source=TRIPS_TABLE,
            where=(f"{year_of('trip_date')} = {literal(year)}", *filters.equipment_exclusions(params)),
            group_by=("shift", "tipper_id"),
            order_by=("shift", "tipper_id"),
        )
        return query.render()
    if has_route and has_shift and not has_month:
        query = Query(
            select=("route_or_face", "shift", "SUM(trip_count) AS total_trips"),
            source=TRIPS_TABLE,
            where=(f"{year_of('trip_date')} = {literal(year)}", *filters.equipment_exclusions(params)),
            group_by=("route_or_face", "shift"),
            order_by=("route_or_face", "shift"),
        )
        return query.render()

    month_expr = month_of("date")
    query = Query(
        select=(
            f"{month_expr} AS month_number",
            f"{month_name_case(month_expr)} AS month_name",
            "shift",
            "SUM(qty_ton) AS total_tonnage",
        ),
        source=PRODUCTION_TABLE,
        where=(f"{year_of('date')} = {literal(year)}",),
        group_by=("1", "2", "3"),
        order_by=("1", "3"),
    )
    return query.render()


def build_routes_faces(params: Parameters, text: str) -> str | None:
    """Trips per route or face, most used first."""

    if params.route_or_face is None and not ROUTE_FACE_RE.search(text):
        return None
    where = (
        filters.date_conditions(params, "trip_date")
        + filters.shift_conditions(params)
        + filters.equipment_exclusions(params)
    )
    if params.route_or_face is not None:
        where.append(f"route_or_face = {literal(params.route_or_face)}")
    query = Query(
        select=("route_or_face", "SUM(trip_count) AS total_trips"),
        source=TRIPS_TABLE,
        where=tuple(where),
        group_by=("route_or_face",),
        order_by=("total_trips DESC",),
        limit=params.limit or _ROUTES_LIMIT,
    )
    return query.render()


def build_mining_reclaim(params: Parameters, text: str) -> str | None:
    """Mining trips against reclaim trips per day (default), shift or month."""

    if not (_MINING_RE.search(text) and _RECLAIM_RE.search(text) and _TRIPS_WORD_RE.search(text)):
        return None

    where = tuple(filters.date_conditions(params, "date"))
    totals = ("SUM(trip_count_for_mining) AS mining_trips", "SUM(trip_count_for_reclaim) AS reclaim_trips")
    per_shift = _PER_SHIFT_RE.search(text) is not None
    per_month = _PER_MONTH_RE.search(text) is not None

    if _PER_DAY_RE.search(text) or not (per_shift or per_month):
        query = Query(select=("date", *totals), source=PRODUCTION_TABLE, where=where, group_by=("date",), order_by=("date",))
    elif per_shift:
        query = Query(
            select=("date", "shift", *totals),
            source=PRODUCTION_TABLE,
            where=where,
            group_by=("date", "shift"),
            order_by=("date", "shift"),
        )
    else:
        month_expr = month_of("date")
        query = Query(
            select=(f"{month_expr} AS month_number", *totals),
            source=PRODUCTION_TABLE,
            where=where,
            group_by=(month_expr,),
            order_by=("month_number",),
        )
    return query.render()


def build_trip_count_aggregation(params: Parameters, text: str) -> str | None:
    """Scalar totals: cubic meters, tonnage or trips for a period.

    Tonnage and volume totals need a month; trip totals accept a month, a range or a day.
    """

    has_trip_keyword = TRIP_KEYWORD_RE.search(text) is not None
    if not has_trip_keyword and (TOTAL_M3_RE.search(text) or TOTAL_TONNAGE_RE.search(text)):
        if params.month is None:
            return None
        projection = "SUM(qty_m3) AS total_m3" if TOTAL_M3_RE.search(text) else "SUM(qty_ton) AS total_tonnage"
        query = Query(
            select=(projection,),
            source=PRODUCTION_TABLE,
            where=tuple(filters.month_conditions("date", params.month, filters.period_year(params)) + filters.shift_conditions(params)),
        )
        return query.render()

    if not has_trip_keyword:
        return None
    if params.month is not None:
        where = filters.month_conditions("trip_date", params.month, filters.period_year(params))
    elif params.date_range is not None or params.date is not None:
        where = filters.date_conditions(params, "trip_date")
    else:
        return None
    query = Query(
        select=("SUM(trip_count) AS total_trips",),
        source=TRIPS_TABLE,
        where=tuple(where + filters.shift_conditions(params) + filters.equipment_exclusions(params)),
    )
    return query.render()


def build_date_range_aggregation(params: Parameters, text: str) -> str | None:
    """Per-day, per-shift totals over an explicit or relative range."""

    if params.date_range is None:
        return None
    query = Query(
        select=("date", "shift", "SUM(qty_ton) AS total_tonnage", "SUM(qty_m3) AS total_cubic_meters"),
        source=PRODUCTION_TABLE,
        where=tuple(filters.date_conditions(params, "date") + filters.shift_conditions(params)),
        group_by=("date", "shift"),
        order_by=("date DESC",),
    )
    return query.render()


def build_generic_date_query(params: Parameters, text: str) -> str | None:
    """Production rows for any period; the last resort when a date is known."""

    where = filters.date_conditions(params, "date")
    if not where:
        return None
    query = Query(
        select=("date", "shift", "qty_ton", "qty_m3"),
        source=PRODUCTION_TABLE,
        where=tuple(
            where
            + filters.shift_conditions(params)
            + filters.numeric_conditions("qty_ton", params.numeric_filter)
        ),
        order_by=("date", "shift"),
    )
    return query.render()
