"""Ranking builders: ordinal rows, equipment rankings, efficiency ratios and top/bottom rows."""

from __future__ import annotations

import re

from src.intent.schema import Parameters
from src.sql import filters
from src.sql.builders.patterns import (
    BOTTOM_RE,
    CHART_RE,
    DAY_WORDS_RE,
    SUPERLATIVE_RE,
    TRIPS_RE,
    VOLUME_RE,
    WHICH_DAY_RE,
    extract_limit,
)
from src.sql.columns import (
    EQUIPMENT_TABLE,
    EXCAVATOR_COLUMN,
    ORDINAL_SORT_COLUMNS,
    PRODUCTION_TABLE,
    TIPPER_COLUMN,
    TRIPS_TABLE,
    UPLOADED_FILES_TABLE,
)
from src.sql.query import Query

_TABLE_MENTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b(?:in|from)\s+(?:the\s+)?production[\s_]summary\b"), PRODUCTION_TABLE),
    (re.compile(r"\b(?:in|from)\s+(?:the\s+)?trip[\s_]summary(?:[\s_]by[\s_]date)?\b"), TRIPS_TABLE),
    (re.compile(r"\b(?:in|from)\s+(?:the\s+)?uploaded[\s_]files?\b"), UPLOADED_FILES_TABLE),
    (re.compile(r"\b(?:in|from)\s+(?:the\s+)?equipment\b"), EQUIPMENT_TABLE),
)

_TIPPER_TRIPS_RANKING_RE = re.compile(r"\b(tipper|dumper).*\b(most|highest|maximum|max)\s+trips")
_EXCAVATOR_TRIPS_RANKING_RE = re.compile(r"\bexcavator.*\b(most|highest|maximum|max)\s+trips")
_TONNAGE_RANKING_RE = re.compile(
    r"\b(tipper|dumper|excavator).*\b(most|highest|maximum|max|top|total)\s+(tonnage|tons?|production|qty)"
)
_TOP_N_BY_METRIC_RE = re.compile(
    r"\btop\s+\d+\s+(excavators?|tippers?|dumpers?)\s+by\s+(tonnage|tons?|production|qty|trips)"
)
_TIPPER_GROUPING_RE = re.compile(r"\btrips?\s+by\s+(tipper|dumper)|\b(tipper|dumper).*\btrips?\b")
_EXCAVATOR_GROUPING_RE = re.compile(r"\btrips?\s+by\s+excavator|\bexcavator.*\btrips?\b")
_COMBINATION_WORDS_RE = re.compile(r"\b(combinations?|combos?|pairs?|pairings?|tipper and excavator|excavator and tipper)\b")
_SINGLE_EQUIPMENT_RE = re.compile(r"\bthe\s+(tipper|excavator|dumper)\b")

_EFFICIENCY_RE = re.compile(
    r"\b(efficiency|ratio|per\s*trip|productivity|tons?\s*per\s*trip|tonnes?\s*per\s*trip)\b"
)
_HIGHEST_RE = re.compile(r"\b(highest|most|best|maximum|max|top)\b")
_LOWEST_RE = re.compile(r"\b(lowest|least|worst|minimum|min|bottom)\b")


def build_ordinal_row(params: Parameters, text: str) -> str | None:
    """Nth row of an allowlisted table, e.g. "select 19th row from production summary"."""

    if params.row_number is None:
        return None
    table = next((name for pattern, name in _TABLE_MENTIONS if pattern.search(text)), None)
    if table is None:
        return None
    query = Query(
        select=("*",),
        source=table,
        order_by=(f"{ORDINAL_SORT_COLUMNS[table]} ASC",),
        limit=1,
        offset=params.row_number - 1,
    )
    return query.render()


def build_equipment_ranking(params: Parameters, text: str) -> str | None:
    """Tippers or excavators ranked by trips.

    Strategy:
        - Tonnage rankings decline: trip summaries carry no per-equipment tonnage.
        - Charts get up to 20 bars; "the tipper" gets one row; otherwise "top N" or 10.
    """

    if params.equipment_ids or _COMBINATION_WORDS_RE.search(text):
        return None
    top_n = _TOP_N_BY_METRIC_RE.search(text)
    if _TONNAGE_RANKING_RE.search(text) or (top_n and top_n.group(2) != "trips"):
        return None

    is_tipper = bool(_TIPPER_TRIPS_RANKING_RE.search(text) or _TIPPER_GROUPING_RE.search(text))
    is_excavator = bool(_EXCAVATOR_TRIPS_RANKING_RE.search(text) or _EXCAVATOR_GROUPING_RE.search(text))
    if not is_tipper and not is_excavator:
        return None

    column = TIPPER_COLUMN if is_tipper else EXCAVATOR_COLUMN
    if CHART_RE.search(text):
        limit = 20
    else:
        limit = params.limit or extract_limit(text, 1 if _SINGLE_EQUIPMENT_RE.search(text) else 10)

    query = Query(
        select=(column, "SUM(trip_count) AS total_trips"),
        source=TRIPS_TABLE,
        where=tuple(
            filters.date_conditions(params, "trip_date")
            + filters.shift_conditions(params)
            + filters.equipment_exclusions(params)
        ),
        group_by=(column,),
        order_by=("total_trips DESC",),
        limit=limit,
    )
    return query.render()


def build_efficiency_ratio(params: Parameters, text: str) -> str | None:
    """Shift rows ranked by tons per trip; needs a superlative."""

    if not _EFFICIENCY_RE.search(text):
        return None
    is_highest = _HIGHEST_RE.search(text) is not None
    is_lowest = _LOWEST_RE.search(text) is not None
    if not is_highest and not is_lowest:
        return None

    direction = "ASC" if is_lowest else "DESC"
    query = Query(
        select=(
            "date",
            "shift",
            "qty_ton",
            "total_trips",
            "(qty_ton * 1.0 / NULLIF(total_trips, 0)) AS tons_per_trip_efficiency",
        ),
        source=PRODUCTION_TABLE,
        where=tuple(
            ["total_trips > 0"]
            + filters.date_conditions(params, "date")
            + filters.shift_conditions(params)
        ),
        order_by=(f"tons_per_trip_efficiency {direction}",),
        limit=params.limit or extract_limit(text, 1),
    )
    return query.render()


def build_top_bottom_shifts(params: Parameters, text: str) -> str | None:
    """Top or bottom N shift rows ("top 5 shifts") by tonnage."""

    if params.rank_type is None or params.limit is None:
        return None
    if DAY_WORDS_RE.search(text) and "shift" not in text:
        return None

    direction = "ASC" if params.rank_type == "bottom" else "DESC"
    query = Query(
        select=("date", "shift", "qty_ton", "total_trips"),
        source=PRODUCTION_TABLE,
        where=tuple(filters.date_conditions(params, "date") + filters.shift_conditions(params)),
        order_by=(f"qty_ton {direction}",),
        limit=params.limit,
    )
    return query.render()


def build_top_production_days(params: Parameters, text: str) -> str | None:
    """Best or worst days, by tonnage, volume or trips.

    Needs a period, except for explicit "top/bottom N days" which rank over all data.
    """

    if not SUPERLATIVE_RE.search(text):
        return None
    date_where = filters.date_conditions(params, "date")
    if not date_where and params.rank_type is None:
        return None

    if params.rank_type is not None:
        direction = "ASC" if params.rank_type == "bottom" else "DESC"
    else:
        direction = "ASC" if BOTTOM_RE.search(text) else "DESC"
    limit = 1 if WHICH_DAY_RE.search(text) else (params.limit or 5)

    if TRIPS_RE.search(text):
        query = Query(
            select=("trip_date AS date", "SUM(trip_count) AS total_trips"),
            source=TRIPS_TABLE,
            where=tuple(
                filters.date_conditions(params, "trip_date")
                + filters.shift_conditions(params)
                + filters.equipment_exclusions(params)
            ),
            group_by=("trip_date",),
            order_by=(f"total_trips {direction}",),
            limit=limit,
        )
        return query.render()

    wants_volume = VOLUME_RE.search(text) is not None
    select = ("date", "qty_ton", "qty_m3") if wants_volume else ("date", "qty_ton")
    order_column = "qty_m3" if wants_volume else "qty_ton"
    query = Query(
        select=select,
        source=PRODUCTION_TABLE,
        where=tuple(
            date_where
            + filters.shift_conditions(params)
            + filters.numeric_conditions(order_column, params.numeric_filter)
        ),
        order_by=(f"{order_column} {direction}",),
        limit=limit,
    )
    return query.render()
