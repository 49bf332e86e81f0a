"""Shift builders: per-shift aggregation and shift-specific listings."""

from __future__ import annotations

from src.intent.schema import Parameters
from src.sql import filters
from src.sql.builders.patterns import (
    AVERAGE_RE,
    SHIFT_COMPARISON_RE,
    SHIFT_SUPERLATIVE_RE,
    SINGULAR_SHIFT_RE,
    TRIPS_RE,
    sort_direction,
)
from src.sql.columns import PRODUCTION_TABLE
from src.sql.query import Query


def build_shift_aggregation(params: Parameters, text: str) -> str | None:
    """Totals per shift ("compare shifts in January", "which shift had the highest tonnage").

    Strategy:
        - Comparisons need a period; superlatives aggregate over all data when none is given.
        - Always ordered by total tonnage; "the/which shift" superlatives return one row, "top/bottom N
          shifts" return N rows in that direction.
    """

    is_comparison = SHIFT_COMPARISON_RE.search(text) is not None
    is_superlative = SHIFT_SUPERLATIVE_RE.search(text) is not None
    if not is_comparison and not is_superlative:
        return None

    where = filters.date_conditions(params, "date")
    if not where and not is_superlative:
        return None

    wants_trips = TRIPS_RE.search(text) is not None
    select = ["shift", "SUM(qty_ton) AS total_tonnage"]
    if wants_trips:
        select.append("SUM(total_trips) AS total_trips")
    if AVERAGE_RE.search(text):
        select.append("AVG(qty_ton) AS avg_tonnage")
        if wants_trips:
            select.append("AVG(total_trips) AS avg_trips")
    select.append("COUNT(DISTINCT date) AS production_days")

    singular = is_superlative and SINGULAR_SHIFT_RE.search(text) is not None
    if params.rank_type is not None:
        direction = "ASC" if params.rank_type == "bottom" else "DESC"
    else:
        direction = sort_direction(text)
    query = Query(
        select=tuple(select),
        source=PRODUCTION_TABLE,
        where=tuple(where),
        group_by=("shift",),
        order_by=(f"total_tonnage {direction}",),
        limit=1 if singular else params.limit,
    )
    return query.render()


def build_shift_specific(params: Parameters, text: str) -> str | None:
    """Daily rows for the named shifts, ordered by date then shift (no aggregation)."""

    if not params.shifts:
        return None
    query = Query(
        select=("date", "shift", "qty_ton", "qty_m3"),
        source=PRODUCTION_TABLE,
        where=tuple(filters.date_conditions(params, "date") + filters.shift_conditions(params)),
        order_by=("date", "shift"),
    )
    return query.render()
