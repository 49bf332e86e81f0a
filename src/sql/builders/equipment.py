"""Equipment builders: tipper/excavator combinations and per-equipment production.

Trip summaries are the only table with equipment identifiers, so every query here reads
`trip_summary_by_date` and filters on `trip_date`.
"""

from __future__ import annotations

import re

from src.intent.schema import Parameters
from src.sql import filters
from src.sql.builders.patterns import (
    EXCAVATOR_WORD_RE,
    HOW_MANY_RE,
    MOST_TRIPS_RE,
    TIPPER_WORD_RE,
    TRIPS_RE,
    WORKED_WITH_RE,
)
from src.sql.columns import EXCAVATOR_COLUMN, TIPPER_COLUMN, TRIPS_TABLE, equipment_column
from src.sql.query import Query

_COMBINATION_RE = re.compile(
    r"\b(combinations?|combos?|pairs?|pairings?|paired|tipper and excavator|excavator and tipper"
    r"|working together|worked together)\b"
)
_PRODUCTIVE_COMBO_RE = re.compile(
    r"(most|highest|best)\s+(productive|efficient|effective).*\b(combo|combination|pair)"
    r"|\b(combo|combination|pair).*\b(most|highest|best)\s+(productive|efficient|effective)"
)
_WHICH_TIPPERS_RE = re.compile(r"which\s+(tippers?|dumpers?)\s+(made|had|did).*most\s+trips")
_WHICH_EXCAVATORS_RE = re.compile(r"which\s+excavators?\s+(made|had|did).*most\s+trips")
_PRODUCTION_WORDS_RE = re.compile(r"\b(production|tonnage|cubic|qty_ton|qty_m3|tons?|m3)\b")

_DEFAULT_LIMIT = 10


def _trip_conditions(params: Parameters) -> list[str]:
    return (
        filters.date_conditions(params, "trip_date")
        + filters.shift_conditions(params)
        + filters.equipment_exclusions(params)
    )


def build_equipment_combination(params: Parameters, text: str) -> str | None:
    """Tipper/excavator pairings.

    Strategy:
        - "most productive combination": trips per day for pairs seen on at least 2 days.
        - "which tippers made the most trips": single-type ranking.
        - Production/tonnage wording declines (trip summaries carry no tonnage).
        - "most trips": totals per pair; otherwise a per-shift, per-day breakdown.
    """

    if params.equipment_ids:
        return None
    which_tippers = _WHICH_TIPPERS_RE.search(text) is not None
    which_excavators = _WHICH_EXCAVATORS_RE.search(text) is not None
    if not (_COMBINATION_RE.search(text) or which_tippers or which_excavators):
        return None

    limit = params.limit or _DEFAULT_LIMIT
    where = tuple(_trip_conditions(params))

    if _PRODUCTIVE_COMBO_RE.search(text):
        query = Query(
            select=(
                "tipper_id",
                "excavator",
                "SUM(trip_count) AS total_trips",
                "COUNT(DISTINCT trip_date) AS days_worked",
                "ROUND(SUM(trip_count) * 1.0 / COUNT(DISTINCT trip_date), 2) AS trips_per_day",
            ),
            source=TRIPS_TABLE,
            where=where,
            group_by=("tipper_id", "excavator"),
            having=("COUNT(DISTINCT trip_date) >= 2",),
            order_by=("trips_per_day DESC",),
            limit=limit,
        )
        return query.render()

    if which_tippers or which_excavators:
        column = TIPPER_COLUMN if which_tippers else EXCAVATOR_COLUMN
        query = Query(
            select=(column, "SUM(trip_count) AS total_trips"),
            source=TRIPS_TABLE,
            where=where,
            group_by=(column,),
            order_by=("total_trips DESC",),
            limit=limit,
        )
        return query.render()

    if _PRODUCTION_WORDS_RE.search(text) and "productive" not in text:
        return None

    if MOST_TRIPS_RE.search(text):
        query = Query(
            select=("tipper_id", "excavator", "SUM(trip_count) AS total_trips"),
            source=TRIPS_TABLE,
            where=where,
            group_by=("tipper_id", "excavator"),
            order_by=("total_trips DESC",),
            limit=limit,
        )
        return query.render()

    query = Query(
        select=("tipper_id", "excavator", "shift", "trip_date", "SUM(trip_count) AS total_trips"),
        source=TRIPS_TABLE,
        where=where,
        group_by=("tipper_id", "excavator", "shift", "trip_date"),
        order_by=("total_trips DESC",),
        limit=limit,
    )
    return query.render()


def build_equipment_specific(params: Parameters, text: str) -> str | None:
    """Production of named equipment ("how many trips did BB-53 make in January")."""

    if not params.equipment_ids:
        return None

    ids = params.equipment_ids
    column = equipment_column(ids[0])
    if column is None:
        column = TIPPER_COLUMN if TIPPER_WORD_RE.search(text) else EXCAVATOR_COLUMN
    is_tipper = column == TIPPER_COLUMN
    partner = EXCAVATOR_COLUMN if is_tipper else TIPPER_COLUMN

    by_column: dict[str, list[str]] = {TIPPER_COLUMN: [], EXCAVATOR_COLUMN: []}
    for equipment_id in ids:
        by_column[equipment_column(equipment_id) or column].append(equipment_id)

    where = _trip_conditions(params)
    for name, values in by_column.items():
        where.extend(filters.equipment_conditions(name, values))

    partner_word_re = EXCAVATOR_WORD_RE if is_tipper else TIPPER_WORD_RE
    how_many = HOW_MANY_RE.search(text) is not None
    if how_many and (WORKED_WITH_RE.search(text) or partner_word_re.search(text)):
        query = Query(
            select=(f"COUNT(DISTINCT {partner}) AS partner_count",),
            source=TRIPS_TABLE,
            where=tuple(where),
        )
        return query.render()

    if TRIPS_RE.search(text) or how_many:
        query = Query(
            select=(column, "SUM(trip_count) AS total_trips", "COUNT(DISTINCT trip_date) AS active_days"),
            source=TRIPS_TABLE,
            where=tuple(where),
            group_by=(column,),
        )
        return query.render()

    query = Query(
        select=(column, partner, "SUM(trip_count) AS total_trips"),
        source=TRIPS_TABLE,
        where=tuple(where),
        group_by=(column, partner),
        order_by=("total_trips DESC",),
    )
    return query.render()
