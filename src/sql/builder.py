"""Deterministic query builder dispatch.

Each builder is a pure function `(Parameters, text) -> str | None` for one query shape. Dispatch
tries them in a fixed order and returns the first query; ties between shapes are settled by this
order, never by re-scoring. Identifiers (tables, columns, operators) are allowlisted and every
literal value is rendered through `src.sql.query.literal`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from src.intent.normalize import normalize_text
from src.intent.schema import Parameters
from src.sql.builders import comparison, equipment, monthly, production, ranking, shifts, statistical
from src.sql.query import SQLBuilderError

logger = logging.getLogger(__name__)

Builder = Callable[[Parameters, str], "str | None"]

BUILDERS: tuple[tuple[str, Builder], ...] = (
    ("ordinal_row", ranking.build_ordinal_row),
    ("equipment_ranking", ranking.build_equipment_ranking),
    ("equipment_combination", equipment.build_equipment_combination),
    ("equipment_specific", equipment.build_equipment_specific),
    ("statistical", statistical.build_statistical),
    ("comparison", comparison.build_comparison),
    ("shift_aggregation", shifts.build_shift_aggregation),
    ("shift_specific", shifts.build_shift_specific),
    ("efficiency_ratio", ranking.build_efficiency_ratio),
    ("top_bottom_shifts", ranking.build_top_bottom_shifts),
    ("top_production_days", ranking.build_top_production_days),
    ("monthly_summary", monthly.build_monthly_summary),
    ("month_comparison", monthly.build_month_comparison),
    ("aggregation_summary", monthly.build_aggregation_summary),
    ("heatmap", production.build_heatmap),
    ("routes_faces", production.build_routes_faces),
    ("mining_reclaim", production.build_mining_reclaim),
    ("trip_count_aggregation", production.build_trip_count_aggregation),
    ("date_range_aggregation", production.build_date_range_aggregation),
    ("generic_date_query", production.build_generic_date_query),
)


def build_query(
    params: Parameters,
    question: str,
    *,
    builders: Sequence[tuple[str, Builder]] = BUILDERS,
) -> str | None:
    """Return the query of the first builder that applies.

    Returns:
        Query text, or None when no builder recognises the question (the caller then asks the model
        to generate one).

    Raises:
        SQLBuilderError: If a builder recognised the question but produced an invalid query.
    """

    text = normalize_text(question)
    for name, builder in builders:
        query = builder(params, text)
        if query is None:
            continue
        logger.debug("builder matched name=%s", name)
        return query
    logger.debug("builder matched name=none")
    return None


def matching_builder(params: Parameters, question: str) -> str | None:
    """Name of the builder that would handle `question` (diagnostics and tests)."""

    text = normalize_text(question)
    for name, builder in BUILDERS:
        if builder(params, text) is not None:
            return name
    return None


__all__ = ["BUILDERS", "Builder", "SQLBuilderError", "build_query", "matching_builder"]
