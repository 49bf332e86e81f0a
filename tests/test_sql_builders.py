"""Tests for deterministic query builders and dispatch order."""

from __future__ import annotations

from datetime import date

import pytest

from src.intent.schema import (
    Comparison,
    DateRange,
    Parameters,
    StatisticalTemplate,
    StatOperation,
)
from src.sql import filters, safety
from src.sql.builder import build_query, matching_builder
from src.sql.builders import comparison, monthly, statistical
from src.sql.query import Query, SQLBuilderError, literal


def test_literal_quoting() -> None:
    assert literal("O'Brien") == "'O''Brien'"
    assert literal(date(2025, 1, 2)) == "'2025-01-02'"
    assert literal(3.0) == "3"
    with pytest.raises(SQLBuilderError):
        literal(True)


def test_query_rejects_invalid_limit() -> None:
    with pytest.raises(SQLBuilderError):
        Query(select=("*",), source="production_summary", limit=0).render()


def test_ordinal_row() -> None:
    query = build_query(Parameters(row_number=19), "select 19th row from production summary")
    assert query == 'SELECT * FROM production_summary ORDER BY "date" ASC LIMIT 1 OFFSET 18'


def test_ordinal_row_needs_a_known_table() -> None:
    assert matching_builder(Parameters(row_number=2), "show the 2nd row") != "ordinal_row"


def test_shift_listing_has_no_grouping() -> None:
    query = build_query(
        Parameters(shifts=["A", "B", "C"]),
        "have shift A, B, C production data with different color",
    )
    assert query == (
        "SELECT date, shift, qty_ton, qty_m3 FROM production_summary "
        "WHERE shift IN ('A', 'B', 'C') ORDER BY date, shift"
    )


def test_monthly_summary_defaults_to_current_year() -> None:
    query = build_query(Parameters(month=3), "total production for march")
    assert query is not None
    assert query.startswith("SELECT SUM(qty_ton) AS total_tonnage, SUM(qty_m3) AS total_cubic_meters")
    assert "EXTRACT(MONTH FROM date) = 3" in query
    assert f"EXTRACT(YEAR FROM date) = {date.today().year}" in query


def test_monthly_summary_declines_other_shapes() -> None:
    assert monthly.build_monthly_summary(Parameters(month=3, date=date(2025, 3, 4)), "production on march 4") is None
    assert monthly.build_monthly_summary(Parameters(month=3), "top days in march") is None
    assert monthly.build_monthly_summary(Parameters(month=3), "compare shifts in march") is None


def test_monthly_summary_with_trips_uses_scalar_subqueries() -> None:
    query = monthly.build_monthly_summary(Parameters(month=3, year=2025), "summary of trips in march")
    assert query is not None
    assert query.startswith("SELECT (SELECT SUM(qty_ton) FROM production_summary WHERE")
    assert "(SELECT SUM(trip_count) FROM trip_summary_by_date WHERE EXTRACT(MONTH FROM trip_date) = 3" in query
    assert " JOIN " not in query


def test_month_ranking() -> None:
    query = build_query(Parameters(), "which month had the highest production")
    assert query is not None
    assert "AS month_name" in query
    assert f"EXTRACT(YEAR FROM date) = {date.today().year}" in query
    assert query.endswith("GROUP BY 1 ORDER BY 3 DESC LIMIT 1")


def test_equipment_ranking_by_trips() -> None:
    query = build_query(Parameters(), "which tipper made the most trips")
    assert query == (
        "SELECT tipper_id, SUM(trip_count) AS total_trips FROM trip_summary_by_date "
        "GROUP BY tipper_id ORDER BY total_trips DESC LIMIT 10"
    )


def test_productive_combinations_need_two_days() -> None:
    query = build_query(Parameters(), "most productive tipper and excavator combination")
    assert query is not None
    assert matching_builder(Parameters(), "most productive tipper and excavator combination") == "equipment_combination"
    assert "HAVING COUNT(DISTINCT trip_date) >= 2" in query
    assert "ORDER BY trips_per_day DESC LIMIT 10" in query


def test_equipment_specific_trips() -> None:
    params = Parameters(equipment_ids=["BB-53"], month=1, month_name="January", year=2025)
    query = build_query(params, "how many trips did BB-53 make in january")
    assert query == (
        "SELECT tipper_id, SUM(trip_count) AS total_trips, COUNT(DISTINCT trip_date) AS active_days "
        "FROM trip_summary_by_date WHERE EXTRACT(MONTH FROM trip_date) = 1 "
        "AND EXTRACT(YEAR FROM trip_date) = 2025 AND tipper_id = 'BB-53' GROUP BY tipper_id"
    )


def test_statistical_projections() -> None:
    template = StatisticalTemplate(operations=[StatOperation.mean, StatOperation.median], month=3)
    query = statistical.build_statistical(Parameters(statistical=template), "mean and median tonnage in march")
    assert query == (
        "SELECT ROUND(AVG(qty_ton)::numeric, 2) AS mean_qty_ton, "
        "PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY qty_ton) AS median_qty_ton "
        "FROM production_summary WHERE EXTRACT(MONTH FROM date) = 3"
    )


def test_statistical_mode_and_population_stddev() -> None:
    template = StatisticalTemplate(operations=[StatOperation.mode, StatOperation.stddev])
    query = statistical.build_statistical(Parameters(statistical=template), "mode and stddev of tonnage")
    assert query is not None
    assert "MODE() WITHIN GROUP (ORDER BY qty_ton) AS mode_qty_ton" in query
    assert "ROUND(STDDEV_POP(qty_ton)::numeric, 2) AS stddev_qty_ton" in query


def test_month_comparison_by_tonnage() -> None:
    params = Parameters(year=2025, comparison=Comparison(entity_a="january", entity_b="march", kind="month"))
    query = comparison.build_comparison(params, "compare january and march")
    assert query is not None
    assert "WHEN 1 THEN 'January' WHEN 3 THEN 'March' END AS month" in query
    assert "EXTRACT(MONTH FROM date) IN (1, 3)" in query
    assert query.endswith("ORDER BY total_tonnage DESC")


def test_equipment_comparison_by_trips() -> None:
    params = Parameters(comparison=Comparison(entity_a="EX-1", entity_b="EX-2", kind="equipment"))
    query = comparison.build_comparison(params, "ex-1 vs ex-2 trips")
    assert query == (
        "SELECT excavator, SUM(trip_count) AS total_trips FROM trip_summary_by_date "
        "WHERE excavator IN ('EX-1', 'EX-2') GROUP BY excavator ORDER BY total_trips DESC"
    )


def test_invalid_date_comparison_declines() -> None:
    params = Parameters(comparison=Comparison(entity_a="2025-02-30", entity_b="2025-03-01", kind="date"))
    assert comparison.build_comparison(params, "2025-02-30 vs 2025-03-01") is None


def test_singular_shift_superlative() -> None:
    query = build_query(Parameters(), "which shift had the highest tonnage")
    assert query == (
        "SELECT shift, SUM(qty_ton) AS total_tonnage, COUNT(DISTINCT date) AS production_days "
        "FROM production_summary GROUP BY shift ORDER BY total_tonnage DESC LIMIT 1"
    )


def test_top_days_win_over_top_shifts_without_shift_wording() -> None:
    params = Parameters(month=1, year=2025, rank_type="top", limit=5)
    assert matching_builder(params, "top 5 production days in january") == "top_production_days"
    assert build_query(params, "top 5 production days in january") == (
        "SELECT date, qty_ton FROM production_summary WHERE EXTRACT(MONTH FROM date) = 1 "
        "AND EXTRACT(YEAR FROM date) = 2025 ORDER BY qty_ton DESC LIMIT 5"
    )


def test_heatmap_by_month_and_shift() -> None:
    query = build_query(Parameters(year=2025), "heatmap of shift tonnage per month")
    assert query is not None
    assert "EXTRACT(YEAR FROM date) = 2025" in query
    assert query.endswith("GROUP BY 1, 2, 3 ORDER BY 1, 3")


def test_routes_default_limit() -> None:
    assert build_query(Parameters(), "trips per route") == (
        "SELECT route_or_face, SUM(trip_count) AS total_trips FROM trip_summary_by_date "
        "GROUP BY route_or_face ORDER BY total_trips DESC LIMIT 20"
    )


def test_mining_versus_reclaim_per_shift() -> None:
    query = build_query(Parameters(), "mining vs reclaim trips per shift")
    assert query is not None
    assert matching_builder(Parameters(), "mining vs reclaim trips per shift") == "mining_reclaim"
    assert "SUM(trip_count_for_mining) AS mining_trips" in query
    assert query.endswith("GROUP BY date, shift ORDER BY date, shift")


def test_date_range_aggregation() -> None:
    params = Parameters(date_range=DateRange(start_date=date(2025, 6, 9), end_date=date(2025, 6, 15)))
    assert build_query(params, "production last week") == (
        "SELECT date, shift, SUM(qty_ton) AS total_tonnage, SUM(qty_m3) AS total_cubic_meters "
        "FROM production_summary WHERE date BETWEEN '2025-06-09' AND '2025-06-15' "
        "GROUP BY date, shift ORDER BY date DESC"
    )


def test_top_n_shifts_returns_n_rows() -> None:
    assert build_query(Parameters(rank_type="top", limit=2), "top 2 shifts by tonnage") == (
        "SELECT shift, SUM(qty_ton) AS total_tonnage, COUNT(DISTINCT date) AS production_days "
        "FROM production_summary GROUP BY shift ORDER BY total_tonnage DESC LIMIT 2"
    )


def test_bottom_n_days_without_a_period_rank_over_all_data() -> None:
    params = Parameters(rank_type="bottom", limit=3)
    assert matching_builder(params, "bottom 3 days of production") == "top_production_days"
    assert build_query(params, "bottom 3 days of production") == (
        "SELECT date, qty_ton FROM production_summary ORDER BY qty_ton ASC LIMIT 3"
    )


def test_month_without_year_uses_the_reference_year() -> None:
    params = Parameters(month=1, reference_year=2024)
    assert filters.date_conditions(params, "date") == [
        "EXTRACT(MONTH FROM date) = 1",
        "EXTRACT(YEAR FROM date) = 2024",
    ]
    assert filters.date_conditions(params.model_copy(update={"year": 2023}), "date")[1] == (
        "EXTRACT(YEAR FROM date) = 2023"
    )


def test_excluded_equipment_becomes_not_in() -> None:
    params = Parameters(month=1, year=2025, exclude_equipment=["BB-44", "EX-3"])
    query = build_query(params, "show trips in january 2025 excluding bb-44 and ex-3")
    assert query is not None
    assert "tipper_id NOT IN ('BB-44')" in query
    assert "excavator NOT IN ('EX-3')" in query
    assert "= 'BB-44'" not in query


def test_excluded_equipment_in_a_trip_ranking() -> None:
    params = Parameters(month=1, year=2025, exclude_equipment=["BB-44"])
    query = build_query(params, "which tipper made the most trips in january 2025")
    assert query is not None
    assert query.startswith("SELECT tipper_id, SUM(trip_count) AS total_trips FROM trip_summary_by_date WHERE ")
    assert "tipper_id NOT IN ('BB-44')" in query


def test_nothing_recognised() -> None:
    assert build_query(Parameters(), "xyzzy") is None
    assert matching_builder(Parameters(), "xyzzy") is None


@pytest.mark.parametrize(
    ("params", "question"),
    [
        (Parameters(row_number=19), "select 19th row from production summary"),
        (Parameters(month=3, year=2025), "summary of trips and equipment in march"),
        (Parameters(year=2025), "which month had the highest production"),
        (Parameters(), "most productive tipper and excavator combination"),
        (Parameters(statistical=StatisticalTemplate(operations=list(StatOperation))), "statistical analysis"),
        (Parameters(year=2025), "heatmap of shift tonnage per month"),
        (Parameters(), "mining vs reclaim trips per month"),
        (Parameters(), "which shift had the highest efficiency"),
    ],
)
def test_builder_output_passes_safety_validation(params: Parameters, question: str) -> None:
    query = build_query(params, question)
    assert query is not None
    assert "LIMIT" in safety.validate(query)
