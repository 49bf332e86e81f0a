"""Tests for two-stage query generation and hallucination fixes."""

from __future__ import annotations

import json

import pytest

from src.intent.schema import Parameters
from src.llm.client import LLMClient, LLMConfig, LLMResponseError, load_prompt
from src.llm.resilience import RetryPolicy
from src.llm.two_stage import TwoStageGenerator, fix_hallucinations, plan_from_payload, rule_based_plan
from src.sql.columns import PRODUCTION_TABLE, TRIPS_TABLE

ONE_SHOT = RetryPolicy(max_attempts=1)


def _generator(model) -> TwoStageGenerator:
    client = LLMClient(LLMConfig(api_key="k"), transport=model.transport())
    return TwoStageGenerator(client, schema_policy=ONE_SHOT, query_policy=ONE_SHOT, single_stage_policy=ONE_SHOT)


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        (
            "SELECT SUM(total_tonnage) FROM production_summary",
            "SELECT SUM(qty_ton) FROM production_summary",
        ),
        (
            "SELECT SUM(qty_ton) AS total_tonnage FROM production_summary",
            "SELECT SUM(qty_ton) AS total_tonnage FROM production_summary",
        ),
        (
            "SELECT truck_id, SUM(trips) FROM trip_summary_by_date WHERE date = '2025-01-01' GROUP BY truck_id",
            "SELECT tipper_id, SUM(trip_count) FROM trip_summary_by_date WHERE trip_date = '2025-01-01' GROUP BY tipper_id",
        ),
        (
            "SELECT trip_date, qty_ton FROM production_summary",
            "SELECT date, qty_ton FROM production_summary",
        ),
        (
            "SELECT date FROM production_summary WHERE shift = 'A' AND shift <> 'B'",
            "SELECT date FROM production_summary WHERE shift = 'A'",
        ),
    ],
)
def test_fix_hallucinations(query: str, expected: str) -> None:
    assert fix_hallucinations(query) == expected


def test_plan_validation() -> None:
    plan = plan_from_payload({"primary_table": PRODUCTION_TABLE, "columns": ["date", "qty_ton"], "limit": 5})
    assert plan.columns == ("date", "qty_ton")
    assert plan.limit == 5

    with pytest.raises(LLMResponseError, match="unknown table"):
        plan_from_payload({"primary_table": "secrets", "columns": []})
    with pytest.raises(LLMResponseError, match="unknown columns: tipper_id"):
        plan_from_payload({"primary_table": PRODUCTION_TABLE, "columns": ["tipper_id"]})
    with pytest.raises(LLMResponseError, match="invalid limit"):
        plan_from_payload({"primary_table": PRODUCTION_TABLE, "columns": [], "limit": 0})


def test_rule_based_plan_picks_table_from_wording() -> None:
    assert rule_based_plan("trips per day", Parameters()).primary_table == TRIPS_TABLE
    assert rule_based_plan("anything", Parameters(equipment_ids=["EX-1"])).primary_table == TRIPS_TABLE
    assert rule_based_plan("tonnage per day", Parameters(limit=3)).primary_table == PRODUCTION_TABLE
    assert rule_based_plan("tonnage per day", Parameters(limit=3)).limit == 3


@pytest.mark.asyncio
async def test_two_stage_generation(fake_model, reply) -> None:
    model = fake_model(
        reply(json.dumps({"primary_table": PRODUCTION_TABLE, "columns": ["date", "qty_ton"]})),
        reply("SELECT date, SUM(total_tonnage) FROM production_summary GROUP BY date"),
    )

    query = await _generator(model).generate("daily tonnage", Parameters())

    assert query == "SELECT date, SUM(qty_ton) FROM production_summary GROUP BY date"
    assert model.calls == 2
    assert model.payload(0)["messages"][0]["content"] == load_prompt("schema_stage")
    assert model.payload(1)["messages"][0]["content"] == load_prompt("query_stage")


@pytest.mark.asyncio
async def test_rejected_plan_falls_back_to_rule_plan(fake_model, reply) -> None:
    model = fake_model(
        reply(json.dumps({"primary_table": "secrets", "columns": []})),
        reply("SELECT trip_date, SUM(trip_count) FROM trip_summary_by_date GROUP BY trip_date"),
    )

    await _generator(model).generate("trips per day", Parameters())

    assert f'"primary_table": "{TRIPS_TABLE}"' in model.payload(1)["messages"][1]["content"]


@pytest.mark.asyncio
async def test_schema_stage_failure_uses_single_stage(fake_model, reply) -> None:
    model = fake_model(
        reply("", status_code=500),
        reply("```sql\nSELECT SUM(total_tonnage) FROM production_summary\n```"),
    )

    query = await _generator(model).generate("total tonnage", Parameters())

    assert query == "SELECT SUM(qty_ton) FROM production_summary"
    assert model.calls == 2
    assert model.payload(1)["messages"][0]["content"] == load_prompt("single_stage")


@pytest.mark.asyncio
async def test_empty_single_stage_reply_is_an_error(fake_model, reply) -> None:
    model = fake_model(reply("", status_code=500), reply("   "))
    with pytest.raises(LLMResponseError):
        await _generator(model).generate("total tonnage", Parameters())
