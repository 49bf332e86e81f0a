"""Tests for the routing pipeline (deterministic path plus mocked model stages)."""

from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from src.intent.classifier import Classification
from src.intent.schema import Parameters
from src.llm.client import LLMClient, LLMConfig, LLMResponseError
from src.llm.resilience import CircuitBreaker, RetryPolicy
from src.llm.router import LLMRouter
from src.routing.pipeline import RoutingPipeline
from src.routing.schema import RouteSource, Task
from src.sql.safety import QuerySafetyError

TODAY = date(2025, 6, 18)


def _model_pipeline(model, *, breaker: CircuitBreaker | None = None, **kwargs) -> RoutingPipeline:
    client = LLMClient(LLMConfig(api_key="k"), transport=model.transport())
    router = LLMRouter(client, breaker or CircuitBreaker(), policy=RetryPolicy(max_attempts=1))
    return RoutingPipeline(llm_router=router, rules=(), **kwargs)


class StubGenerator:
    def __init__(self, result: str | Exception) -> None:
        self.result = result
        self.questions: list[str] = []

    async def generate(self, question: str, params: Parameters) -> str:
        self.questions.append(question)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class SlowStage:
    """Stands in for any model stage that never answers within the pipeline timeout."""

    async def _wait(self) -> None:
        await asyncio.sleep(1)

    async def generate(self, question: str, params: Parameters) -> str:
        await self._wait()
        return "SELECT date FROM production_summary"

    async def select(self, question: str, classification: Classification) -> Classification:
        await self._wait()
        return classification


@pytest.mark.asyncio
async def test_forecast_goes_to_optimization() -> None:
    decision = await RoutingPipeline().route_question("forecast next week production", today=TODAY)
    assert decision.task == Task.optimization_advice
    assert decision.generated_query is None


@pytest.mark.asyncio
async def test_structured_query_is_built_and_validated() -> None:
    decision = await RoutingPipeline().route_question(
        "have shift A, B, C production data with different color", today=TODAY
    )
    assert decision.task == Task.structured_query
    assert decision.generated_query == (
        "SELECT date, shift, qty_ton, qty_m3 FROM production_summary "
        "WHERE shift IN ('A', 'B', 'C') ORDER BY date, shift LIMIT 1000"
    )


@pytest.mark.asyncio
async def test_follow_up_inherits_previous_turn() -> None:
    pipeline = RoutingPipeline()
    await pipeline.route_question("total tonnage for january 2025", user_id="u1", today=TODAY)

    decision = await pipeline.route_question("and what about february", user_id="u1", today=TODAY)

    assert decision.parameters.month == 2
    assert decision.parameters.year == 2025
    assert decision.parameters.is_follow_up
    assert decision.generated_query is not None
    assert "EXTRACT(MONTH FROM date) = 2" in decision.generated_query
    assert "EXTRACT(YEAR FROM date) = 2025" in decision.generated_query


@pytest.mark.asyncio
async def test_follow_up_needs_same_user() -> None:
    pipeline = RoutingPipeline()
    await pipeline.route_question("total tonnage for january 2025", user_id="u1", today=TODAY)

    decision = await pipeline.route_question("and what about february", user_id="u2", today=TODAY)

    assert not decision.parameters.is_follow_up
    assert decision.parameters.year is None


@pytest.mark.asyncio
async def test_unrecognised_question_without_generator_has_no_query() -> None:
    decision = await RoutingPipeline().route_question("xyzzy")
    assert decision.task == Task.structured_query
    assert decision.confidence == 0.75
    assert decision.generated_query is None


@pytest.mark.asyncio
async def test_model_routing_failure_uses_intent_fallback(fake_model, reply) -> None:
    model = fake_model(reply("not json"))

    decision = await _model_pipeline(model).route_question("xyzzy")

    assert model.calls == 1
    assert decision.task == Task.structured_query
    assert decision.confidence == 0.5
    assert decision.route_source == RouteSource.deterministic
    assert decision.reason == (
        "LLM routing failed (LLM did not return valid JSON). Using intent-based fallback"
    )


@pytest.mark.asyncio
async def test_model_routing_decision_is_used(fake_model, reply) -> None:
    model = fake_model(reply('{"task": "rag", "confidence": 0.4, "reason": "Sounds like a document question"}'))

    decision = await _model_pipeline(model).route_question("xyzzy")

    assert decision.task == Task.retrieval
    assert decision.route_source == RouteSource.llm
    assert decision.confidence == 0.4
    assert decision.reason == "Sounds like a document question (Low confidence - please confirm)"
    assert decision.namespaces == ("combined",)


@pytest.mark.asyncio
async def test_open_breaker_skips_the_model(fake_model, reply) -> None:
    model = fake_model(reply('{"task": "rag", "confidence": 0.9, "reason": "r"}'))
    breaker = CircuitBreaker(failure_threshold=1)
    breaker.record_failure()

    decision = await _model_pipeline(model, breaker=breaker).route_question("xyzzy")

    assert model.calls == 0
    assert decision.reason.startswith("Circuit breaker is open")
    assert decision.reason.endswith("Using intent-based fallback")


@pytest.mark.asyncio
async def test_model_timeout_keeps_deterministic_decision(fake_model, reply) -> None:
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return reply('{"task": "rag", "confidence": 0.9, "reason": "late"}')

    model = fake_model(slow)

    decision = await _model_pipeline(model, model_timeout_s=0.05).route_question("xyzzy")

    assert decision.task == Task.structured_query
    assert decision.reason == "LLM routing timed out or was cancelled. Using intent-based fallback"


@pytest.mark.asyncio
async def test_generated_query_is_validated() -> None:
    generator = StubGenerator("SELECT date FROM production_summary")

    decision = await RoutingPipeline(generator=generator, row_limit=25).route_question("xyzzy")

    assert generator.questions == ["xyzzy"]
    assert decision.generated_query == "SELECT date FROM production_summary LIMIT 25"


@pytest.mark.asyncio
async def test_unsafe_generated_query_is_fatal() -> None:
    pipeline = RoutingPipeline(generator=StubGenerator("DROP TABLE production_summary"))
    with pytest.raises(QuerySafetyError):
        await pipeline.route_question("xyzzy")


@pytest.mark.asyncio
async def test_generation_failure_is_reported_in_reason() -> None:
    pipeline = RoutingPipeline(generator=StubGenerator(LLMResponseError("bad")))

    decision = await pipeline.route_question("xyzzy")

    assert decision.generated_query is None
    assert decision.reason.endswith("Query generation failed (bad)")


@pytest.mark.asyncio
async def test_deterministic_builders_run_before_generation() -> None:
    generator = StubGenerator("SELECT date FROM production_summary")

    await RoutingPipeline(generator=generator).route_question("production for shift B", today=TODAY)

    assert generator.questions == []


@pytest.mark.asyncio
async def test_decisions_are_cached_per_user() -> None:
    pipeline = RoutingPipeline()
    await pipeline.route_question("production for shift B", user_id="u1", today=TODAY)

    entry = pipeline.context_cache.get("u1")

    assert entry is not None
    assert entry.task == Task.structured_query
    assert entry.parameters.shifts == ["B"]


@pytest.mark.asyncio
async def test_exclusion_wording_builds_a_not_in_filter() -> None:
    decision = await RoutingPipeline().route_question("show trips in january 2025 excluding BB-44", today=TODAY)

    assert decision.parameters.exclude_equipment == ["BB-44"]
    assert decision.parameters.equipment_ids == []
    assert decision.generated_query is not None
    assert "tipper_id NOT IN ('BB-44')" in decision.generated_query
    assert "tipper_id = 'BB-44'" not in decision.generated_query


@pytest.mark.asyncio
async def test_follow_up_exclusion_drops_the_requested_equipment() -> None:
    pipeline = RoutingPipeline()
    await pipeline.route_question("how many trips did BB-44 and BB-45 make in january 2025", user_id="u1", today=TODAY)

    decision = await pipeline.route_question("and without BB-44", user_id="u1", today=TODAY)

    assert decision.parameters.equipment_ids == ["BB-45"]
    assert decision.parameters.exclude_equipment == ["BB-44"]


@pytest.mark.asyncio
async def test_month_without_year_uses_the_year_of_today() -> None:
    decision = await RoutingPipeline().route_question("show january production", today=date(2024, 6, 1))

    assert decision.generated_query is not None
    assert "EXTRACT(YEAR FROM date) = 2024" in decision.generated_query


@pytest.mark.asyncio
async def test_follow_up_keeps_the_query_shape_of_the_previous_question() -> None:
    pipeline = RoutingPipeline()
    first = await pipeline.route_question("top 5 tippers by trips in january 2025", user_id="u1", today=TODAY)
    assert first.generated_query is not None
    assert first.generated_query.startswith("SELECT tipper_id")

    decision = await pipeline.route_question("and what about february", user_id="u1", today=TODAY)

    query = decision.generated_query
    assert query is not None
    assert query.startswith("SELECT tipper_id, SUM(trip_count) AS total_trips FROM trip_summary_by_date")
    assert "EXTRACT(MONTH FROM trip_date) = 2" in query
    assert "EXTRACT(YEAR FROM trip_date) = 2025" in query
    assert query.endswith("LIMIT 5")


@pytest.mark.asyncio
async def test_generation_timeout_is_reported_in_reason() -> None:
    pipeline = RoutingPipeline(generator=SlowStage(), model_timeout_s=0.05)

    decision = await pipeline.route_question("xyzzy")

    assert decision.generated_query is None
    assert decision.reason.endswith("Query generation timed out or was cancelled")


@pytest.mark.asyncio
async def test_intent_selection_timeout_is_reported_in_reason() -> None:
    pipeline = RoutingPipeline(intent_selector=SlowStage(), model_timeout_s=0.05)

    decision = await pipeline.route_question("xyzzy")

    assert decision.task == Task.structured_query
    assert decision.reason.endswith("Intent selection timed out or was cancelled")


@pytest.mark.asyncio
async def test_cancelled_stage_does_not_propagate() -> None:
    class CancelledGenerator:
        async def generate(self, question: str, params: Parameters) -> str:
            raise asyncio.CancelledError

    pipeline = RoutingPipeline(generator=CancelledGenerator())

    decision = await pipeline.route_question("xyzzy")

    assert decision.generated_query is None
    assert decision.reason.endswith("Query generation timed out or was cancelled")
