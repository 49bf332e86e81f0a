"""Tests for retry/backoff and the circuit breaker."""

from __future__ import annotations

import asyncio

import pytest

from src.llm.client import CircuitOpenError, LLMClient, LLMConfig, LLMResponseError, LLMTransportError
from src.llm.resilience import BreakerState, CircuitBreaker, RetryPolicy, retry_with_backoff


def test_backoff_doubles_and_caps() -> None:
    policy = RetryPolicy()
    assert [policy.delay_for(attempt) for attempt in range(1, 7)] == [1, 2, 4, 8, 10, 10]


def test_policy_rejects_invalid_values() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(timeout_s=0)


@pytest.mark.asyncio
async def test_retries_transient_errors_with_backoff() -> None:
    delays: list[float] = []
    attempts = 0

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    async def operation() -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise LLMTransportError("LLM HTTP error: 503", status_code=503)
        return "ok"

    assert await retry_with_backoff(operation, RetryPolicy(), sleep=fake_sleep) == "ok"
    assert attempts == 3
    assert delays == [1.0, 2.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [LLMTransportError("LLM HTTP error: 400", status_code=400), LLMResponseError("bad json")],
)
async def test_non_retryable_errors_are_raised_immediately(error: Exception) -> None:
    attempts = 0

    async def fake_sleep(seconds: float) -> None:
        raise AssertionError("must not sleep")

    async def operation() -> str:
        nonlocal attempts
        attempts += 1
        raise error

    with pytest.raises(type(error)):
        await retry_with_backoff(operation, RetryPolicy(), sleep=fake_sleep)
    assert attempts == 1


@pytest.mark.asyncio
async def test_attempt_timeout_is_reported() -> None:
    async def operation() -> str:
        await asyncio.sleep(1)
        return "late"

    with pytest.raises(LLMTransportError, match="timed out"):
        await retry_with_backoff(operation, RetryPolicy(max_attempts=1, timeout_s=0.01))


def _open_breaker(breaker: CircuitBreaker, failures: int) -> None:
    for _ in range(failures):
        breaker.record_failure()


def test_breaker_opens_at_threshold_and_reports_wait(clock) -> None:
    breaker = CircuitBreaker(failure_threshold=3, window_s=60, cooldown_s=60, clock=clock)
    _open_breaker(breaker, 2)
    assert breaker.state == BreakerState.closed
    breaker.record_failure()
    assert breaker.state == BreakerState.open

    clock.advance(0.5)
    with pytest.raises(CircuitOpenError, match="Try again in 60s") as excinfo:
        breaker.before_call()
    assert excinfo.value.retry_after_s == pytest.approx(59.5)


def test_failures_outside_window_are_pruned(clock) -> None:
    breaker = CircuitBreaker(failure_threshold=3, window_s=60, cooldown_s=60, clock=clock)
    _open_breaker(breaker, 2)
    clock.advance(61)
    breaker.record_failure()
    assert breaker.failure_count == 1
    assert breaker.state == BreakerState.closed


def test_success_clears_failure_history(clock) -> None:
    breaker = CircuitBreaker(failure_threshold=3, clock=clock)
    _open_breaker(breaker, 2)
    breaker.record_success()
    assert breaker.failure_count == 0


def test_half_open_admits_a_single_trial(clock) -> None:
    breaker = CircuitBreaker(failure_threshold=1, cooldown_s=30, clock=clock)
    breaker.record_failure()
    clock.advance(30)
    assert breaker.state == BreakerState.half_open

    breaker.before_call()
    with pytest.raises(CircuitOpenError, match="half-open"):
        breaker.before_call()

    breaker.record_success()
    assert breaker.state == BreakerState.closed
    breaker.before_call()


def test_failed_trial_reopens(clock) -> None:
    breaker = CircuitBreaker(failure_threshold=1, cooldown_s=30, clock=clock)
    breaker.record_failure()
    clock.advance(30)
    breaker.before_call()
    breaker.record_failure()
    assert breaker.state == BreakerState.open
    with pytest.raises(CircuitOpenError, match="Try again in 30s"):
        breaker.before_call()


@pytest.mark.asyncio
async def test_cancelled_trial_frees_the_slot(clock) -> None:
    breaker = CircuitBreaker(failure_threshold=1, cooldown_s=30, clock=clock)
    breaker.record_failure()
    clock.advance(30)

    async def cancelled() -> str:
        raise asyncio.CancelledError

    with pytest.raises(asyncio.CancelledError):
        await breaker.call(cancelled)

    async def succeeds() -> str:
        return "ok"

    assert await breaker.call(succeeds) == "ok"
    assert breaker.state == BreakerState.closed


@pytest.mark.asyncio
async def test_open_breaker_makes_no_model_calls(fake_model, reply) -> None:
    model = fake_model(reply("", status_code=500))
    client = LLMClient(LLMConfig(api_key="k"), transport=model.transport())
    breaker = CircuitBreaker(failure_threshold=2)
    policy = RetryPolicy(max_attempts=1)

    async def call() -> dict:
        return await breaker.call(lambda: retry_with_backoff(lambda: client.chat_json("system", "user"), policy))

    for _ in range(2):
        with pytest.raises(LLMTransportError):
            await call()
    assert model.calls == 2

    with pytest.raises(CircuitOpenError):
        await call()
    assert model.calls == 2


def test_reset_closes_the_breaker(clock) -> None:
    breaker = CircuitBreaker(failure_threshold=1, clock=clock)
    breaker.record_failure()
    breaker.reset()
    assert breaker.state == BreakerState.closed
    breaker.before_call()
