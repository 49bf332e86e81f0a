"""Retry with exponential backoff and a rolling-window circuit breaker.

The breaker wraps the whole retry sequence: one failed sequence is one breaker failure. Both are
plain service objects; the composition root creates one breaker per process and tests call
`reset()` or inject a clock.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from time import monotonic
from typing import TypeVar

from src.llm.client import CircuitOpenError, LLMTransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule and per-attempt timeout."""

    max_attempts: int = 3
    initial_delay_s: float = 1.0
    multiplier: float = 2.0
    max_delay_s: float = 10.0
    timeout_s: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("delays must be >= 0")
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")

    def delay_for(self, attempt: int) -> float:
        """Delay after the failed `attempt` (1-based)."""

        return min(self.max_delay_s, self.initial_delay_s * self.multiplier ** (attempt - 1))


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, LLMTransportError):
        return exc.retryable
    return isinstance(exc, TimeoutError)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
    label: str = "llm",
) -> T:
    """Run `operation` until it succeeds, a non-retryable error occurs or attempts run out.

    Each attempt is bounded by `policy.timeout_s`.

    Raises:
        LLMTransportError: When the last attempt timed out ("timed out" in the message) or failed
            with a transport error.
        Exception: Non-retryable errors are re-raised unchanged on first occurrence.
    """

    policy = policy or RetryPolicy()
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout_s)
        except TimeoutError as exc:
            error: Exception = LLMTransportError(f"{label} timed out after {policy.timeout_s:g}s")
            error.__cause__ = exc
        except Exception as exc:
            if not is_retryable(exc):
                raise
            error = exc

        if attempt == policy.max_attempts:
            logger.warning("retries exhausted label=%s attempts=%d error=%s", label, attempt, error)
            raise error
        delay = policy.delay_for(attempt)
        logger.info("retrying label=%s attempt=%d delay_s=%.2f error=%s", label, attempt, delay, error)
        await sleep(delay)

    raise AssertionError("unreachable")


class BreakerState(StrEnum):
    closed = "closed"
    open = "open"
    half_open = "half_open"


class CircuitBreaker:
    """Rolling-window circuit breaker.

    Strategy:
        - Closed: calls pass; failures are timestamped and pruned to the rolling window. Reaching the
          threshold opens the breaker. A success clears the failure history.
        - Open: calls are rejected with `CircuitOpenError` (no I/O) until the cool-down elapses.
        - Half-open: exactly one trial call is let through; success closes, failure re-opens.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        window_s: float = 60.0,
        cooldown_s: float = 60.0,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self._failure_threshold = failure_threshold
        self._window_s = window_s
        self._cooldown_s = cooldown_s
        self._clock = clock
        self._lock = threading.Lock()
        self._failures: list[float] = []
        self._state = BreakerState.closed
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            if self._state == BreakerState.open and self._clock() - self._opened_at >= self._cooldown_s:
                return BreakerState.half_open
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return len(self._failures)

    def before_call(self) -> None:
        """Admit a call or raise `CircuitOpenError`."""

        with self._lock:
            now = self._clock()
            if self._state == BreakerState.open:
                remaining = self._cooldown_s - (now - self._opened_at)
                if remaining > 0:
                    raise CircuitOpenError(
                        "Circuit breaker is open. Too many recent failures. "
                        f"Try again in {math.ceil(remaining)}s",
                        retry_after_s=remaining,
                    )
                self._state = BreakerState.half_open
                logger.info("breaker state=half_open")
            if self._state == BreakerState.half_open:
                if self._trial_in_flight:
                    raise CircuitOpenError("Circuit breaker is half-open. A trial call is already in progress")
                self._trial_in_flight = True

    def record_success(self) -> None:
        with self._lock:
            if self._state != BreakerState.closed:
                logger.info("breaker state=closed")
            self._failures.clear()
            self._state = BreakerState.closed
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._failures = [t for t in self._failures if now - t < self._window_s]
            self._failures.append(now)
            if self._state == BreakerState.half_open:
                self._open(now, reason="trial failed")
            elif self._state == BreakerState.closed and len(self._failures) >= self._failure_threshold:
                self._open(now, reason=f"{len(self._failures)} failures in {self._window_s:g}s")

    def _open(self, now: float, *, reason: str) -> None:
        self._state = BreakerState.open
        self._opened_at = now
        self._trial_in_flight = False
        logger.warning("breaker state=open reason=%s", reason)

    def _release_trial(self) -> None:
        with self._lock:
            self._trial_in_flight = False

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run `operation` under the breaker.

        Cancellation is neither a success nor a failure; it only frees the half-open trial slot.
        """

        self.before_call()
        try:
            result = await operation()
        except asyncio.CancelledError:
            self._release_trial()
            raise
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()
            self._state = BreakerState.closed
            self._opened_at = 0.0
            self._trial_in_flight = False
