"""Model-assisted routing for low-confidence questions.

The model proposes a task; its reply is validated before it is trusted. Any failure (breaker open,
timeout, transport error, malformed reply) is downgraded to `deterministic_fallback`, which derives
the task from the classified intent.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from src.config import thresholds
from src.intent.schema import Intent
from src.llm.client import CircuitOpenError, LLMClient, LLMClientError, LLMResponseError, load_prompt
from src.llm.resilience import CircuitBreaker, RetryPolicy, retry_with_backoff
from src.routing.schema import ConversationTurn, RouterDecision, RouteSource, Task

logger = logging.getLogger(__name__)

FALLBACK_SUFFIX = "Using intent-based fallback"
LOW_CONFIDENCE_SUFFIX = " (Low confidence - please confirm)"

_INTENT_TASKS: dict[Intent, Task] = {
    Intent.advisory_query: Task.retrieval,
    Intent.equipment_optimization: Task.optimization_advice,
    Intent.forecasting: Task.optimization_advice,
    Intent.target_optimization: Task.optimization_advice,
}


def intent_task(intent: Intent) -> Task:
    """Task implied by an intent alone (structured query unless advisory or optimization)."""

    return _INTENT_TASKS.get(intent, Task.structured_query)


def failure_reason(exc: BaseException) -> str:
    """Short, user-safe description of why model routing was not used."""

    if isinstance(exc, CircuitOpenError):
        return str(exc)
    if isinstance(exc, TimeoutError) or "timed out" in str(exc):
        return "LLM routing timed out"
    return f"LLM routing failed ({exc})"


def deterministic_fallback(
    decision: RouterDecision,
    failure: str,
    *,
    namespaces: Sequence[str] = ("combined",),
) -> RouterDecision:
    """Downgrade to the intent-based decision, keeping the failure in `reason`."""

    task = intent_task(decision.intent)
    return decision.model_copy(
        update={
            "task": task,
            "confidence": round(max(thresholds.FALLBACK_MIN, decision.intent_confidence), 2),
            "reason": f"{failure}. {FALLBACK_SUFFIX}",
            "namespaces": tuple(namespaces) if task == Task.retrieval else (),
            "route_source": RouteSource.deterministic,
        }
    )


def validate_routing_reply(payload: dict[str, Any]) -> tuple[Task, float, str]:
    """Check the closed task vocabulary, the confidence range and a non-empty reason.

    Raises:
        LLMResponseError: If any field is missing or out of range.
    """

    try:
        task = Task(str(payload["task"]).strip().lower())
    except (KeyError, ValueError) as exc:
        raise LLMResponseError(f"invalid task: {payload.get('task')!r}") from exc

    confidence = payload.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise LLMResponseError(f"invalid confidence: {confidence!r}")
    if not 0 <= confidence <= 1:
        raise LLMResponseError(f"confidence out of range: {confidence!r}")

    reason = payload.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise LLMResponseError("missing reason")
    return task, float(confidence), reason.strip()


def _history_block(history: Sequence[ConversationTurn]) -> str:
    lines = [f"- [{turn.task or 'unknown'}] {turn.question}" for turn in history[-3:]]
    return "\n".join(lines) if lines else "(none)"


class LLMRouter:
    """Ask the model for a routing decision through retry and the circuit breaker."""

    def __init__(
        self,
        client: LLMClient,
        breaker: CircuitBreaker,
        *,
        policy: RetryPolicy | None = None,
        namespaces: Sequence[str] = ("combined",),
    ) -> None:
        self._client = client
        self._breaker = breaker
        self._policy = policy or RetryPolicy(timeout_s=client.config.timeout_s)
        self._namespaces = tuple(namespaces)

    async def _ask(self, question: str, schema: str, history: Sequence[ConversationTurn]) -> tuple[Task, float, str]:
        request = json.dumps(
            {
                "prompt": question,
                "schema": schema,
                "history": _history_block(history),
            }
        )
        payload = await retry_with_backoff(
            lambda: self._client.chat_json(load_prompt("routing"), request),
            self._policy,
            label="llm routing",
        )
        return validate_routing_reply(payload)

    async def route(
        self,
        question: str,
        decision: RouterDecision,
        *,
        schema: str,
        history: Sequence[ConversationTurn] = (),
    ) -> RouterDecision:
        """Return the model's decision, or the deterministic fallback on any model failure."""

        try:
            task, confidence, reason = await self._breaker.call(lambda: self._ask(question, schema, history))
        except LLMClientError as exc:
            logger.warning("llm routing failed reason=%s", exc)
            return deterministic_fallback(decision, failure_reason(exc), namespaces=self._namespaces)

        if confidence < thresholds.LOW_CONFIDENCE_NOTICE:
            reason += LOW_CONFIDENCE_SUFFIX
        return decision.model_copy(
            update={
                "task": task,
                "confidence": round(confidence, 2),
                "reason": reason,
                "namespaces": self._namespaces if task == Task.retrieval else (),
                "route_source": RouteSource.llm,
            }
        )
