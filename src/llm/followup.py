"""Model assistance for merging follow-up parameters."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from src.config import thresholds
from src.intent.schema import Parameters, parameters_from_obj
from src.llm.client import LLMClient, LLMClientError, LLMResponseError, load_prompt
from src.llm.resilience import CircuitBreaker, RetryPolicy, retry_with_backoff
from src.routing.followup import FollowUpContext, merge_parameters

logger = logging.getLogger(__name__)


def needs_assistance(context: FollowUpContext) -> bool:
    """Modifications, and follow-ups detected with only moderate confidence, are worth a second opinion."""

    if context.follow_up_type == "modification":
        return True
    return thresholds.FOLLOW_UP_DETECTED <= context.confidence < thresholds.FOLLOW_UP_QUICK_CONTEXT


class FollowUpAssistant:
    """Ask the model which parameters a follow-up changes.

    The model's answer is accepted only when it reports a confidence above 0.7; otherwise (and on
    any failure) the non-assisted merge is kept. Accepted changes are merged over the non-assisted
    result, so inherited constraints survive.
    """

    def __init__(
        self,
        client: LLMClient,
        *,
        breaker: CircuitBreaker | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._breaker = breaker
        self._policy = policy or RetryPolicy(max_attempts=2, initial_delay_s=0.5, timeout_s=15.0)

    async def _ask(self, request: str) -> dict:
        async def attempt() -> dict:
            return await retry_with_backoff(
                lambda: self._client.chat_json(load_prompt("followup"), request),
                self._policy,
                label="llm follow-up",
            )

        if self._breaker is None:
            return await attempt()
        return await self._breaker.call(attempt)

    async def merge(self, question: str, context: FollowUpContext, merged: Parameters) -> Parameters:
        if not needs_assistance(context):
            return merged

        request = json.dumps(
            {
                "question": question,
                "previous_question": context.previous_question,
                "previous_intent": context.previous_intent,
                "previous_parameters": context.previous_parameters.constrained_fields(),
                "merged_parameters": merged.constrained_fields(),
            }
        )
        try:
            payload = await self._ask(request)
            confidence = payload.get("confidence")
            if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
                raise LLMResponseError(f"invalid confidence: {confidence!r}")
            if confidence <= thresholds.FOLLOW_UP_MODEL_MERGE_MIN:
                logger.debug("follow-up merge kept confidence=%.2f", confidence)
                return merged
            changes = payload.get("parameters") or {}
            if not isinstance(changes, dict):
                raise LLMResponseError("parameters must be an object")
            assisted = merge_parameters(parameters_from_obj(changes), merged)
        except ValidationError as exc:
            logger.warning("follow-up merge rejected reason=%s", exc.errors()[0].get("msg"))
            return merged
        except LLMClientError as exc:
            logger.warning("follow-up merge failed reason=%s", exc)
            return merged

        logger.debug("follow-up merge assisted fields=%s", sorted(changes))
        return assisted
