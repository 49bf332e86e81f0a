"""Hybrid intent selection: the model picks from the closed intent list when rules are unsure."""

from __future__ import annotations

import dataclasses
import json
import logging

from src.config import thresholds
from src.intent.classifier import Classification
from src.intent.schema import Intent
from src.llm.client import LLMClient, LLMClientError, load_prompt
from src.llm.resilience import CircuitBreaker, RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)

LLM_SELECTED = "llm_selected"

# Intents whose rule evidence is specific enough that the model is never consulted.
STRONG_INTENTS: frozenset[Intent] = frozenset(
    {
        Intent.statistical_query,
        Intent.ordinal_row_query,
        Intent.comparison_query,
        Intent.month_comparison,
    }
)

SELECTABLE_INTENTS: tuple[Intent, ...] = tuple(intent for intent in Intent if intent != Intent.unknown)


def needs_selection(classification: Classification) -> bool:
    return (
        classification.confidence < thresholds.HYBRID_INTENT_MAX
        and classification.intent not in STRONG_INTENTS
    )


class IntentSelector:
    """Let the model choose an intent for low-confidence classifications.

    An invalid pick (or any model failure) keeps the rule intent. A valid pick sets confidence 0.85
    and adds `llm_selected` to the matched keywords.
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
                lambda: self._client.chat_json(load_prompt("intent"), request),
                self._policy,
                label="llm intent",
            )

        if self._breaker is None:
            return await attempt()
        return await self._breaker.call(attempt)

    async def select(self, question: str, classification: Classification) -> Classification:
        if not needs_selection(classification):
            return classification

        request = json.dumps(
            {
                "question": question,
                "rule_intent": classification.intent,
                "rule_confidence": classification.confidence,
                "intents": [intent.value for intent in SELECTABLE_INTENTS],
            }
        )
        try:
            payload = await self._ask(request)
        except LLMClientError as exc:
            logger.warning("intent selection failed reason=%s", exc)
            return classification

        pick = str(payload.get("intent") or "").strip().upper()
        try:
            intent = Intent(pick)
        except ValueError:
            logger.info("intent selection ignored pick=%s", pick or "-")
            return classification
        if intent == Intent.unknown:
            return classification

        logger.debug("intent selected rule=%s llm=%s", classification.intent, intent)
        return dataclasses.replace(
            classification,
            intent=intent,
            confidence=thresholds.HYBRID_SELECTED_CONFIDENCE,
            matched_keywords=(*classification.matched_keywords, LLM_SELECTED),
        )
