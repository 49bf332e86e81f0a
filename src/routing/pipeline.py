"""The request flow from question text to `RouterDecision`.

Classification, follow-up resolution, rule routing and query building are synchronous and pure. The
only suspend points are the optional model stages; each is bounded by a timeout, and a timeout or
cancellation there leaves the deterministic decision computed so far in place.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from datetime import date
from time import monotonic
from typing import TypeVar

from src.config import thresholds
from src.intent.classifier import Classification, classify
from src.llm.client import LLMClientError
from src.llm.followup import FollowUpAssistant
from src.llm.intent_selector import IntentSelector
from src.llm.router import LLMRouter, deterministic_fallback
from src.llm.two_stage import TwoStageGenerator
from src.routing.context_cache import QuickContextCache
from src.routing.fallback import fallback_route
from src.routing.followup import extract_follow_up_constraints, merge_parameters, resolve_follow_up
from src.routing.rules import RULES, Rule, route
from src.routing.schema import ConversationTurn, RouterDecision, Task
from src.sql import safety
from src.sql.builder import build_query
from src.sql.columns import describe_schema

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class _Resolved:
    """Classification plus the text builders read and notes on skipped model stages."""

    classification: Classification
    query_text: str
    notes: tuple[str, ...] = ()


def _annotate(decision: RouterDecision, note: str) -> RouterDecision:
    return decision.model_copy(update={"reason": f"{decision.reason}. {note}"})


@dataclass
class RoutingPipeline:
    """Routing dependencies; model stages are None when no model is configured."""

    context_cache: QuickContextCache = field(default_factory=QuickContextCache)
    namespaces: tuple[str, ...] = ("combined",)
    row_limit: int = safety.DEFAULT_ROW_LIMIT
    model_timeout_s: float = 30.0
    llm_router: LLMRouter | None = None
    intent_selector: IntentSelector | None = None
    followup_assistant: FollowUpAssistant | None = None
    generator: TwoStageGenerator | None = None
    rules: tuple[Rule, ...] = RULES

    async def _bounded(self, awaitable: Awaitable[T], *, stage: str) -> T | None:
        """Await a model stage; None when it timed out or was cancelled.

        Cancellation is absorbed here and the caller continues with its deterministic result, so an
        enclosing task or TaskGroup that cancelled this request does not see `CancelledError`.
        """

        try:
            return await asyncio.wait_for(awaitable, timeout=self.model_timeout_s)
        except TimeoutError:
            logger.warning("model stage timed out stage=%s timeout_s=%.1f", stage, self.model_timeout_s)
        except asyncio.CancelledError:
            logger.warning("model stage cancelled stage=%s", stage)
        return None

    async def _classify(
        self,
        question: str,
        *,
        user_id: str | None,
        history: Sequence[ConversationTurn],
        today: date | None,
    ) -> _Resolved:
        classification = classify(question, today=today)
        quick_context = self.context_cache.get(user_id) if user_id else None
        follow_up = resolve_follow_up(question, history, quick_context=quick_context, today=today)

        if follow_up is None:
            notes: tuple[str, ...] = ()
            if self.intent_selector is not None:
                selected = await self._bounded(
                    self.intent_selector.select(question, classification), stage="intent_selection"
                )
                if selected is None:
                    notes = ("Intent selection timed out or was cancelled",)
                else:
                    classification = selected
            return _Resolved(classification, question, notes)

        merged = merge_parameters(
            classification.parameters,
            follow_up.previous_parameters,
            extract_follow_up_constraints(question),
        )
        notes = ()
        if self.followup_assistant is not None:
            assisted = await self._bounded(
                self.followup_assistant.merge(question, follow_up, merged), stage="follow_up_merge"
            )
            if assisted is None:
                notes = ("Follow-up merge timed out or was cancelled",)
            else:
                merged = assisted

        intent = follow_up.previous_intent or classification.intent
        logger.debug(
            "follow-up resolved type=%s confidence=%.2f intent=%s",
            follow_up.follow_up_type,
            follow_up.confidence,
            intent,
        )
        classification = dataclasses.replace(
            classification,
            intent=intent,
            confidence=round(max(classification.confidence, thresholds.FOLLOW_UP_INHERITED_MIN), 2),
            parameters=merged,
        )
        # The follow-up only carries the delta; the query shape comes from the previous question.
        query_text = f"{follow_up.previous_question} {question}" if follow_up.previous_question else question
        return _Resolved(classification, query_text, notes)

    async def _generate(self, question: str, decision: RouterDecision) -> RouterDecision:
        query = build_query(decision.parameters, question)
        if query is None and self.generator is not None:
            try:
                query = await self._bounded(
                    self.generator.generate(question, decision.parameters), stage="query_generation"
                )
            except LLMClientError as exc:
                logger.warning("query generation failed reason=%s", exc)
                return _annotate(decision, f"Query generation failed ({exc})")
            if query is None:
                return _annotate(decision, "Query generation timed out or was cancelled")
        if query is None:
            return decision
        return decision.model_copy(update={"generated_query": safety.validate(query, row_limit=self.row_limit)})

    async def route_question(
        self,
        question: str,
        *,
        user_id: str | None = None,
        history: Sequence[ConversationTurn] = (),
        today: date | None = None,
    ) -> RouterDecision:
        """Route one question.

        Strategy:
            1) Classify; resolve a follow-up against the quick context or history (inheriting the
               previous intent and parameters), else let the model re-pick a low-confidence intent.
            2) Rule router, then the fallback router.
            3) Below MEDIUM confidence, ask the model; any failure keeps an intent-based decision.
            4) Structured queries: deterministic builders first, then model generation, then the
               safety validator.

        Raises:
            QuerySafetyError: If the query text is rejected. The request must not proceed.
        """

        started = monotonic()
        resolved = await self._classify(question, user_id=user_id, history=history, today=today)
        classification = resolved.classification

        decision = route(question, classification, namespaces=self.namespaces, rules=self.rules)
        if decision is None:
            decision = fallback_route(question, classification, namespaces=self.namespaces)

        if decision.confidence < thresholds.MEDIUM and self.llm_router is not None:
            routed = await self._bounded(
                self.llm_router.route(question, decision, schema=describe_schema(), history=history),
                stage="llm_routing",
            )
            if routed is None:
                decision = deterministic_fallback(
                    decision, "LLM routing timed out or was cancelled", namespaces=self.namespaces
                )
            else:
                decision = routed

        for note in resolved.notes:
            decision = _annotate(decision, note)

        if decision.task == Task.structured_query:
            decision = await self._generate(resolved.query_text, decision)

        if user_id:
            self.context_cache.put(
                user_id,
                intent=decision.intent,
                parameters=decision.parameters,
                task=decision.task,
                question=resolved.query_text,
            )

        logger.info(
            "routed task=%s source=%s confidence=%.2f latency_ms=%d",
            decision.task,
            decision.route_source,
            decision.confidence,
            int((monotonic() - started) * 1000),
        )
        return decision
