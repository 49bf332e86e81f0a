"""Catch-all routing heuristics.

Used when no deterministic rule applies. The fallback never returns None: every question gets a
task so that the pipeline always terminates with a decision.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from src.intent.classifier import Classification
from src.routing.schema import RouterDecision, RouteSource, Task

logger = logging.getLogger(__name__)

_MEANINGFUL_RE = re.compile(
    r"\b(show|what|how|when|where|why|list|get|find|calculate|production|tonnage|trips|shift"
    r"|equipment|excavator|tipper|today|yesterday|month|week|compare|total|average|best|optimize"
    r"|forecast|predict)\b"
)
_ADVISORY_RE = re.compile(
    r"\b(how to|how do|how can|how should|best practice|guideline|procedure|policy|safety"
    r"|recommendation|improve|optimize|reduce|increase)\b"
)
_OPTIMIZATION_RE = re.compile(
    r"\b(which excavator|which tipper|which combination|select equipment|choose equipment"
    r"|should i pick|forecast|predict|prediction)\b"
)
_STRONG_DATA_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(show|display|list|get|fetch|retrieve|find|search|query)\b"),
    re.compile(r"\b(table|column|row|record|data|database|entries)\b"),
    re.compile(r"\b(count|sum|total|average|mean|median|max|min|aggregate)\b"),
    re.compile(r"\b(production|tonnage|trips|shift|equipment|excavator|tipper|dumper|vehicle)\b"),
    re.compile(
        r"\b(today|yesterday|this week|this month|january|february|march|april|may|june|july"
        r"|august|september|october|november|december|20\d{2})\b"
    ),
    re.compile(r"\b(compare|versus|vs|difference|higher|lower|more|less|between)\b"),
    re.compile(r"\b(where|filter|by|for|in|on|during|when)\b"),
)
_DATA_RE = re.compile(
    r"\b(select|show|list|display|get|fetch|table|from|where|data|production|trips|tonnage|shift"
    r"|equipment|row)\b"
)

REJECTED_REASON = (
    "Query too short or lacks meaningful content. Please ask a complete question about mining "
    "operations, production data, or equipment."
)


def fallback_route(
    question: str,
    classification: Classification | None = None,
    *,
    namespaces: Sequence[str] = ("combined",),
) -> RouterDecision:
    """Route a question that no rule matched.

    Strategy:
        - Too short, or a single meaningless word -> retrieval (0.3).
        - Advisory wording -> retrieval (0.75).
        - Optimization/forecast wording -> optimization advice (0.75).
        - Strong data indicators -> structured query (0.8); weaker data wording -> 0.75.
        - Otherwise retrieval (0.5), which invites model-assisted routing.
    """

    trimmed = (question or "").strip()
    text = trimmed.lower()
    words = text.split()

    if len(trimmed) < 2 or (len(words) == 1 and not _MEANINGFUL_RE.search(text)):
        task, confidence, reason, template = Task.retrieval, 0.3, REJECTED_REASON, "rejected_query_template"
    elif _ADVISORY_RE.search(text):
        task, confidence, reason, template = (
            Task.retrieval,
            0.75,
            "Detected advisory/procedural pattern (catch-all)",
            "advisory_rule_template",
        )
    elif _OPTIMIZATION_RE.search(text):
        task, confidence, reason, template = (
            Task.optimization_advice,
            0.75,
            "Detected optimization/forecasting pattern (catch-all)",
            "optimize_rule_template",
        )
    elif any(pattern.search(text) for pattern in _STRONG_DATA_RES):
        task, confidence, reason, template = (
            Task.structured_query,
            0.8,
            "Detected strong data indicators (high confidence fallback)",
            "data_retrieval_rule_template",
        )
    elif _DATA_RE.search(text):
        task, confidence, reason, template = (
            Task.structured_query,
            0.75,
            "Detected data query pattern (catch-all)",
            "data_retrieval_rule_template",
        )
    else:
        task, confidence, reason, template = (
            Task.retrieval,
            0.5,
            "Query unclear - could not determine intent. Defaulting to document retrieval.",
            "unclear_query_template",
        )

    logger.debug("fallback task=%s template=%s", task, template)
    decision = RouterDecision(
        task=task,
        confidence=confidence,
        reason=reason,
        namespaces=tuple(namespaces) if task == Task.retrieval else (),
        template_used=template,
        route_source=RouteSource.deterministic,
        original_question=question,
    )
    if classification is None:
        return decision
    return decision.model_copy(
        update={
            "intent": classification.intent,
            "intent_confidence": classification.confidence,
            "matched_keywords": classification.matched_keywords,
            "parameters": classification.parameters,
        }
    )
