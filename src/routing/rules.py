"""Deterministic rule router.

Rules are data: an ordered list of tagged `Rule` objects evaluated by one generic loop. Each rule
inspects the question and its classification and either returns an outcome or None; the first
outcome wins. Adding or reordering a rule is a change to `RULES`, not to control flow.

Procedural vocabulary ("how to", "best practice", "guideline", "procedure") is answered from
documents unless the question also asks for a chart or an aggregate; every other rule yields to
it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from src.config import thresholds
from src.intent.classifier import Classification
from src.intent.dictionaries import (
    ADVISORY_RE,
    AGGREGATION_RE,
    OPTIMIZE_RE,
    ROUTE_FACE_RE,
    STATISTICAL_RE,
    TARGET_RE,
    VISUALIZATION_RE,
)
from src.intent.normalize import normalize_text
from src.intent.schema import Intent, Parameters, StatisticalTemplate, StatOperation
from src.routing.schema import RouterDecision, RouteSource, Task

logger = logging.getLogger(__name__)

PROCEDURAL_RE = re.compile(
    r"\b(how to|how do i|how can i|how should i|best practices?|guidelines?|procedures?"
    r"|standard operating procedure|sop)\b"
)
_VIZ_BY_RE = re.compile(r"\b(by shift|by equipment)\b")

_OPTIMIZATION_INTENTS = frozenset(
    {Intent.equipment_optimization, Intent.target_optimization, Intent.forecasting}
)
_AGGREGATION_INTENTS = frozenset(
    {Intent.aggregation_query, Intent.comparison_query, Intent.month_comparison}
)


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at."""

    question: str
    text: str
    classification: Classification
    namespaces: tuple[str, ...]

    @property
    def intent(self) -> Intent:
        return self.classification.intent

    @property
    def params(self) -> Parameters:
        return self.classification.parameters

    @property
    def procedural_only(self) -> bool:
        """Procedural wording without any chart or aggregate wording."""

        return (
            PROCEDURAL_RE.search(self.text) is not None
            and VISUALIZATION_RE.search(self.text) is None
            and AGGREGATION_RE.search(self.text) is None
        )


@dataclass(frozen=True)
class RuleOutcome:
    """A rule's answer; the loop turns it into a `RouterDecision`."""

    task: Task
    confidence: float
    reason: str
    template: str | None = None
    parameters: Parameters | None = None
    namespaces: tuple[str, ...] = ()


@dataclass(frozen=True)
class Rule:
    """One tagged, prioritised routing rule."""

    name: str
    priority: int
    floor: float
    template: str
    decide: Callable[[RuleContext], RuleOutcome | None]


def _optimization(ctx: RuleContext) -> RuleOutcome | None:
    if ctx.procedural_only:
        return None
    if ctx.intent == Intent.target_optimization or TARGET_RE.search(ctx.text):
        return RuleOutcome(
            task=Task.optimization_advice,
            confidence=thresholds.HIGH,
            reason="Target optimization query - planning equipment allocation for a production goal",
            template="target_optimize_rule_template",
        )
    if ctx.intent in _OPTIMIZATION_INTENTS or OPTIMIZE_RE.search(ctx.text):
        return RuleOutcome(
            task=Task.optimization_advice,
            confidence=thresholds.HIGH,
            reason="Equipment optimization/forecasting query - requires the optimization model",
        )
    return None


def _ordinal_row(ctx: RuleContext) -> RuleOutcome | None:
    if ctx.params.row_number is None or ctx.procedural_only:
        return None
    return RuleOutcome(
        task=Task.structured_query,
        confidence=thresholds.VERY_HIGH,
        reason=f"Ordinal row request ({ctx.params.row_number}) - direct table access",
    )


def _equipment_combination(ctx: RuleContext) -> RuleOutcome | None:
    if ctx.intent != Intent.equipment_combination or ctx.procedural_only:
        return None
    return RuleOutcome(
        task=Task.structured_query,
        confidence=thresholds.HIGH,
        reason="Equipment combination query - analyzing equipment pairings",
    )


def _visualization(ctx: RuleContext) -> RuleOutcome | None:
    if ctx.procedural_only or not (
        ctx.intent == Intent.chart_visualization
        or VISUALIZATION_RE.search(ctx.text)
        or _VIZ_BY_RE.search(ctx.text)
    ):
        return None
    return RuleOutcome(
        task=Task.structured_query,
        confidence=thresholds.HIGH,
        reason="Visualization/chart query - needs aggregated data",
    )


def _aggregation(ctx: RuleContext) -> RuleOutcome | None:
    if ctx.procedural_only:
        return None
    if ctx.intent == Intent.statistical_query or STATISTICAL_RE.search(ctx.text):
        template = ctx.params.statistical or StatisticalTemplate(operations=list(StatOperation))
        return RuleOutcome(
            task=Task.structured_query,
            confidence=thresholds.HIGH,
            reason="Statistical query (mean, median, mode, stddev) detected",
            template="statistical_rule_template",
            parameters=ctx.params.model_copy(update={"statistical": template}),
        )
    if ctx.intent in _AGGREGATION_INTENTS or AGGREGATION_RE.search(ctx.text):
        return RuleOutcome(
            task=Task.structured_query,
            confidence=thresholds.GOOD,
            reason="Calculation/aggregation query - needs database aggregation",
        )
    return None


def _shift_or_date(ctx: RuleContext) -> RuleOutcome | None:
    params = ctx.params
    if ctx.procedural_only:
        return None
    if params.shifts or params.group_by_shift:
        label = ", ".join(params.shifts) if params.shifts else "all shifts"
        return RuleOutcome(
            task=Task.structured_query,
            confidence=thresholds.GOOD,
            reason=f"Shift-specific data retrieval for {label}",
        )
    if params.date is not None or params.date_range is not None or params.quarter is not None:
        return RuleOutcome(
            task=Task.structured_query,
            confidence=thresholds.GOOD,
            reason="Date-range data retrieval",
        )
    return None


def _specific_production(ctx: RuleContext) -> RuleOutcome | None:
    params = ctx.params
    if ctx.procedural_only:
        return None
    if params.equipment_ids:
        return RuleOutcome(
            task=Task.structured_query,
            confidence=thresholds.HIGH,
            reason=f"Equipment-specific query for: {', '.join(params.equipment_ids)}",
            template="equipment_specific_production_override",
        )
    if ctx.intent == Intent.routes_faces_analysis or ROUTE_FACE_RE.search(ctx.text):
        return RuleOutcome(
            task=Task.structured_query,
            confidence=thresholds.GOOD,
            reason="Route/face analysis - requires trip summaries",
            template="routes_faces_rule_template",
        )
    if ctx.intent == Intent.equipment_specific_production:
        return RuleOutcome(
            task=Task.structured_query,
            confidence=thresholds.GOOD,
            reason="Equipment production query",
        )
    return None


def _summary(ctx: RuleContext) -> RuleOutcome | None:
    params = ctx.params
    if ctx.procedural_only:
        return None
    if ctx.intent == Intent.monthly_summary or params.month is not None or params.months or params.year:
        if params.month is not None:
            period = f"month {params.month}"
        elif params.year is not None:
            period = f"year {params.year}"
        else:
            period = "the requested period"
        return RuleOutcome(
            task=Task.structured_query,
            confidence=thresholds.GOOD,
            reason=f"Monthly/yearly summary for {period}",
        )
    return None


def _advisory(ctx: RuleContext) -> RuleOutcome | None:
    if ctx.intent != Intent.advisory_query and not ADVISORY_RE.search(ctx.text):
        return None
    return RuleOutcome(
        task=Task.retrieval,
        confidence=thresholds.GOOD,
        reason="Advisory/procedural query - retrieving guidelines from documents",
        namespaces=ctx.namespaces,
    )


def _generic(ctx: RuleContext) -> RuleOutcome | None:
    generic_intents = (Intent.data_retrieval, Intent.monthly_summary, Intent.routes_faces_analysis)
    if ctx.intent in generic_intents or ctx.classification.confidence >= thresholds.GENERIC_RULE_MIN:
        return RuleOutcome(
            task=Task.structured_query,
            confidence=thresholds.GENERIC,
            reason="Generic data retrieval from database",
        )
    return None


RULES: tuple[Rule, ...] = (
    Rule("optimization", 1, thresholds.HIGH, "optimize_rule_template", _optimization),
    Rule("ordinal_row", 2, thresholds.VERY_HIGH, "ordinal_row_override", _ordinal_row),
    Rule("equipment_combination", 3, thresholds.HIGH, "equipment_combination_override", _equipment_combination),
    Rule("visualization", 4, thresholds.HIGH, "visualization_rule_template", _visualization),
    Rule("aggregation", 5, thresholds.GOOD, "aggregation_rule_template", _aggregation),
    Rule("shift_or_date", 6, thresholds.GOOD, "shift_date_rule_template", _shift_or_date),
    Rule("specific_production", 7, thresholds.GOOD, "specific_production_rule_template", _specific_production),
    Rule("summary", 8, thresholds.GOOD, "summary_rule_template", _summary),
    Rule("advisory", 9, thresholds.GOOD, "advisory_rule_template", _advisory),
    Rule("generic", 10, thresholds.GENERIC, "data_retrieval_rule_template", _generic),
)


def route(
    question: str,
    classification: Classification,
    *,
    namespaces: Sequence[str] = ("combined",),
    rules: Sequence[Rule] = RULES,
) -> RouterDecision | None:
    """Evaluate rules in priority order and return the first decision.

    Returns:
        A deterministic `RouterDecision`, or None when no rule applies (the caller then uses the
        fallback router).
    """

    ctx = RuleContext(
        question=question,
        text=normalize_text(question),
        classification=classification,
        namespaces=tuple(namespaces),
    )
    for rule in sorted(rules, key=lambda r: r.priority):
        outcome = rule.decide(ctx)
        if outcome is None:
            continue
        logger.debug("rule matched name=%s task=%s", rule.name, outcome.task)
        return RouterDecision(
            task=outcome.task,
            confidence=max(outcome.confidence, rule.floor),
            reason=outcome.reason,
            intent=classification.intent,
            intent_confidence=classification.confidence,
            matched_keywords=classification.matched_keywords,
            parameters=outcome.parameters or classification.parameters,
            namespaces=outcome.namespaces,
            template_used=outcome.template or rule.template,
            route_source=RouteSource.deterministic,
            original_question=question,
        )
    return None
