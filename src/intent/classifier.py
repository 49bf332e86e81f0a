"""Keyword-scored, typo-tolerant intent classifier.

The classifier never raises on user input: an unrecognised question degrades to the generic
`DATA_RETRIEVAL` intent with a low (possibly zero) confidence.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date

from src.config import thresholds
from src.intent.dictionaries import (
    EQUIPMENT_ID_RE,
    INTENT_KEYWORDS,
    SPECIFIC_DAY_RE,
    STATISTICAL_RE,
    keyword_weight,
)
from src.intent.extractors import extract_parameters
from src.intent.fuzzy import exact_keyword_match, fuzzy_keyword_match, should_fuzzy_match
from src.intent.normalize import normalize_text
from src.intent.schema import Intent, Parameters, intent_tier

logger = logging.getLogger(__name__)

FUZZY_WEIGHT = 0.95
MATCH_BOOST = 1.2

_SUMMARY_WORDS_RE = re.compile(
    r"\b(monthly|month summary|month report|monthly report|summary of|report for|overview of"
    r"|breakdown by month)\b"
)
_EQUIPMENT_FOCUS_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(which|what)\s+\w*\s*(tippers?|trucks?|excavators?|equipment|vehicles?|machines?)\b"),
    re.compile(r"\b(top|best|worst)\s+\d*\s*(tippers?|trucks?|excavators?|equipment|vehicles?)\b"),
    re.compile(r"\b(tippers?|trucks?|excavators?|equipment|vehicles?)\s+(made|performed|worked|did)\b"),
)
_EXPLICIT_SUMMARY_RE = re.compile(
    r"\b(complete summary|total|sum|aggregate|aggregation|overall|entire|summary of|summary including)\b"
)
_FORECAST_WORDS_RE = re.compile(r"\b(forecast|predict|future|next month|next quarter|next year)\b")
_LEADING_RETRIEVAL_RE = re.compile(r"^(show|list|display|get|fetch|give|provide|view|see)\b")
_DATE_WORDS_RE = re.compile(
    r"\b(january|february|march|april|may|june|july|august|september|october|november|december"
    r"|jan|feb|mar|apr|jun|jul|aug|sep|oct|nov|dec|q[1-4]|last week|yesterday|today)\b"
)
_FORECAST_ANY_RE = re.compile(r"\b(forecast|predict|future|next|expected|anticipated)\b")
_FACE_WORDS_RE = re.compile(r"\b(face|faces|mining face|pit face|bench face|by face|for face)\b")
_FORECAST_NEXT_RE = re.compile(r"\b(forecast|predict|future|next)\b")
_HIGHEST_LOWEST_RE = re.compile(
    r"\b(highest|lowest|maximum|minimum|top\s+\d*\s*(tipper|excavator|equipment|day)"
    r"|had\s+the\s+(highest|lowest|most|least))\b"
)
_OPT_SIGNALS_RE = re.compile(
    r"\b(best|optimal|should i|recommend|choose|pick|select|which.*should|help me choose"
    r"|help me pick|help me select)\b"
)
_OPT_TYPO_SIGNALS_RE = re.compile(r"\b(bst|bset|optmal|optiml|shoud i|recomend|choos|pik|slect)\b")
_ACTION_VERBS_RE = re.compile(r"\b(worked|paired|contributed|used|working)\b")
_VIZ_SIGNALS_RE = re.compile(r"\b(chart|graph|plot|visuali[sz]\w*|histogram|line|bar|pie|draw)\b")
_FORECAST_SIGNALS_RE = re.compile(
    r"\b(forecast|predict|future|next|expected|projection|anticipated)\b"
)


@dataclass(frozen=True)
class Classification:
    """The outcome of classifying one question."""

    intent: Intent
    confidence: float
    matched_keywords: tuple[str, ...] = ()
    fuzzy_matches: tuple[str, ...] = ()
    parameters: Parameters = field(default_factory=Parameters)


@dataclass
class _Candidate:
    intent: Intent
    score: float
    matched: list[str] = field(default_factory=list)
    fuzzy: list[str] = field(default_factory=list)

    @property
    def tier(self) -> int:
        return intent_tier(self.intent)

    def sort_key(self) -> tuple[float, int, int, int, str]:
        return (-self.score, self.tier, -len(self.matched), -len("".join(self.matched)), self.intent.value)


def _score_intents(text: str) -> list[_Candidate]:
    candidates: list[_Candidate] = []
    for intent, keywords in INTENT_KEYWORDS.items():
        candidate = _Candidate(intent=intent, score=0.0)
        for keyword in keywords:
            if exact_keyword_match(text, keyword):
                candidate.score += keyword_weight(keyword, text)
                candidate.matched.append(keyword)
            elif should_fuzzy_match(keyword) and fuzzy_keyword_match(text, keyword):
                candidate.score += keyword_weight(keyword, text) * FUZZY_WEIGHT
                candidate.matched.append(keyword)
                candidate.fuzzy.append(keyword)
        if candidate.score > 0:
            candidates.append(candidate)
    return candidates


def _find(candidates: list[_Candidate], intent: Intent) -> _Candidate | None:
    return next((c for c in candidates if c.intent == intent), None)


def _without(candidates: list[_Candidate], *intents: Intent) -> list[_Candidate]:
    return [c for c in candidates if c.intent not in intents]


def _apply_statistical_override(text: str, candidates: list[_Candidate]) -> list[_Candidate]:
    if not STATISTICAL_RE.search(text):
        return candidates
    stat = _find(candidates, Intent.statistical_query)
    if stat is not None:
        stat.score *= 2.5
    else:
        candidates.append(
            _Candidate(intent=Intent.statistical_query, score=100.0, matched=["<statistical words detected>"])
        )
    return _without(candidates, Intent.aggregation_query, Intent.data_retrieval)


def _apply_context_filters(text: str, candidates: list[_Candidate]) -> list[_Candidate]:
    """Remove candidates contradicted by the wider wording of the question."""

    if SPECIFIC_DAY_RE.search(text):
        candidates = _without(candidates, Intent.monthly_summary)

    if _find(candidates, Intent.monthly_summary) is not None:
        has_equipment_focus = any(pattern.search(text) for pattern in _EQUIPMENT_FOCUS_RES)
        if has_equipment_focus and not _SUMMARY_WORDS_RE.search(text):
            candidates = _without(candidates, Intent.monthly_summary)

    if _find(candidates, Intent.forecasting) is not None:
        if _EXPLICIT_SUMMARY_RE.search(text) and not _FORECAST_WORDS_RE.search(text):
            candidates = _without(candidates, Intent.forecasting)

    if _find(candidates, Intent.forecasting) is not None:
        if (
            _LEADING_RETRIEVAL_RE.search(text)
            and _DATE_WORDS_RE.search(text)
            and not _FORECAST_ANY_RE.search(text)
        ):
            candidates = _without(candidates, Intent.forecasting)

    if _find(candidates, Intent.forecasting) is not None:
        if _FACE_WORDS_RE.search(text) and not _FORECAST_NEXT_RE.search(text):
            candidates = _without(candidates, Intent.forecasting)
            if _find(candidates, Intent.routes_faces_analysis) is None:
                candidates.append(
                    _Candidate(
                        intent=Intent.routes_faces_analysis,
                        score=10.0,
                        matched=["<inferred from face keyword>"],
                    )
                )
    return candidates


def _apply_tier_filters(text: str, candidates: list[_Candidate], params: Parameters) -> list[_Candidate]:
    if _find(candidates, Intent.statistical_query) is not None:
        candidates = _without(candidates, Intent.aggregation_query)

    if any(c.tier < 3 for c in candidates):
        candidates = [c for c in candidates if c.tier != 3]

    if _find(candidates, Intent.monthly_summary) is not None:
        candidates = _without(candidates, Intent.aggregation_query)

    if _find(candidates, Intent.routes_faces_analysis) is not None:
        candidates = _without(candidates, Intent.monthly_summary)

    if _find(candidates, Intent.ordinal_row_query) is not None and _HIGHEST_LOWEST_RE.search(text):
        candidates = _without(candidates, Intent.equipment_combination)

    has_equipment_ids = bool(params.equipment_ids) or EQUIPMENT_ID_RE.search(text) is not None
    has_specific = _find(candidates, Intent.equipment_specific_production) is not None
    if has_specific and has_equipment_ids:
        candidates = _without(candidates, Intent.equipment_combination)
    elif has_equipment_ids and _find(candidates, Intent.equipment_combination) is not None:
        candidates = _without(candidates, Intent.equipment_combination)
        candidates.append(
            _Candidate(
                intent=Intent.equipment_specific_production,
                score=15.0,
                matched=["<equipment ID detected>"],
            )
        )
    return candidates


def _apply_overrides(text: str, best: _Candidate, candidates: list[_Candidate]) -> _Candidate:
    """Re-target near-miss winners (combination vs optimization, forecasting vs charting)."""

    if best.intent == Intent.equipment_combination:
        has_signal = bool(_OPT_SIGNALS_RE.search(text) or _OPT_TYPO_SIGNALS_RE.search(text))
        if has_signal and not _ACTION_VERBS_RE.search(text):
            optimization = _find(candidates, Intent.equipment_optimization)
            if optimization is None:
                optimization = _Candidate(
                    intent=Intent.equipment_optimization,
                    score=0.15,
                    matched=["<inferred from optimization signals>"],
                )
            return optimization

    if best.intent == Intent.forecasting:
        if _VIZ_SIGNALS_RE.search(text) and not _FORECAST_SIGNALS_RE.search(text):
            viz = _find(candidates, Intent.chart_visualization)
            if viz is not None and viz.score >= best.score * 0.3:
                return viz
    return best


def _fallback(params: Parameters) -> Classification:
    if params.has_date_constraint or params.shifts:
        return Classification(
            intent=Intent.data_retrieval,
            confidence=0.5,
            matched_keywords=("<inferred from parameters>",),
            parameters=params,
        )
    if params.equipment_ids:
        return Classification(
            intent=Intent.equipment_specific_production,
            confidence=0.6,
            matched_keywords=("<inferred from equipment ID>",),
            parameters=params,
        )
    return Classification(intent=Intent.data_retrieval, confidence=0.0, parameters=params)


def _confidence(best: _Candidate, runner_up: _Candidate | None) -> float:
    confidence = min(1.0, best.score / thresholds.TIER_MAX_SCORE[best.tier])
    if runner_up is not None and best.score > 0:
        ratio = runner_up.score / best.score
        if ratio > thresholds.AMBIGUITY_RATIO:
            penalty = thresholds.AMBIGUITY_PENALTY_BASE + (1 - ratio) * thresholds.AMBIGUITY_PENALTY_SCALE
            confidence = min(thresholds.AMBIGUOUS_MAX, confidence * penalty)
    return round(confidence, 2)


def classify(text: str, *, today: date | None = None) -> Classification:
    """Classify a question into an intent and extract its parameters.

    Strategy:
        1) Score every intent by its matched keywords (exact, then fuzzy at 0.95 weight).
        2) Statistical override and context filters drop contradicted candidates.
        3) Boost intents that matched many of their keywords; filter generic tiers.
        4) Order by (score, tier, matched count, matched length, name); apply overrides.
        5) Normalise the score per tier and penalise close runner-ups.

    Returns:
        A `Classification`; never raises on user input.
    """

    normalized = normalize_text(text)
    params = extract_parameters(text, today=today)

    candidates = _score_intents(normalized)
    candidates = _apply_statistical_override(normalized, candidates)
    candidates = _apply_context_filters(normalized, candidates)

    if not candidates:
        result = _fallback(params)
        logger.debug("classified intent=%s confidence=%.2f source=parameters", result.intent, result.confidence)
        return result

    for candidate in candidates:
        total = len(INTENT_KEYWORDS.get(candidate.intent, ())) or 1
        if len(candidate.matched) >= 2 and len(candidate.matched) / total >= 0.3:
            candidate.score *= MATCH_BOOST

    candidates = _apply_tier_filters(normalized, candidates, params)
    candidates.sort(key=_Candidate.sort_key)

    best = candidates[0]
    runner_up = candidates[1] if len(candidates) > 1 else None
    best = _apply_overrides(normalized, best, candidates)

    result = Classification(
        intent=best.intent,
        confidence=_confidence(best, runner_up if runner_up is not best else None),
        matched_keywords=tuple(best.matched),
        fuzzy_matches=tuple(best.fuzzy),
        parameters=params,
    )
    logger.debug(
        "classified intent=%s confidence=%.2f matched=%s fuzzy=%s",
        result.intent,
        result.confidence,
        ",".join(result.matched_keywords),
        ",".join(result.fuzzy_matches) or "-",
    )
    return result
