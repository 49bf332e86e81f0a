"""Follow-up detection and parameter inheritance.

A follow-up ("and what about February?", "without BB-42", "shift B") continues the previous turn:
it inherits the previous intent and parameters, and only the constraints it mentions override them.
Inherited constraints are never silently dropped.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal

from src.config import thresholds
from src.intent.classifier import classify
from src.intent.schema import Intent, Measurement, Parameters
from src.routing.context_cache import QuickContext
from src.routing.schema import ConversationTurn, Task

FollowUpType = Literal["modification", "clarification", "constraint", "alternative"]

_CONTINUATION_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(and|but|also|plus)\s+"),
    re.compile(r"^(what if|and if|but if|suppose|assuming)\s+"),
    re.compile(r"^(what about|how about|and about)\s+"),
    re.compile(r"^(with only|with just|using only|using just|limited to|without|exclude|excluding|no|not using)\s+"),
    re.compile(r"^(then|next|now|after that|do it|run it|try it)\s+"),
    re.compile(r"^(instead|rather|alternatively|or)\s+"),
    re.compile(r"^(that|this|those|these)\s+(one|option|combination|pair)"),
    re.compile(r"^(why|how|when|where|which one)\??\s*$"),
    re.compile(r"^\s*\d+\s*(?:tons?|tonnes?|m3|trips?)\b"),
    re.compile(r"^\s*[abc]\s*$"),
    re.compile(r"^\s*shift\s*[abc]\s*$"),
    re.compile(r"^\s*[a-z]{2,}-?\d+\s+(?:broke\s*down|is\s+broken|broken|down|failed)\b"),
)
_STANDALONE_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(show|get|find|list|display|give|tell me|what is|what are|who|where is|when did)"),
    re.compile(
        r"\b(january|february|march|april|may|june|july|august|september|october|november|december)\b"
    ),
    re.compile(r"\b20\d{2}\b"),
    re.compile(r"\bshift\s+[abc]\b"),
)
_QUICK_CONTEXT_LEAD_RE = re.compile(r"^(and|but|what if|what about|with only|instead)\b")

_SHIFT_CODES = {"a": "A", "b": "B", "c": "C", "1": "A", "2": "B", "3": "C"}
_SHIFT_ONLY_RE = re.compile(r"^\s*([abc123])\s*$")
_SHIFT_PHRASE_RE = re.compile(r"\bshift\s*([abc123])\b")
_REMAINING_TRIPS_RE = re.compile(r"(\d+)\s+trips?\s+(?:left|remaining)")
_MINED_RE = re.compile(r"(\d+)\s*(tons?|tonnes?|m3)\s+(?:already\s+)?(?:mined|done|completed|produced)")
_HALF_TARGET_RE = re.compile(r"\bhalf\s+(?:the\s+)?target\b")
_BROKEN_RE = re.compile(r"\b([a-z]{2,3}-\d+)\b\s+(?:broke\s*down|is\s+broken|broken|down|failed)")
_LIMIT_RE = re.compile(r"\b(?:only|just|limited to|at most|maximum of?)\s+(\d+)\s+(\w+)")
_MINIMUM_RE = re.compile(r"\b(?:at least|minimum of?|no less than)\s+(\d+)\s+(\w+)")
_WITHOUT_RE = re.compile(r"\b(?:without|exclude|excluding|except|other than|apart from|no)\s+([a-z0-9\-\s,]+)")
_EQUIPMENT_ID_RE = re.compile(r"\b([a-z]{2,3}-\d+)\b")
_CALENDAR_FIELDS = frozenset({"quarter", "month", "month_name", "months", "date", "date_range"})


@dataclass(frozen=True)
class FollowUpContext:
    """Detection outcome plus what the follow-up inherits from the previous turn."""

    is_follow_up: bool
    confidence: float
    follow_up_type: FollowUpType | None = None
    previous_question: str | None = None
    previous_intent: Intent | None = None
    previous_task: Task | None = None
    previous_parameters: Parameters = field(default_factory=Parameters)


def _lower(text: str) -> str:
    return (text or "").strip().lower()


def follow_up_type(text: str) -> FollowUpType:
    value = _lower(text)
    if re.match(r"^(why|how|explain)", value):
        return "clarification"
    if re.search(r"\b(only|just|limited|constrain|maximum|minimum|at most|at least)\b", value):
        return "constraint"
    if re.match(r"^(what about|how about|instead|rather|alternatively)", value):
        return "alternative"
    return "modification"


def follow_up_confidence(text: str) -> float:
    """Score how strongly `text` reads as a continuation (0 when a standalone question).

    Strategy:
        - +0.6 when a continuation pattern matches; otherwise standalone wording scores 0.
        - +0.2 for 8 words or fewer.
        - +0.1 with no question mark and not starting with "show".
        - +0.1 when starting with "and"/"but".
    """

    value = _lower(text)
    if not value:
        return 0.0
    continuation = any(pattern.search(value) for pattern in _CONTINUATION_RES)
    if not continuation and any(pattern.search(value) for pattern in _STANDALONE_RES):
        return 0.0

    score = 0.0
    if continuation:
        score += 0.6
    if len(value.split()) <= 8:
        score += 0.2
    if "?" not in value and not value.startswith("show"):
        score += 0.1
    if value.startswith(("and ", "but ")):
        score += 0.1
    return round(score, 2)


def extract_follow_up_constraints(text: str) -> dict[str, Any]:
    """Extract the deltas a follow-up applies (as a partial `Parameters` update)."""

    value = _lower(text)
    update: dict[str, Any] = {}

    shift = _SHIFT_ONLY_RE.match(value) or _SHIFT_PHRASE_RE.search(value)
    if shift:
        update["shifts"] = [_SHIFT_CODES[shift.group(1)]]

    match = _REMAINING_TRIPS_RE.search(value)
    if match:
        update["remaining_trips"] = int(match.group(1))

    match = _MINED_RE.search(value)
    if match:
        unit = "m3" if match.group(2).startswith("m") else "ton"
        update["measurement"] = Measurement(value=float(match.group(1)), unit=unit)
    if _HALF_TARGET_RE.search(value):
        update["mined_fraction"] = 0.5

    excluded = [m.group(1).upper() for m in _BROKEN_RE.finditer(value)]
    match = _WITHOUT_RE.search(value)
    if match:
        excluded.extend(m.group(1).upper() for m in _EQUIPMENT_ID_RE.finditer(match.group(1)))
    if excluded:
        update["exclude_equipment"] = list(dict.fromkeys(excluded))

    match = _LIMIT_RE.search(value)
    if match:
        update["limit"] = max(1, int(match.group(1)))

    match = _MINIMUM_RE.search(value)
    if match:
        update["minimum"] = float(match.group(1))
    return update


def merge_parameters(current: Parameters, previous: Parameters, constraints: dict[str, Any] | None = None) -> Parameters:
    """Merge follow-up parameters over inherited ones.

    New fields override inherited fields; unset new fields keep inherited values. Exclusions
    accumulate rather than replace, and an excluded ID is no longer requested.
    """

    merged: dict[str, Any] = dict(previous)
    if current.model_fields_set & _CALENDAR_FIELDS:
        # A new period replaces the inherited one as a whole; the inherited year still applies.
        for name in _CALENDAR_FIELDS:
            merged[name] = Parameters.model_fields[name].get_default(call_default_factory=True)
    for name in current.model_fields_set:
        merged[name] = getattr(current, name)
    for name, value in (constraints or {}).items():
        merged[name] = value

    excluded = list(dict.fromkeys([*previous.exclude_equipment, *merged.get("exclude_equipment", [])]))
    merged["exclude_equipment"] = excluded
    merged["equipment_ids"] = [i for i in merged.get("equipment_ids", []) if i not in excluded]
    merged["is_follow_up"] = True
    return Parameters.model_validate(merged)


def _previous_from_history(history: Sequence[ConversationTurn], *, today: date | None) -> FollowUpContext:
    last = history[-1]
    previous = classify(last.question, today=today)
    return FollowUpContext(
        is_follow_up=False,
        confidence=0.0,
        previous_question=last.question,
        previous_intent=previous.intent,
        previous_task=last.task,
        previous_parameters=previous.parameters,
    )


def detect_follow_up(
    text: str,
    history: Sequence[ConversationTurn] = (),
    *,
    quick_context: QuickContext | None = None,
    today: date | None = None,
) -> FollowUpContext:
    """Decide whether `text` continues the previous turn.

    Strategy:
        1) Quick context: a fresh cached turn plus a leading "and/but/what if/what about/with only/
           instead" is a follow-up with confidence 0.8.
        2) Otherwise score the text against continuation/standalone patterns; the previous turn is
           reconstructed from history by re-classifying its question.
    """

    value = _lower(text)
    if quick_context is not None and _QUICK_CONTEXT_LEAD_RE.search(value):
        return FollowUpContext(
            is_follow_up=True,
            confidence=thresholds.FOLLOW_UP_QUICK_CONTEXT,
            follow_up_type=follow_up_type(value),
            previous_question=quick_context.question,
            previous_intent=quick_context.intent,
            previous_task=quick_context.task,
            previous_parameters=quick_context.parameters,
        )

    if not history:
        return FollowUpContext(is_follow_up=False, confidence=0.0)

    confidence = follow_up_confidence(value)
    if confidence < thresholds.FOLLOW_UP_DETECTED:
        return FollowUpContext(
            is_follow_up=False,
            confidence=confidence,
            previous_question=history[-1].question,
        )

    previous = _previous_from_history(history, today=today)
    return FollowUpContext(
        is_follow_up=True,
        confidence=confidence,
        follow_up_type=follow_up_type(value),
        previous_question=previous.previous_question,
        previous_intent=previous.previous_intent,
        previous_task=previous.previous_task,
        previous_parameters=previous.previous_parameters,
    )


def resolve_follow_up(
    text: str,
    history: Sequence[ConversationTurn] = (),
    *,
    quick_context: QuickContext | None = None,
    today: date | None = None,
) -> FollowUpContext | None:
    """Return the follow-up context for `text`, or None when it is a standalone question."""

    context = detect_follow_up(text, history, quick_context=quick_context, today=today)
    return context if context.is_follow_up else None
