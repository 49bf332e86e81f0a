"""Intent-independent parameter extraction.

Each sub-extractor looks for one kind of constraint in normalized text and returns a partial update.
`extract_parameters` merges all of them into a validated `Parameters` record. The winning intent
never influences what gets extracted.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any

from src.intent.dates import MONTH_PATTERN, all_months, parse_date
from src.intent.dictionaries import EQUIPMENT_ID_RE, STATISTICAL_RE, comparator_matches
from src.intent.normalize import normalize_text
from src.intent.schema import (
    Comparison,
    ComparisonKind,
    DateRange,
    Measurement,
    NumericFilter,
    Parameters,
    StatisticalTemplate,
    StatOperation,
    StatQueryType,
)

_SHIFT_TOKEN_TO_CODE = {"a": "A", "b": "B", "c": "C", "1": "A", "2": "B", "3": "C"}
_SHIFT_RE = re.compile(r"\bshifts?\s*([abc123])\b")
_SHIFT_LIST_RE = re.compile(
    r"\bshifts?\s+([abc123])\b(?:\s*,\s*([abc123])\b)?(?:\s*,?\s*(?:and\s+)?([abc123])\b)?"
)
_BY_SHIFT_RE = re.compile(r"\b(?:by|per|each)\s+shift\b")
_RANK_RE = re.compile(r"\b(top|bottom)\s*(\d+)\b")
_ROW_RE = re.compile(r"\b(\d+)(?:st|nd|rd|th)\s+row\b")
_ORDINAL_WORDS = {"first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5}
_ROW_WORD_RE = re.compile(r"\b(first|second|third|fourth|fifth)\s+row\b")

_REPLACEMENT_RE = re.compile(
    r"\b(replace|replacement|alternative|substitute|went down|broke down|broken|unavailable"
    r"|not available|backup|instead of)\b"
)
_EXCLUSION_RE = re.compile(
    r"\b(?:excluding|exclude|except(?:\s+for)?|without|other\s+than|apart\s+from|not\s+including|but\s+not)\s+"
    r"((?:the\s+)?[a-z]{2,4}-\d{1,4}(?:\s*(?:,|&|\band\b|\bor\b)\s*[a-z]{2,4}-\d{1,4})*)"
)
_NOT_EQUIPMENT_PREFIXES = frozenset({"top", "last", "next", "past", "row", "shift"})

_ROUTE_FACE_RE = re.compile(r"\b(?:route|face|pit|bench)\s*([a-z0-9]+(?:-[a-z0-9]+)?)\b")
_ROUTE_FACE_STOPWORDS = frozenset(
    {
        "made",
        "did",
        "was",
        "is",
        "has",
        "have",
        "performed",
        "produced",
        "yielded",
        "generated",
        "analysis",
        "performance",
        "utilization",
        "efficiency",
        "summary",
        "report",
        "check",
        "list",
        "show",
        "s",
        "and",
        "or",
        "with",
        "by",
        "for",
        "in",
        "the",
    }
)
_MACHINE_RE = re.compile(r"\b(tippers?|trucks?|excavators?|dozers?|vehicles?)\b")

_NUMBER = r"(\d+(?:,\d{3})*(?:\.\d+)?)"
_BETWEEN_RE = re.compile(rf"\bbetween\s+{_NUMBER}\s+and\s+{_NUMBER}\b")
_MEASUREMENT_RE = re.compile(
    rf"\b{_NUMBER}\s*(tons?|tonnes?|trips?|meters?|metres?|kilometres?|kilometers?|km|hours?|hrs?|m3)\b"
)

_EQUIPMENT_TOKEN = r"[a-z]{2,4}-\d{1,4}"
_COMPARISON_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        rf"\bdid\s+({_EQUIPMENT_TOKEN})\s+\w+\s+(?:higher|lower|more|less|better|worse)\s+\w+\s+or\s+({_EQUIPMENT_TOKEN})\b"
    ),
    re.compile(rf"\b({_EQUIPMENT_TOKEN})\s+(?:vs\.?|versus)\s+({_EQUIPMENT_TOKEN})\b"),
    re.compile(
        r"\b(?:did\s+)?([\w-]+)\s+(?:have\s+)?(?:higher|lower|more|less|better|worse|greater)\s+\w+\s+(?:than|or)\s+([\w-]+)\b"
    ),
    re.compile(r"\b(?:shift\s+)?([abc])\s+(?:or|vs\.?|versus|more productive.*?or|better.*?or)\s+(?:shift\s+)?([abc])\b"),
    re.compile(r"\bcompare\s+([\w-]+(?:\s+[\w-]+)?)\s+(?:and|to|with|vs\.?|versus)\s+([\w-]+(?:\s+[\w-]+)?)"),
    re.compile(r"\b([\w-]+)\s+(?:vs\.?|versus)\s+([\w-]+)\b"),
    re.compile(r"\b(\w+(?:-\d+)?)\s+or\s+(\w+(?:-\d+)?)\b"),
)
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_EQUIPMENT_FULL_RE = re.compile(rf"^{_EQUIPMENT_TOKEN}$")
_MONTH_FULL_RE = re.compile(rf"^(?:{MONTH_PATTERN})$")

_STAT_ALL_RE = re.compile(r"\b(statistical analysis|calculate all|compute all|full stats)\b")
_MONTH_RANKING_RE = re.compile(r"\b(which|what)\s+month\b")
_CHART_BY_MONTH_RE = re.compile(r"\b(chart|graph|plot|visuali[sz]e)\b.*\bby\s+month\b")
_HIGH_LOW_RE = re.compile(
    r"\b(highest|lowest|maximum|minimum|biggest|smallest|greatest|least|most|top|bottom)\b"
)


def _number(value: str) -> float:
    return float(value.replace(",", ""))


def extract_dates(text: str, *, today: date | None = None) -> dict[str, Any]:
    """Calendar constraints: a single day, a range, a quarter, a month and/or a year."""

    parsed = parse_date(text, today=today)
    update: dict[str, Any] = {}
    if parsed is not None:
        if parsed.year is not None:
            update["year"] = parsed.year
        if parsed.quarter is not None:
            update["quarter"] = parsed.quarter
        if parsed.month is not None:
            update["month"] = parsed.month
            update["month_name"] = parsed.month_name
        if parsed.kind == "single" and parsed.start is not None:
            update["date"] = parsed.start
        elif parsed.kind == "range" and parsed.start is not None and parsed.end is not None:
            update["date_range"] = DateRange(start_date=parsed.start, end_date=parsed.end, label=parsed.label)

    months = all_months(text)
    if len(months) > 1:
        update["months"] = months

    if re.search(r"\bby\s+month\b", text):
        update["group_by_month"] = True
    if _MONTH_RANKING_RE.search(text):
        update["month_ranking"] = True
    if re.search(r"\ball\s+months?\b", text):
        update["all_months"] = True
        update["group_by_month"] = True
    return update


def extract_shifts(text: str) -> dict[str, Any]:
    """Shift codes ("shift A", "shifts A, B and C", "shift 2") or a by-shift grouping."""

    if "shift" not in text:
        return {}
    if _BY_SHIFT_RE.search(text):
        return {"group_by_shift": True}

    found = [_SHIFT_TOKEN_TO_CODE[m.group(1)] for m in _SHIFT_RE.finditer(text)]
    if found:
        listed = _SHIFT_LIST_RE.search(text)
        if listed:
            found.extend(_SHIFT_TOKEN_TO_CODE[token] for token in listed.groups() if token)
    shifts = list(dict.fromkeys(found))
    return {"shifts": shifts} if shifts else {}


def extract_ranking(text: str) -> dict[str, Any]:
    """top/bottom N and ordinal row selection."""

    update: dict[str, Any] = {}
    match = _RANK_RE.search(text)
    if match:
        update["rank_type"] = match.group(1)
        update["limit"] = max(1, int(match.group(2)))

    match = _ROW_RE.search(text)
    if match and int(match.group(1)) >= 1:
        update["row_number"] = int(match.group(1))
    else:
        word = _ROW_WORD_RE.search(text)
        if word:
            update["row_number"] = _ORDINAL_WORDS[word.group(1)]
    return update


def _equipment_ids(text: str) -> list[str]:
    ids: list[str] = []
    for match in EQUIPMENT_ID_RE.finditer(text):
        if match.group(1).lower() in _NOT_EQUIPMENT_PREFIXES:
            continue
        ids.append(f"{match.group(1).upper()}-{match.group(2)}")
    return list(dict.fromkeys(ids))


def extract_equipment(text: str) -> dict[str, Any]:
    """Equipment IDs, exclusions, replacement requests and machine types.

    IDs named after "excluding/except/without/other than" and the broken-down ID of a replacement
    request go to `exclude_equipment`; only the remaining IDs are requested.
    """

    update: dict[str, Any] = {}
    ids = _equipment_ids(text)
    excluded: list[str] = []
    for match in _EXCLUSION_RE.finditer(text):
        excluded.extend(_equipment_ids(match.group(1)))
    if ids and _REPLACEMENT_RE.search(text):
        excluded.insert(0, ids[0])
        if ids[0].startswith(("BB-", "DT-")):
            update["replacement_type"] = "tipper"
        elif ids[0].startswith("EX-"):
            update["replacement_type"] = "excavator"

    excluded = list(dict.fromkeys(excluded))
    requested = [i for i in ids if i not in excluded]
    if requested:
        update["equipment_ids"] = requested
    if excluded:
        update["exclude_equipment"] = excluded

    machines = [m.group(1).removesuffix("s") for m in _MACHINE_RE.finditer(text)]
    if machines:
        update["machine_types"] = list(dict.fromkeys(machines))
    return update


def extract_route_or_face(text: str) -> dict[str, Any]:
    match = _ROUTE_FACE_RE.search(text)
    if not match:
        return {}
    name = match.group(1)
    if name in _ROUTE_FACE_STOPWORDS:
        return {}
    return {"route_or_face": name.upper()}


def extract_numeric_filter(text: str) -> dict[str, Any]:
    """Numeric constraints ("more than 500", "at least 20", "between 10 and 20").

    Strategy:
        - `between N and M` first (bounds are ordered).
        - Otherwise the longest comparator phrase immediately followed by a number.
    """

    match = _BETWEEN_RE.search(text)
    if match:
        low, high = sorted((_number(match.group(1)), _number(match.group(2))))
        return {"numeric_filter": NumericFilter(op="between", low=low, high=high)}

    for cm in comparator_matches():
        found = re.search(rf"\b{re.escape(cm.phrase)}\s+{_NUMBER}", text)
        if found:
            return {"numeric_filter": NumericFilter(op=cm.op, value=_number(found.group(1)))}
    return {}


def extract_measurement(text: str) -> dict[str, Any]:
    match = _MEASUREMENT_RE.search(text)
    if not match:
        return {}
    return {"measurement": Measurement(value=_number(match.group(1)), unit=match.group(2))}


def comparison_kind(entity_a: str, entity_b: str) -> ComparisonKind:
    """Classify comparison sides by their shape."""

    sides = (entity_a.lower(), entity_b.lower())
    if any(_EQUIPMENT_FULL_RE.match(side) for side in sides):
        return ComparisonKind.equipment
    if any(_MONTH_FULL_RE.match(side) for side in sides):
        return ComparisonKind.month
    if any(side in ("a", "b", "c") for side in sides):
        return ComparisonKind.shift
    if any(_ISO_DATE_RE.match(side) for side in sides):
        return ComparisonKind.date
    return ComparisonKind.other


def extract_comparison(text: str) -> dict[str, Any]:
    """Two-sided comparisons; the first matching pattern wins."""

    for pattern in _COMPARISON_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        entity_a = match.group(1).strip()
        entity_b = match.group(2).strip()
        kind = comparison_kind(entity_a, entity_b)
        if kind == ComparisonKind.equipment:
            entity_a, entity_b = entity_a.upper(), entity_b.upper()
        elif kind == ComparisonKind.shift:
            entity_a = _SHIFT_TOKEN_TO_CODE.get(entity_a, entity_a.upper())
            entity_b = _SHIFT_TOKEN_TO_CODE.get(entity_b, entity_b.upper())
        return {"comparison": Comparison(entity_a=entity_a, entity_b=entity_b, kind=kind)}
    return {}


def _target_column(text: str) -> str:
    if re.search(r"\btrips?\b", text):
        return "total_trips"
    if re.search(r"\b(m3|cubic|volume)\b", text):
        return "qty_m3"
    return "qty_ton"


def build_statistical_template(text: str, params: dict[str, Any]) -> StatisticalTemplate | None:
    """Describe a mean/median/mode/stddev request, or None if no statistical wording is present.

    Strategy:
        - "statistical analysis", "calculate all", ... expand to all four operations.
        - Otherwise each mentioned operation is included ("average" counts as mean).
        - A statistical request that names no specific operation gets all four.
        - Month grouping for "which month" (ranking), "by month"/"all months" (chart) and lists of
          months (multi-month).
    """

    if not (STATISTICAL_RE.search(text) or _STAT_ALL_RE.search(text) or re.search(r"\bstatistic", text)):
        return None

    if _STAT_ALL_RE.search(text):
        operations = list(StatOperation)
    else:
        operations = []
        if re.search(r"\b(mean|average)\b", text):
            operations.append(StatOperation.mean)
        if re.search(r"\bmedian\b", text):
            operations.append(StatOperation.median)
        if re.search(r"\bmode\b", text):
            operations.append(StatOperation.mode)
        if re.search(r"\b(standard deviation|stddev|std dev|deviation)\b", text):
            operations.append(StatOperation.stddev)
        if not operations:
            operations = list(StatOperation)

    query_type = StatQueryType.simple
    group_by: str | None = None
    if _MONTH_RANKING_RE.search(text):
        query_type = StatQueryType.ranking
    elif _CHART_BY_MONTH_RE.search(text) or params.get("group_by_month") or params.get("all_months"):
        query_type = StatQueryType.chart
    elif params.get("months"):
        query_type = StatQueryType.multi_month
    if query_type != StatQueryType.simple:
        group_by = "month"

    order_by = None
    if query_type == StatQueryType.ranking and _HIGH_LOW_RE.search(text):
        order_by = "detect_from_question"

    return StatisticalTemplate(
        operations=operations,
        target_column=_target_column(text),
        group_by=group_by,
        month=None if params.get("months") else params.get("month"),
        months=list(params.get("months") or []),
        select_month_name=group_by is not None,
        query_type=query_type,
        order_by=order_by,
    )


def extract_parameters(text: str, *, today: date | None = None) -> Parameters:
    """Extract all structured constraints from a question.

    Args:
        text: Raw user text (normalization is applied here).
        today: Reference day for relative periods; defaults to the current date.

    Returns:
        A validated `Parameters` record; fields that were not mentioned stay unset.
    """

    normalized = normalize_text(text)
    update: dict[str, Any] = {}
    update.update(extract_dates(normalized, today=today))
    update.update(extract_shifts(normalized))
    update.update(extract_ranking(normalized))
    update.update(extract_equipment(normalized))
    update.update(extract_route_or_face(normalized))
    update.update(extract_numeric_filter(normalized))
    update.update(extract_measurement(normalized))
    update.update(extract_comparison(normalized))

    template = build_statistical_template(normalized, update)
    if template is not None:
        update["statistical"] = template

    update["reference_year"] = (today or date.today()).year
    return Parameters(**update)
