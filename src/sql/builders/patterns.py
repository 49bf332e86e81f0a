"""Vocabulary shared by the query builders.

Builders receive normalized (lower-case) question text; these patterns assume that.
"""

from __future__ import annotations

import re

from src.sql.query import Direction

TRIPS_RE = re.compile(r"\b(trips?|trip count)\b")
TONNAGE_RE = re.compile(r"\b(tonnage|tons?|production)\b")
VOLUME_RE = re.compile(r"m3|cubic\s*meters?|volume")
PRODUCTIVITY_RE = re.compile(r"\b(productive|productivity|efficiency|efficient)\b")

SUPERLATIVE_RE = re.compile(
    r"\b(highest|most|best|lowest|least|worst|maximum|minimum|max|min|top|bottom|higest|lowst)\b"
)
BOTTOM_RE = re.compile(r"\b(bottom|lowest|worst|minimum|min|least|lowst)\b")
ASCENDING_RE = re.compile(r"\b(lowest|worst|least|bottom|ascending|asc|lowst)\b")
MOST_TRIPS_RE = re.compile(r"(most|highest|top|best|maximum).*trips?|(trips?).*\b(most|highest|top|best|maximum)\b")

TIPPER_WORD_RE = re.compile(r"\b(tippers?|dumpers?)\b")
EXCAVATOR_WORD_RE = re.compile(r"\bexcavators?\b")

SHIFT_COMPARISON_RE = re.compile(r"compare.*shift|by\s+shift|shift\s+comparison|per\s+shift")
SHIFT_SUPERLATIVE_RE = re.compile(
    r"(highest|lowest|best|worst|most|least|top|bottom).*shift|shift.*(highest|lowest|best|worst|most|least)"
)
SINGULAR_SHIFT_RE = re.compile(r"\b(the|which)\s+shift\b")

AVERAGE_RE = re.compile(r"average|avg|mean")
TOTAL_RE = re.compile(r"total|sum")
TOTAL_TONNAGE_RE = re.compile(r"\b(total|sum)\b.*\b(tonnage|qty_ton|tons?)\b")
TOTAL_M3_RE = re.compile(r"\b(total|sum)\b.*\b(m3|cubic\s*meters?|qty_m3)\b")
TRIP_KEYWORD_RE = re.compile(r"\b(trip count|trips|trip_count|total trips|number of trips)\b")

HOW_MANY_RE = re.compile(r"\bhow many\b")
WORKED_WITH_RE = re.compile(r"\b(worked with|work with|partnered with|paired with)\b")
WHICH_DAY_RE = re.compile(r"\b(which|what)\s+(date|day)\b")
DAY_WORDS_RE = re.compile(r"\b(days?|dates?)\b")
CHART_RE = re.compile(r"\b(chart|graph|plot|pie|visuali[sz]e)\b")
HEATMAP_RE = re.compile(r"\bheat\s*map\b")

_TOP_N_RE = re.compile(r"\btop\s+(\d+)")
_N_MONTHS_RE = re.compile(r"\b(\d+)\s+months?\b")


def sort_direction(text: str) -> Direction:
    return "ASC" if ASCENDING_RE.search(text) else "DESC"


def extract_limit(text: str, default: int) -> int:
    """Limit from "top N" or "N months", else `default`."""

    match = _TOP_N_RE.search(text) or _N_MONTHS_RE.search(text)
    if match and int(match.group(1)) >= 1:
        return int(match.group(1))
    return default
