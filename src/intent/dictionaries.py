"""English dictionaries for intents, comparators and routing vocabulary.

These mappings are used by the classifier, the parameter extractors and the rule router. They should
remain small and deterministic: adding a phrase here is the intended way to extend coverage.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from src.intent.schema import Comparator, Intent

INTENT_KEYWORDS: dict[Intent, tuple[str, ...]] = {
    Intent.statistical_query: (
        "mean",
        "median",
        "mode",
        "standard deviation",
        "stddev",
        "std dev",
        "deviation",
        "statistical analysis",
        "statistical measure",
        "statistical",
        "analysis",
        "calculate mean",
        "calculate median",
        "calculate mode",
        "compute mean",
        "compute median",
        "find the mean",
        "find the median",
        "find the mode",
        "show mean",
        "show median",
        "calculate deviation",
    ),
    Intent.target_optimization: (
        "mine",
        "target",
        "production target",
        "need to mine",
        "want to mine",
        "plan to mine",
        "achieve",
        "reach",
        "goal of",
        "to produce",
        "produce",
        "output of",
        "need to produce",
        "how to mine",
        "how to achieve",
        "optimize for",
        "plan for target",
        "meet target",
        "reach target",
    ),
    Intent.equipment_optimization: (
        "best combination",
        "optimal combination",
        "recommend equipment",
        "equipment selection",
        "choose equipment",
        "select equipment",
        "should i pick",
        "should i take",
        "i have to pick",
        "i need to pick",
        "i want to pick",
        "i have to select",
        "i need to select",
        "i want to select",
        "i have to choose",
        "i need to choose",
        "i want to choose",
        "help me pick",
        "help me select",
        "help me choose",
        "optimal",
        "optimal equipment",
        "best equipment",
        "best setup",
        "optimal setup",
        "optimisation",
        "optimisatio",
        "optimization",
        "optimize",
        "optimise",
        "optimize equipment",
        "optimise equipment",
        "optimise for",
    ),
    Intent.forecasting: (
        "forecast",
        "predict",
        "predict next",
        "forecast next",
        "future production",
        "next month",
        "next quarter",
        "next year",
        "expected production",
        "anticipated production",
        "forecast production",
        "predict production",
    ),
    Intent.equipment_combination: (
        "combination",
        "combinations",
        "pairing",
        "match",
        "matches",
        "tipper and excavator",
        "excavator and tipper",
        "working together",
        "paired with",
        "worked with",
        "work with",
        "each worked",
        "how many tippers",
        "how many excavators",
        "which tipper",
        "which tippers",
        "which excavator",
        "which excavators",
        "which dumper",
        "which dumpers",
        "which equipment",
        "tipper contributed",
        "tippers contributed",
        "excavator contributed",
        "excavators contributed",
        "equipment contributed",
        "equipment combination",
        "equipment combinations",
    ),
    Intent.equipment_specific_production: (
        "performance of",
        "data for tipper",
        "data for excavator",
        "show for tipper",
        "show for excavator",
        "get for tipper",
        "data for equipment",
        "bb-",
        "ex-",
        "tip-",
        "doz-",
        "excavator ex-",
        "tipper bb-",
        "excavator bb-",
        "tipper ex-",
        "has ex-",
        "has bb-",
        "did ex-",
        "did bb-",
    ),
    Intent.routes_faces_analysis: (
        "route",
        "routes",
        "haul route",
        "haulage route",
        "most used route",
        "face",
        "faces",
        "mining face",
        "active face",
        "working face",
        "most used face",
        "pit face",
        "bench face",
        "route analysis",
        "face analysis",
        "route performance",
        "face performance",
        "route utilization",
        "face utilization",
        "route efficiency",
        "which route",
        "which face",
        "top route",
        "top face",
    ),
    Intent.advisory_query: (
        "how to",
        "how do",
        "how can",
        "how should",
        "best practice",
        "best practices",
        "guideline",
        "guidelines",
        "procedure",
        "procedures",
        "safety",
        "policy",
        "policies",
        "recommendation",
        "recommendations",
        "what are the best",
        "what is the best",
        "improve",
        "reduce",
        "optimize process",
        "standard operating procedure",
        "sop",
    ),
    Intent.chart_visualization: (
        "chart",
        "graph",
        "plot",
        "visualize",
        "line chart",
        "bar chart",
        "pie chart",
        "histogram",
        "trend",
        "visualisation",
        "visualization",
        "draw",
        "overlay",
        "different color",
        "different colors",
        "color coded",
        "separate by",
        "heatmap",
        "heat map",
        "pareto",
        "radar",
        "scatter",
        "area chart",
    ),
    Intent.comparison_query: (
        "higher than",
        "lower than",
        "more than",
        "less than",
        "greater than",
        "better than",
        "worse than",
        "more productive",
        "less productive",
        "compare",
        "comparison",
        "versus",
        "vs",
        "compared to",
        "which is higher",
        "which is lower",
        "which is better",
        "which had higher",
        "which had lower",
        "which had more",
        "have higher",
        "have lower",
        "have more",
        "make more",
        "make higher",
        "did",
        "higher production or",
        "lower production or",
        "more trips or",
        "higher trips or",
        "lower trips or",
        "better or",
        "worse or",
    ),
    Intent.month_comparison: (
        "which month",
        "what month",
        "which months",
        "month with the highest",
        "month with the lowest",
        "month with the most",
        "month with the best",
        "month with the worst",
        "month had the highest",
        "month had the lowest",
        "month had the most",
    ),
    Intent.ordinal_row_query: (
        "row",
        "nth row",
        "first row",
        "last row",
        "1st row",
        "2nd row",
        "3rd row",
        "th row",
        "select row",
        "row from",
        "row in",
        "top 5",
        "top 10",
        "top 3",
        "top n",
        "select top",
        "bottom 5",
        "bottom 10",
        "first 5",
        "last 5",
        "highest tonnage",
        "lowest tonnage",
        "highest production",
        "lowest production",
        "highest trips",
        "lowest trips",
        "top days",
        "bottom days",
        "which had the highest",
        "which had the lowest",
        "had the highest",
        "had the lowest",
        "the best tipper",
        "the worst tipper",
        "the best excavator",
        "the worst excavator",
        "best tipper from",
        "best excavator from",
    ),
    Intent.monthly_summary: (
        "monthly",
        "month summary",
        "month report",
        "monthly report",
        "monthly breakdown",
        "month breakdown",
        "monthly overview",
        "month overview",
        "summary for the month",
        "report for the month",
        "yearly",
        "annual",
        "year report",
        "yearly summary",
        "annual summary",
        "summary",
    ),
    Intent.aggregation_query: (
        "sum",
        "total",
        "count",
        "aggregate",
        "aggregation",
        "complete summary",
        "aggregate summary",
        "summary of",
        "overall",
        "entire",
    ),
    Intent.data_retrieval: (
        "show",
        "list",
        "display",
        "find",
        "get",
        "fetch",
        "view",
        "see",
        "look up",
        "retrieve",
        "data",
    ),
}

# Single words that carry almost no intent signal on their own.
GENERIC_WORDS: frozenset[str] = frozenset(
    {"show", "list", "display", "find", "get", "fetch", "view", "see", "data"}
)

# Phrases that strongly identify one intent over its neighbours.
DISCRIMINATOR_PHRASES: frozenset[str] = frozenset(
    {
        "total tonnage",
        "total trips",
        "average production",
        "monthly report",
        "shift rank",
        "equipment breakdown",
        "production summary",
    }
)

# Vocabulary shared by the classifier context filters and the rule router.
STATISTICAL_RE = re.compile(r"\b(mean|median|mode|stddev|standard deviation|deviation)\b")
VISUALIZATION_RE = re.compile(
    r"\b(graph|chart|plot|visuali[sz]e|visuali[sz]ation|draw|overlay|bar chart|line graph|pie chart"
    r"|histogram|heat\s?map|show on graph|plot over time|chart by|graph by|average line|mean line"
    r"|trend line|overlay average|add mean|with different colou?rs?|different colou?rs?|separate by"
    r"|colou?r coded)\b"
)
AGGREGATION_RE = re.compile(
    r"\b(average|avg|mean|median|mode|stddev|standard deviation|deviation|sum|total|count|max|maximum|min|minimum|highest|lowest|top|bottom"
    r"|most|least|calculate|compute|what is the average|find the mean|compare|comparison|versus|vs"
    r"|difference between|how many|how much)\b"
)
ADVISORY_RE = re.compile(
    r"\b(how to|how do i|how can i|how should i|best practices?|best way|improve|reduce|increase"
    r"|what is the process|what are the steps|what are the best|what is the best|guidelines?"
    r"|procedures?|safety|policy|policies|standard operating procedure|sop|recommendations?)\b"
)
OPTIMIZE_RE = re.compile(
    r"\b(which excavator should|what equipment should|recommend equipment|optimal allocation"
    r"|best combination|optimi[sz]e equipment|predict|forecast|estimate future|next month production"
    r"|how many excavators do i need|equipment requirement|i (?:have|need|want) to (?:pick|select|choose)"
    r"|help me (?:pick|select|choose)|optimi[sz]ation|optimisatio|optimi[sz]e)\b"
)
TARGET_RE = re.compile(
    r"\b(mine \d+|target \d+|need to mine|production target|optimi[sz]e for \d+|how to mine \d+)\b"
)
ROUTE_FACE_RE = re.compile(r"\b(routes?|faces?|haul road|haulage|pit face|bench)\b")
EQUIPMENT_ID_RE = re.compile(r"\b([a-z]{2,4})-(\d{1,4})\b", flags=re.IGNORECASE)
SUPERLATIVE_RE = re.compile(
    r"\b(highest|lowest|most|least|best|worst|maximum|minimum|max|min|top|bottom|peak)\b"
)
MONTH_WORDS_RE = re.compile(
    r"\b(january|february|march|april|may|june|july|august|september|october|november|december"
    r"|jan|feb|mar|apr|jun|jul|aug|sep|sept|oct|nov|dec)\b"
)
SPECIFIC_DAY_RE = re.compile(
    r"\b(january|february|march|april|may|june|july|august|september|october|november|december"
    r"|jan|feb|mar|apr|jun|jul|aug|sep|oct|nov|dec)\s+\d{1,2}(st|nd|rd|th)?\b"
)

COMPARATOR_SYNONYMS: dict[Comparator, tuple[str, ...]] = {
    ">": ("greater than", "more than", "above", "over", "exceeds", "exceeding"),
    ">=": ("at least", "minimum of", "no less than"),
    "<": ("less than", "fewer than", "below", "under"),
    "<=": ("at most", "maximum of", "no more than", "up to"),
    "=": ("equals", "equal to", "exactly"),
}


@dataclass(frozen=True)
class ComparatorMatch:
    """A concrete English phrase matched to a canonical SQL comparator operator."""

    op: Comparator
    phrase: str


_COMPARATOR_MATCHES: list[ComparatorMatch] = sorted(
    (ComparatorMatch(op=op, phrase=phrase) for op, phrases in COMPARATOR_SYNONYMS.items() for phrase in phrases),
    key=lambda m: (-len(m.phrase), m.phrase),
)


def comparator_matches() -> list[ComparatorMatch]:
    """Comparator phrases, longest first so that "no less than" wins over "less than"."""

    return list(_COMPARATOR_MATCHES)


def keyword_weight(keyword: str, text: str) -> float:
    """Weight of a matched keyword.

    Strategy:
        - 3 points per word.
        - +5 when a multi-word keyword occurs verbatim.
        - Generic single words weigh 1.
        - Discriminator phrases get +4.
    """

    word_count = len(keyword.split())
    weight = float(word_count * 3)
    if word_count > 1 and re.search(rf"\b{re.escape(keyword)}\b", text):
        weight += 5
    if word_count == 1 and keyword in GENERIC_WORDS:
        weight = 1.0
    if keyword in DISCRIMINATOR_PHRASES:
        weight += 4
    return weight
