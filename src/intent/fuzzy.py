"""Typo-tolerant keyword matching.

Threshold contract:
    - Similarity is `1 - distance / max(len(a), len(b))` where distance is the optimal string
      alignment distance (insertions, deletions, substitutions and adjacent transpositions each
      cost 1).
    - Both sides are also compared after phonetic normalisation (e.g. "ph" -> "f", doubled letters
      collapsed); the better of the two similarities is used.
    - A candidate matches a keyword only if its similarity reaches `threshold_for(keyword)`, which
      grows stricter as the keyword gets shorter. Anything below the bound is rejected, never
      guessed.
    - Text tokens shorter than 3 characters never match fuzzily.
"""

from __future__ import annotations

import re
from functools import lru_cache

from rapidfuzz.distance import OSA

MIN_TOKEN_LENGTH = 3

# Short domain terms that still get fuzzy matching even though they are 5 characters or fewer.
FUZZY_SHORT_TERMS: frozenset[str] = frozenset(
    {
        "tipper",
        "chart",
        "route",
        "best",
        "which",
        "show",
        "list",
        "trip",
        "face",
        "haul",
        "pit",
        "mine",
        "shift",
        "plan",
        "data",
        "view",
        "get",
        "find",
    }
)

COMMON_MISSPELLINGS: dict[str, tuple[str, ...]] = {
    "excavator": ("excevator", "exavator", "excavater", "excevater", "excaveter"),
    "tipper": ("tiper", "typer", "tipr", "tippr"),
    "which": ("wich", "whic", "whch"),
    "chart": ("chrt", "cahrt", "chrat", "chatr"),
    "route": ("rout", "roote", "rute", "roue"),
    "display": ("displya", "disply", "diplay"),
    "performance": ("performace", "preformance", "perfomance", "performnce"),
    "forecast": ("forcast", "forcaste", "forecat", "forecst"),
    "maintenance": ("maintenence", "maintanance", "maintenace", "maintennance"),
    "production": ("producton", "produktion", "productoin", "prodction"),
    "tonnage": ("tonnege", "tonage", "tonnaje", "tonnnage"),
    "recommend": ("recomend", "reccomend", "rekommend", "recomned"),
    "equipment": ("equipement", "equiptment", "equipmant", "equipent", "equipmnt", "equpment"),
    "efficiency": ("eficiency", "efficency", "efficiancy", "effeciency"),
    "optimal": ("optmal", "optimel", "optiaml", "optiml"),
    "predict": ("predit", "prdict", "predickt"),
    "visualization": (
        "visualisation",
        "visualizaton",
        "visulaization",
        "visulization",
        "vizualization",
    ),
    "procedure": ("proceedure", "proceduer", "proceedur", "procedre", "procedue"),
    "analyze": ("analyse", "analize", "analyz"),
    "combination": ("combinaton", "conbination", "combintion", "combnation"),
    "utilization": ("utilizaton", "utilzation", "utlization"),
}

_CORRECTIONS: dict[str, str] = {
    wrong: right for right, wrongs in COMMON_MISSPELLINGS.items() for wrong in wrongs
}

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")
_DOUBLE_LETTER_RE = re.compile(r"([a-z])\1+")
_PHONETIC_RULES: tuple[tuple[str, str], ...] = (
    ("ph", "f"),
    ("ck", "k"),
    ("qu", "kw"),
    ("x", "ks"),
    ("z", "s"),
)


def threshold_for(keyword: str) -> float:
    """Return the minimum similarity a token needs to count as `keyword`."""

    length = len(keyword)
    if length >= 10:
        return 0.70
    if length >= 7:
        return 0.78
    if length >= 5:
        return 0.82
    return 0.85


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall((text or "").lower())


@lru_cache(maxsize=4096)
def phonetic_key(word: str) -> str:
    """Collapse spelling variants that sound alike ("optimize"/"optimise", "tipper"/"tiper")."""

    value = word.lower()
    for src, dst in _PHONETIC_RULES:
        value = value.replace(src, dst)
    value = _DOUBLE_LETTER_RE.sub(r"\1", value)
    if len(value) > 3 and value.endswith("e"):
        value = value[:-1]
    return value


def similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] between two words (1.0 = identical)."""

    left = a.lower()
    right = b.lower()
    if not left and not right:
        return 1.0
    raw = OSA.normalized_similarity(left, right)
    if raw == 1.0:
        return raw
    return max(raw, OSA.normalized_similarity(phonetic_key(left), phonetic_key(right)))


def correct_known_misspellings(text: str) -> str:
    """Replace known domain misspellings with their canonical spelling."""

    return " ".join(_CORRECTIONS.get(token, token) for token in tokenize(text))


def should_fuzzy_match(keyword: str) -> bool:
    """Only multi-word keywords, keywords longer than 5 chars, or allowlisted terms are fuzzed."""

    value = keyword.lower()
    return len(value.split()) > 1 or len(value) > 5 or value in FUZZY_SHORT_TERMS


@lru_cache(maxsize=4096)
def _keyword_re(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(keyword)}\b", flags=re.IGNORECASE)


def exact_keyword_match(text: str, keyword: str) -> bool:
    return _keyword_re(keyword).search(text) is not None


def _word_matches(word: str, tokens: list[str]) -> bool:
    if len(word) < MIN_TOKEN_LENGTH:
        return word in tokens
    threshold = threshold_for(word)
    return any(
        len(token) >= MIN_TOKEN_LENGTH and similarity(token, word) >= threshold
        for token in tokens
    )


def fuzzy_keyword_match(text: str, keyword: str) -> bool:
    """Return True if `keyword` occurs in `text`, tolerating typos within the threshold contract.

    Strategy:
        1) Exact word-boundary match.
        2) Exact match after correcting known misspellings.
        3) Single-word keywords: some token reaches `threshold_for(keyword)`.
        4) Multi-word keywords: every keyword word reaches its threshold against some token.
    """

    if exact_keyword_match(text, keyword):
        return True
    if exact_keyword_match(correct_known_misspellings(text), keyword):
        return True

    tokens = tokenize(text)
    words = keyword.lower().split()
    if len(words) > 1:
        return all(_word_matches(word, tokens) for word in words)
    return _word_matches(words[0], tokens)
