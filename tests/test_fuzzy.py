"""Tests for typo-tolerant keyword matching and its threshold contract."""

from __future__ import annotations

import pytest

from src.intent.fuzzy import (
    correct_known_misspellings,
    fuzzy_keyword_match,
    phonetic_key,
    should_fuzzy_match,
    similarity,
    threshold_for,
)


@pytest.mark.parametrize(
    ("keyword", "expected"),
    [
        ("excavators", 0.70),
        ("tonnage", 0.78),
        ("chart", 0.82),
        ("trip", 0.85),
    ],
)
def test_threshold_grows_stricter_for_short_keywords(keyword: str, expected: float) -> None:
    assert threshold_for(keyword) == expected


def test_adjacent_transposition_costs_one_edit() -> None:
    # "tonange" swaps two neighbouring letters of "tonnage".
    assert similarity("tonange", "tonnage") == pytest.approx(1 - 1 / 7)
    assert fuzzy_keyword_match("total tonange", "tonnage")


def test_phonetic_variants_are_identical() -> None:
    assert phonetic_key("optimise") == phonetic_key("optimize")
    assert similarity("optimise", "optimize") == 1.0


def test_known_misspellings_are_corrected() -> None:
    assert correct_known_misspellings("show tonage per tippr") == "show tonnage per tipper"
    assert fuzzy_keyword_match("show the tonage", "tonnage")
    assert fuzzy_keyword_match("forcast for next month", "forecast")


def test_candidates_below_threshold_are_rejected() -> None:
    # One edit in a 5-letter keyword is 0.80 similarity, below the 0.82 bound.
    assert not fuzzy_keyword_match("the chat", "chart")
    assert not fuzzy_keyword_match("show the dates", "data")


def test_short_tokens_never_match_fuzzily() -> None:
    assert not fuzzy_keyword_match("go to pi", "pit")


def test_multi_word_keywords_need_every_word() -> None:
    assert fuzzy_keyword_match("calculate the median", "calculate median")
    assert not fuzzy_keyword_match("calculate the total", "calculate median")


def test_only_long_or_allowlisted_keywords_are_fuzzed() -> None:
    assert should_fuzzy_match("equipment")
    assert should_fuzzy_match("shift")
    assert should_fuzzy_match("production target")
    assert not should_fuzzy_match("mean")
