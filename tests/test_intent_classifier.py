"""Tests for the keyword-scored intent classifier."""

from __future__ import annotations

from datetime import date

import pytest

from src.config import thresholds
from src.intent.classifier import classify
from src.intent.schema import Intent

TODAY = date(2025, 6, 18)


def test_statistical_words_override_generic_intents() -> None:
    result = classify("what is the median tonnage", today=TODAY)
    assert result.intent == Intent.statistical_query
    assert 0 < result.confidence <= 1


def test_forecasting() -> None:
    assert classify("forecast next month production", today=TODAY).intent == Intent.forecasting


def test_empty_text_degrades_to_data_retrieval() -> None:
    result = classify("", today=TODAY)
    assert result.intent == Intent.data_retrieval
    assert result.confidence == 0.0
    assert result.matched_keywords == ()


def test_unknown_is_never_emitted() -> None:
    for text in ("", "xyzzy", "qwerty asdf"):
        assert classify(text, today=TODAY).intent != Intent.unknown


def test_parameters_are_attached() -> None:
    result = classify("production for shift B in March 2025", today=TODAY)
    assert result.parameters.shifts == ["B"]
    assert (result.parameters.month, result.parameters.year) == (3, 2025)


def test_confidence_is_rounded() -> None:
    result = classify("show a chart of tonnage by shift", today=TODAY)
    assert result.confidence == round(result.confidence, 2)


@pytest.mark.parametrize(
    ("typo", "correct", "intent", "keyword"),
    [
        (
            "calculate the medain tonnage",
            "calculate the median tonnage",
            Intent.statistical_query,
            "median",
        ),
        (
            "i need to achive the production target",
            "i need to achieve the production target",
            Intent.target_optimization,
            "achieve",
        ),
        (
            "recomend the optimal equipment",
            "recommend the optimal equipment",
            Intent.equipment_optimization,
            "recommend equipment",
        ),
        ("forcast next month production", "forecast next month production", Intent.forecasting, "forecast"),
        (
            "show tipper and excavator combinatons",
            "show tipper and excavator combinations",
            Intent.equipment_combination,
            "combinations",
        ),
        (
            "show the performence of tipper BB-12",
            "show the performance of tipper BB-12",
            Intent.equipment_specific_production,
            "performance of",
        ),
        (
            "which haul rout had the most trips",
            "which haul route had the most trips",
            Intent.routes_faces_analysis,
            "haul route",
        ),
        (
            "what are the safty procedures for hauling",
            "what are the safety procedures for hauling",
            Intent.advisory_query,
            "safety",
        ),
        ("plot a bar chrat of tonnage", "plot a bar chart of tonnage", Intent.chart_visualization, "chart"),
        (
            "plot a histogrm chart of tonnage",
            "plot a histogram chart of tonnage",
            Intent.chart_visualization,
            "histogram",
        ),
        (
            "which is higer, shift A or shift B",
            "which is higher, shift A or shift B",
            Intent.comparison_query,
            "which is higher",
        ),
        ("wich month had the most trips", "which month had the most trips", Intent.month_comparison, "which month"),
        (
            "which day had the higest tonnage",
            "which day had the highest tonnage",
            Intent.ordinal_row_query,
            "highest tonnage",
        ),
    ],
)
def test_single_edit_typos_keep_the_intent(typo: str, correct: str, intent: Intent, keyword: str) -> None:
    result = classify(typo, today=TODAY)
    assert result.intent == intent == classify(correct, today=TODAY).intent
    assert result.confidence >= thresholds.MISSPELLED_PHRASE_MIN
    assert keyword in result.fuzzy_matches


def test_transposed_chart_is_not_data_retrieval() -> None:
    result = classify("show the chrat of tonnage", today=TODAY)
    assert result.intent == Intent.chart_visualization
    assert "chart" in result.fuzzy_matches
