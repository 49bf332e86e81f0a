"""Tests for follow-up detection, constraint extraction and parameter inheritance."""

from __future__ import annotations

from datetime import date

import pytest

from src.intent.schema import DateRange, Intent, Measurement, Parameters
from src.routing.context_cache import QuickContext
from src.routing.followup import (
    detect_follow_up,
    extract_follow_up_constraints,
    follow_up_confidence,
    follow_up_type,
    merge_parameters,
    resolve_follow_up,
)
from src.routing.schema import ConversationTurn, Task

TODAY = date(2025, 6, 18)


def test_follow_up_confidence() -> None:
    assert follow_up_confidence("and what about february") == 1.0
    assert follow_up_confidence("show production for january 2025") == 0.0
    assert follow_up_confidence("") == 0.0


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("why is that", "clarification"),
        ("only 3 tippers", "constraint"),
        ("what about march", "alternative"),
        ("and shift c", "modification"),
    ],
)
def test_follow_up_type(text: str, expected: str) -> None:
    assert follow_up_type(text) == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("without BB-42 and EX-7", {"exclude_equipment": ["BB-42", "EX-7"]}),
        ("BB-42 broke down", {"exclude_equipment": ["BB-42"]}),
        ("and other than BB-44", {"exclude_equipment": ["BB-44"]}),
        ("120 trips left", {"remaining_trips": 120}),
        ("only 3 tippers", {"limit": 3}),
        ("at least 500 tons", {"minimum": 500.0}),
        ("shift b", {"shifts": ["B"]}),
        ("b", {"shifts": ["B"]}),
        ("500 tons already mined", {"measurement": Measurement(value=500, unit="ton")}),
        ("we did half the target", {"mined_fraction": 0.5}),
    ],
)
def test_extract_follow_up_constraints(text: str, expected: dict) -> None:
    assert extract_follow_up_constraints(text) == expected


def test_merge_replaces_period_but_keeps_year_and_other_constraints() -> None:
    previous = Parameters(year=2025, month=1, month_name="January", shifts=["A"], exclude_equipment=["BB-1"])
    current = Parameters(month=2, month_name="February")

    merged = merge_parameters(current, previous, {"exclude_equipment": ["EX-7"]})

    assert merged.month == 2
    assert merged.month_name == "February"
    assert merged.year == 2025
    assert merged.shifts == ["A"]
    assert merged.exclude_equipment == ["BB-1", "EX-7"]
    assert merged.is_follow_up is True


def test_merge_exclusion_drops_the_inherited_request() -> None:
    previous = Parameters(equipment_ids=["BB-44", "BB-45"], month=1, year=2025)

    merged = merge_parameters(Parameters(), previous, {"exclude_equipment": ["BB-44"]})

    assert merged.equipment_ids == ["BB-45"]
    assert merged.exclude_equipment == ["BB-44"]


def test_merge_new_range_clears_inherited_month() -> None:
    previous = Parameters(year=2025, month=1, month_name="January")
    current = Parameters(date_range=DateRange(start_date=date(2025, 6, 9), end_date=date(2025, 6, 15)))

    merged = merge_parameters(current, previous)

    assert merged.month is None
    assert merged.month_name is None
    assert merged.date_range == current.date_range


def test_quick_context_follow_up() -> None:
    quick = QuickContext(
        intent=Intent.monthly_summary,
        parameters=Parameters(year=2025, month=1, month_name="January"),
        task=Task.structured_query,
        question="total tonnage for january 2025",
        stored_at=0.0,
    )

    context = detect_follow_up("what about march", quick_context=quick)

    assert context.is_follow_up
    assert context.confidence == 0.8
    assert context.follow_up_type == "alternative"
    assert context.previous_intent == Intent.monthly_summary
    assert context.previous_parameters.month == 1


def test_history_follow_up_reclassifies_previous_question() -> None:
    history = [ConversationTurn(question="total tonnage for january 2025", task=Task.structured_query)]

    context = detect_follow_up("and shift b", history, today=TODAY)

    assert context.is_follow_up
    assert context.confidence == 1.0
    assert context.follow_up_type == "modification"
    assert context.previous_task == Task.structured_query
    assert context.previous_parameters.month == 1
    assert context.previous_parameters.year == 2025


def test_standalone_questions_are_not_follow_ups() -> None:
    history = [ConversationTurn(question="total tonnage for january 2025")]
    assert resolve_follow_up("show production for march 2025", history, today=TODAY) is None
    assert resolve_follow_up("and what about february") is None
