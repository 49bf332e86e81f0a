"""Tests for the Parameters schema and its cross-field invariants."""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from src.intent.schema import (
    DateRange,
    Intent,
    NumericFilter,
    Parameters,
    intent_tier,
    parameters_from_obj,
)


def test_month_name_requires_month() -> None:
    with pytest.raises(ValidationError):
        Parameters(month_name="March")
    assert Parameters(month=3, month_name="March").month_name == "March"


def test_rank_type_requires_limit() -> None:
    with pytest.raises(ValidationError):
        Parameters(rank_type="top")
    assert Parameters(rank_type="bottom", limit=3).limit == 3


def test_shifts_are_canonical_and_unique() -> None:
    with pytest.raises(ValidationError):
        Parameters(shifts=["A", "A"])
    with pytest.raises(ValidationError):
        Parameters(shifts=["D"])


def test_date_range_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        DateRange(start_date=date(2025, 2, 1), end_date=date(2025, 1, 1))


def test_numeric_filter_bounds() -> None:
    with pytest.raises(ValidationError):
        NumericFilter(op="between", low=5)
    with pytest.raises(ValidationError):
        NumericFilter(op="between", low=20, high=10)
    with pytest.raises(ValidationError):
        NumericFilter(op=">")
    assert NumericFilter(op=">=", value=10).value == 10


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(ValidationError):
        parameters_from_obj({"tonnage": 5})


def test_constrained_fields_only_lists_set_constraints() -> None:
    params = Parameters(month=3, month_name="March", shifts=["B"])
    assert params.constrained_fields() == {"month": 3, "month_name": "March", "shifts": ["B"]}
    assert Parameters().constrained_fields() == {}


def test_has_date_constraint() -> None:
    assert not Parameters().has_date_constraint
    assert Parameters(quarter=2).has_date_constraint


def test_intent_tiers() -> None:
    assert intent_tier(Intent.statistical_query) == 1
    assert intent_tier(Intent.monthly_summary) == 2
    assert intent_tier(Intent.data_retrieval) == 3
