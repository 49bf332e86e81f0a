"""Intent and parameter schema (Pydantic models).

This schema is the contract between the intent classifier, the follow-up resolver, the rule router
and the deterministic query builders. Parameters are a partially-populated record: an unset field
means "not constrained" and is never defaulted here.
"""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Intent(StrEnum):
    """Closed classification of what kind of question was asked."""

    statistical_query = "STATISTICAL_QUERY"
    target_optimization = "TARGET_OPTIMIZATION"
    equipment_optimization = "EQUIPMENT_OPTIMIZATION"
    forecasting = "FORECASTING"
    equipment_combination = "EQUIPMENT_COMBINATION"
    equipment_specific_production = "EQUIPMENT_SPECIFIC_PRODUCTION"
    routes_faces_analysis = "ROUTES_FACES_ANALYSIS"
    advisory_query = "ADVISORY_QUERY"
    chart_visualization = "CHART_VISUALIZATION"
    comparison_query = "COMPARISON_QUERY"
    month_comparison = "MONTH_COMPARISON"
    ordinal_row_query = "ORDINAL_ROW_QUERY"
    monthly_summary = "MONTHLY_SUMMARY"
    aggregation_query = "AGGREGATION_QUERY"
    data_retrieval = "DATA_RETRIEVAL"
    unknown = "UNKNOWN"


_TIER_2: frozenset[Intent] = frozenset({Intent.monthly_summary})
_TIER_3: frozenset[Intent] = frozenset(
    {Intent.aggregation_query, Intent.data_retrieval, Intent.unknown}
)


def intent_tier(intent: Intent) -> int:
    """Return the specificity tier of an intent (1 = most specific, 3 = generic)."""

    if intent in _TIER_3:
        return 3
    if intent in _TIER_2:
        return 2
    return 1


class ComparisonKind(StrEnum):
    """What the two sides of a comparison refer to."""

    equipment = "equipment"
    month = "month"
    shift = "shift"
    date = "date"
    other = "other"


class StatOperation(StrEnum):
    """Supported exact statistical aggregates."""

    mean = "mean"
    median = "median"
    mode = "mode"
    stddev = "stddev"


class StatQueryType(StrEnum):
    """Shape of a statistical query."""

    simple = "simple"
    multi_month = "multi_month"
    ranking = "ranking"
    chart = "chart"


ShiftCode = Literal["A", "B", "C"]
RankType = Literal["top", "bottom"]
Comparator = Literal[">", ">=", "<", "<=", "=", "between"]
MonthNumber = Annotated[int, Field(ge=1, le=12)]


class DateRange(BaseModel):
    """An inclusive calendar-day range."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    start_date: dt.date
    end_date: dt.date
    label: str | None = None

    @model_validator(mode="after")
    def validate_range(self) -> DateRange:
        """Validate that the inclusive range is well-formed (`start_date <= end_date`)."""

        if self.start_date > self.end_date:
            raise ValueError("start_date must be <= end_date")
        return self


class Comparison(BaseModel):
    """Two entities compared against each other ("X vs Y", "did X ... or Y")."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    entity_a: str = Field(min_length=1)
    entity_b: str = Field(min_length=1)
    kind: ComparisonKind = ComparisonKind.other


class NumericFilter(BaseModel):
    """A numeric constraint such as "more than 500" or "between 10 and 20"."""

    model_config = ConfigDict(extra="forbid")

    op: Comparator
    value: float | None = None
    low: float | None = None
    high: float | None = None

    @model_validator(mode="after")
    def validate_bounds(self) -> NumericFilter:
        """`between` needs an ordered pair of bounds; every other operator needs a value."""

        if self.op == "between":
            if self.low is None or self.high is None:
                raise ValueError("between filters require low and high")
            if self.low > self.high:
                raise ValueError("low must be <= high")
        elif self.value is None:
            raise ValueError(f"operator {self.op!r} requires a value")
        return self


class Measurement(BaseModel):
    """A quantity mentioned in the question ("700 tons", "20 trips")."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    value: float
    unit: str = Field(min_length=1)


class StatisticalTemplate(BaseModel):
    """Sub-record describing a mean/median/mode/stddev request."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    operations: list[StatOperation] = Field(min_length=1)
    target_column: str = "qty_ton"
    group_by: str | None = None
    month: MonthNumber | None = None
    months: list[MonthNumber] = Field(default_factory=list)
    select_month_name: bool = False
    query_type: StatQueryType = StatQueryType.simple
    order_by: str | None = None


class Parameters(BaseModel):
    """Structured constraints extracted from a question.

    Unset fields (None, empty list, False) mean "not constrained". Follow-up merging relies on this
    convention: only set fields override inherited ones.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    # Calendar constraints.
    year: int | None = Field(default=None, ge=1900, le=2200)
    quarter: int | None = Field(default=None, ge=1, le=4)
    month: MonthNumber | None = None
    month_name: str | None = None
    months: list[MonthNumber] = Field(default_factory=list)
    date: dt.date | None = None
    date_range: DateRange | None = None
    group_by_month: bool = False
    month_ranking: bool = False
    all_months: bool = False
    # Year of the day the question was asked; not a constraint, never serialized.
    reference_year: int | None = Field(default=None, ge=1900, le=2200, exclude=True)

    # Shifts.
    shifts: list[ShiftCode] = Field(default_factory=list)
    group_by_shift: bool = False

    # Equipment.
    equipment_ids: list[str] = Field(default_factory=list)
    exclude_equipment: list[str] = Field(default_factory=list)
    replacement_type: Literal["tipper", "excavator"] | None = None
    machine_types: list[str] = Field(default_factory=list)
    route_or_face: str | None = None

    # Ranking and selection.
    rank_type: RankType | None = None
    limit: int | None = Field(default=None, ge=1)
    row_number: int | None = Field(default=None, ge=1)

    # Comparisons and numeric constraints.
    comparison: Comparison | None = None
    numeric_filter: NumericFilter | None = None
    measurement: Measurement | None = None
    statistical: StatisticalTemplate | None = None

    # Follow-up constraints (optimization deltas).
    remaining_trips: int | None = Field(default=None, ge=0)
    mined_fraction: float | None = Field(default=None, ge=0, le=1)
    minimum: float | None = None
    is_follow_up: bool = False

    @model_validator(mode="after")
    def validate_semantics(self) -> Parameters:
        """Enforce cross-field invariants."""

        if self.month_name is not None and self.month is None:
            raise ValueError("month_name requires month")
        if self.rank_type is not None and self.limit is None:
            raise ValueError("rank_type requires limit")
        if len(set(self.shifts)) != len(self.shifts):
            raise ValueError("shifts must not repeat")
        if set(self.equipment_ids) & set(self.exclude_equipment):
            raise ValueError("equipment cannot be both requested and excluded")
        return self

    @property
    def has_date_constraint(self) -> bool:
        return any(
            (
                self.date is not None,
                self.date_range is not None,
                self.month is not None,
                self.year is not None,
                self.quarter is not None,
            )
        )

    def constrained_fields(self) -> dict[str, Any]:
        """Return only the fields that carry a constraint (JSON-compatible)."""

        return self.model_dump(mode="json", exclude_none=True, exclude_defaults=True)


def parameters_from_obj(obj: Any) -> Parameters:
    """Validate and parse Parameters from an arbitrary decoded JSON object."""

    return Parameters.model_validate(obj)
