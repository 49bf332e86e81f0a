"""Structured query representation.

Builders assemble a `Query` from allowlisted identifiers and literal values and render it to text
only at the boundary. Every literal goes through `literal()`, the single quoting function.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from src.intent.dates import MONTH_NAMES

Direction = Literal["ASC", "DESC"]


class SQLBuilderError(ValueError):
    """Raised when a query cannot be rendered into valid SQL."""


def literal(value: object) -> str:
    """Render a Python value as an SQL literal.

    Raises:
        SQLBuilderError: For values with no literal form (booleans, None, containers).
    """

    if isinstance(value, bool) or value is None:
        raise SQLBuilderError(f"Unsupported literal: {value!r}")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, dt.date):
        return f"'{value.isoformat()}'"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    raise SQLBuilderError(f"Unsupported literal: {value!r}")


def in_list(column: str, values: Iterable[object], *, negate: bool = False) -> str:
    rendered = [literal(v) for v in values]
    if not rendered:
        raise SQLBuilderError(f"Empty value list for {column}")
    operator = "NOT IN" if negate else "IN"
    return f"{column} {operator} ({', '.join(rendered)})"


def equals_or_in(column: str, values: list[str]) -> str:
    if len(values) == 1:
        return f"{column} = {literal(values[0])}"
    return in_list(column, values)


def month_of(column: str) -> str:
    return f"EXTRACT(MONTH FROM {column})"


def year_of(column: str) -> str:
    return f"EXTRACT(YEAR FROM {column})"


def month_name_case(expression: str) -> str:
    """CASE expression mapping a month number to its English name."""

    branches = " ".join(f"WHEN {number} THEN {literal(name)}" for number, name in enumerate(MONTH_NAMES, start=1))
    return f"CASE {expression} {branches} END"


def _where_and(clauses: Iterable[str]) -> str:
    clauses = list(clauses)
    if not clauses:
        return ""
    return "WHERE " + " AND ".join(clauses)


@dataclass(frozen=True)
class Query:
    """A single SELECT statement."""

    select: tuple[str, ...]
    source: str | None
    where: tuple[str, ...] = ()
    group_by: tuple[str, ...] = ()
    having: tuple[str, ...] = ()
    order_by: tuple[str, ...] = ()
    limit: int | None = None
    offset: int | None = None
    distinct: bool = field(default=False)

    def render(self) -> str:
        """Render the statement as one line of SQL."""

        if not self.select:
            raise SQLBuilderError("Query requires at least one projection")
        if self.limit is not None and self.limit < 1:
            raise SQLBuilderError("limit must be >= 1")
        if self.offset is not None and self.offset < 0:
            raise SQLBuilderError("offset must be >= 0")

        keyword = "SELECT DISTINCT" if self.distinct else "SELECT"
        parts = [f"{keyword} {', '.join(self.select)}"]
        if self.source is not None:
            parts.append(f"FROM {self.source}")
        where = _where_and(self.where)
        if where:
            parts.append(where)
        if self.group_by:
            parts.append("GROUP BY " + ", ".join(self.group_by))
        if self.having:
            parts.append("HAVING " + " AND ".join(self.having))
        if self.order_by:
            parts.append("ORDER BY " + ", ".join(self.order_by))
        if self.limit is not None:
            parts.append(f"LIMIT {self.limit}")
        if self.offset is not None:
            parts.append(f"OFFSET {self.offset}")
        return " ".join(parts)


def subquery(query: Query, alias: str) -> str:
    """Render `query` as a scalar subquery projection."""

    return f"({query.render()}) AS {alias}"
