"""Statistical builder: exact mean, median, mode and population standard deviation."""

from __future__ import annotations

import re

from src.intent.schema import Parameters, StatisticalTemplate, StatOperation, StatQueryType
from src.sql import filters
from src.sql.columns import COLUMN_DICTIONARY, PRODUCTION_TABLE
from src.sql.query import Query, in_list, literal, month_name_case, month_of, year_of

_DESCENDING_RE = re.compile(r"\b(highest|maximum|biggest|greatest|most|top)\b")
_ASCENDING_RE = re.compile(r"\b(lowest|minimum|smallest|least|bottom)\b")
_OPERATION_MENTIONS: tuple[tuple[StatOperation, re.Pattern[str]], ...] = (
    (StatOperation.mean, re.compile(r"\b(mean|average)\b")),
    (StatOperation.median, re.compile(r"\bmedian\b")),
    (StatOperation.mode, re.compile(r"\bmode\b")),
    (StatOperation.stddev, re.compile(r"\b(stddev|deviation|standard deviation)\b")),
)


def stat_expression(operation: StatOperation, column: str) -> str:
    if operation == StatOperation.mean:
        return f"ROUND(AVG({column})::numeric, 2) AS mean_{column}"
    if operation == StatOperation.median:
        return f"PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY {column}) AS median_{column}"
    if operation == StatOperation.mode:
        return f"MODE() WITHIN GROUP (ORDER BY {column}) AS mode_{column}"
    return f"ROUND(STDDEV_POP({column})::numeric, 2) AS stddev_{column}"


def _ranking_order(text: str, template: StatisticalTemplate, column: str) -> str | None:
    """ORDER BY for "which month has the highest deviation"-style questions."""

    if _DESCENDING_RE.search(text):
        direction = "DESC"
    elif _ASCENDING_RE.search(text):
        direction = "ASC"
    else:
        return None

    operation = next(
        (op for op, pattern in _OPERATION_MENTIONS if op in template.operations and pattern.search(text)),
        template.operations[0],
    )
    return f"{operation}_{column} {direction}"


def build_statistical(params: Parameters, text: str) -> str | None:
    """Statistics over production summaries.

    Strategy:
        - One projection per requested operation, aliased `<op>_<column>`.
        - Month grouping adds `month_number` and `month_name`.
        - Rankings order by the statistic the question names (else the first) with LIMIT 1;
          charts and multi-month requests order by month.
    """

    template = params.statistical
    if template is None:
        return None
    column = template.target_column
    if column not in COLUMN_DICTIONARY[PRODUCTION_TABLE]:
        return None

    grouped = template.group_by is not None
    month_expr = month_of("date")
    select: list[str] = []
    if grouped and template.select_month_name:
        select.append(f"{month_expr} AS month_number")
        select.append(f"{month_name_case(month_expr)} AS month_name")
    select.extend(stat_expression(op, column) for op in template.operations)

    where: list[str] = []
    if params.date is not None or params.date_range is not None or params.quarter is not None:
        where.extend(filters.date_conditions(params, "date"))
    else:
        if params.year is not None:
            where.append(f"{year_of('date')} = {literal(params.year)}")
        months = template.months or (params.months if len(params.months) > 1 else [])
        month = template.month or params.month
        if months:
            where.append(in_list(month_expr, months))
        elif month is not None:
            where.append(f"{month_expr} = {literal(month)}")
    where.extend(filters.shift_conditions(params))

    order_by: tuple[str, ...] = ()
    limit = None
    if template.query_type == StatQueryType.ranking and template.order_by is not None:
        order = _ranking_order(text, template, column)
        if order is not None:
            order_by, limit = (order,), 1
    elif template.query_type in (StatQueryType.chart, StatQueryType.multi_month) and grouped:
        order_by = ("month_number",) if template.select_month_name else (month_expr,)

    query = Query(
        select=tuple(select),
        source=PRODUCTION_TABLE,
        where=tuple(where),
        group_by=(month_expr,) if grouped else (),
        order_by=order_by,
        limit=limit,
    )
    return query.render()
