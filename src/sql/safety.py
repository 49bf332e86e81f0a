"""Read-only query validation.

Every query (deterministic or model-generated) passes through `validate` before it leaves the
router. Rejections raise `QuerySafetyError` and are fatal for the request: unsafe text is never
handed to the query executor.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from src.sql.columns import ALLOWED_TABLES, COLUMN_DICTIONARY, all_columns

logger = logging.getLogger(__name__)

DEFAULT_ROW_LIMIT = 1000


class QuerySafetyError(ValueError):
    """Raised when query text is not a single, bounded, read-only SELECT over known columns."""


DENYLIST: tuple[str, ...] = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "ALTER",
    "TRUNCATE",
    "CREATE",
    "GRANT",
    "REVOKE",
    "MERGE",
    "COPY",
    "EXECUTE",
    "EXEC",
    "CALL",
    "VACUUM",
    "REINDEX",
    "CLUSTER",
    "COMMENT",
    "LOCK",
    "ATTACH",
    "DETACH",
    "UPSERT",
    "SET",
    "RESET",
    "DO",
    "LISTEN",
    "NOTIFY",
    "PREPARE",
    "DEALLOCATE",
    "REFRESH",
    "IMPORT",
    "LOAD",
)

TABLE_ALIASES: dict[str, str] = {
    "production_summary": "p",
    "trip_summary_by_date": "t",
    "equipment": "e",
    "uploaded_files": "u",
}

_KEYWORDS = frozenset(
    {
        "select", "from", "where", "and", "or", "not", "in", "is", "null", "as", "on", "using",
        "join", "inner", "left", "right", "full", "outer", "group", "by", "order", "having",
        "limit", "offset", "asc", "desc", "distinct", "case", "when", "then", "else", "end",
        "between", "like", "ilike", "with", "union", "all", "intersect", "except", "exists",
        "any", "some", "true", "false", "nulls", "first", "last", "over", "partition", "rows",
        "range", "preceding", "following", "unbounded", "current", "row", "within", "filter",
        "interval", "extract", "month", "year", "day", "week", "quarter", "dow", "doy", "epoch",
        "current_date", "current_timestamp", "localtimestamp", "now", "recursive", "lateral",
        "fetch", "next", "only", "ties", "escape", "similar", "to", "at", "time", "zone",
        "timestamp", "date", "numeric", "integer", "int", "float", "real", "double",
        "precision", "decimal", "text", "varchar", "boolean",
    }
)

_FUNCTIONS = frozenset(
    {
        "sum", "avg", "count", "min", "max", "round", "abs", "ceil", "ceiling", "floor", "sign",
        "power", "sqrt", "nullif", "coalesce", "greatest", "least", "cast", "extract",
        "percentile_cont", "percentile_disc", "mode", "stddev", "stddev_pop", "stddev_samp",
        "variance", "var_pop", "var_samp", "corr", "date_trunc", "date_part", "to_char", "to_date",
        "make_date", "age", "lower", "upper", "trim", "length", "concat", "string_agg", "array_agg",
        "bool_and", "bool_or", "row_number", "rank", "dense_rank", "ntile", "lag", "lead",
        "first_value", "last_value",
    }
)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_STRING_RE = re.compile(r"'(?:[^']|'')*'")
_DENY_RE = re.compile(r"\b(" + "|".join(DENYLIST) + r")\b", flags=re.IGNORECASE)
_LEADING_RE = re.compile(r"^\s*(select|with)\b", flags=re.IGNORECASE)
_SELECT_RE = re.compile(r"\bselect\b", flags=re.IGNORECASE)
_CROSS_JOIN_RE = re.compile(r"\bcross\s+join\b", flags=re.IGNORECASE)
_JOIN_RE = re.compile(r"\bjoin\b", flags=re.IGNORECASE)
_JOIN_CONDITION_RE = re.compile(r"\b(on|using)\b", flags=re.IGNORECASE)
_COMMA_JOIN_RE = re.compile(
    r"\bfrom\s+[a-z_]\w*(?:\s+(?:as\s+)?[a-z_]\w*)?\s*,\s*[a-z_]\w*", flags=re.IGNORECASE
)
_EQUI_CONDITION_RE = re.compile(r"\b[a-z_]\w*\.[a-z_]\w*\s*=\s*[a-z_]\w*\.[a-z_]\w*", flags=re.IGNORECASE)
_COMMENT_RE = re.compile(r"--|/\*")
_FINAL_LIMIT_RE = re.compile(r"\blimit\s+(\d+|all)\b(?=(?:\s+offset\s+\d+)?\s*$)", flags=re.IGNORECASE)
_ON_CLAUSE_RE = re.compile(
    r"\bon\s+(.+?)(?=\b(?:where|join|inner|left|right|full|natural|group|order|limit|offset|having|union"
    r"|intersect|except|window)\b|\)|$)",
    flags=re.IGNORECASE | re.DOTALL,
)
_COLUMN_EQUALITY_RE = re.compile(
    r"(?<![\w.])((?:[a-z_]\w*\.)?[a-z_]\w*)\s*(?:=|<>|!=|<=|>=|<|>)\s*((?:[a-z_]\w*\.)?[a-z_]\w*)(?![\w.(])",
    flags=re.IGNORECASE,
)
_CONSTANTS = frozenset({"true", "false", "null"})
_EXTRACT_FIELD_RE = re.compile(r"\bextract\s*\(\s*\w+\s+from\b", flags=re.IGNORECASE)
_CAST_RE = re.compile(r"::\s*[a-z_]\w*(?:\s+precision)?", flags=re.IGNORECASE)
_QUOTED_IDENT_RE = re.compile(r'"([a-z_]\w*)"', flags=re.IGNORECASE)
_NOT_ALIAS = (
    r"(?!(?:where|join|on|using|inner|left|right|full|cross|natural|group|order|"
    r"limit|offset|having|union|intersect|except|window)\b)"
)
_SOURCE_RE = re.compile(
    r"\b(from|join)\s+([a-z_]\w*)(?:\s+(?:as\s+)?" + _NOT_ALIAS + r"([a-z_]\w*))?",
    flags=re.IGNORECASE,
)
_NEXT_SOURCE_RE = re.compile(
    r"\s*,\s*([a-z_]\w*)(?:\s+(?:as\s+)?" + _NOT_ALIAS + r"([a-z_]\w*))?",
    flags=re.IGNORECASE,
)
_CTE_RE = re.compile(r"(?:\bwith(?:\s+recursive)?|,)\s*([a-z_]\w*)\s+as\s*\(", flags=re.IGNORECASE)
_ALIAS_RE = re.compile(r"\bas\s+([a-z_]\w*)", flags=re.IGNORECASE)
_IDENT_RE = re.compile(r"(?<![\w.])([a-z_]\w*)(?:\.([a-z_]\w*|\*))?", flags=re.IGNORECASE)


def _strip(query_text: str) -> str:
    value = _FENCE_RE.sub("", (query_text or "").strip()).strip()
    while value.endswith(";"):
        value = value[:-1].rstrip()
    return value


def _mask_literals(text: str) -> str:
    return _STRING_RE.sub("''", text)


def _outside_literals(text: str, transform: Callable[[str], str]) -> str:
    """Apply `transform` to every part of `text` that is not a string literal."""

    parts: list[str] = []
    position = 0
    for match in _STRING_RE.finditer(text):
        parts.append(transform(text[position : match.start()]))
        parts.append(match.group(0))
        position = match.end()
    parts.append(transform(text[position:]))
    return "".join(parts)


def _check_statement(masked: str) -> None:
    if _COMMENT_RE.search(masked):
        raise QuerySafetyError("SQL comments are not allowed")
    if ";" in masked:
        raise QuerySafetyError("Multiple statements are not allowed")
    leading = _LEADING_RE.match(masked)
    if leading is None:
        raise QuerySafetyError("Only SELECT queries are allowed")
    if leading.group(1).lower() == "with" and not _SELECT_RE.search(masked):
        raise QuerySafetyError("WITH clause must be followed by a SELECT")


def _check_joins(masked: str) -> None:
    if _CROSS_JOIN_RE.search(masked):
        raise QuerySafetyError("CROSS JOIN is not allowed")
    if len(_JOIN_RE.findall(masked)) > len(_JOIN_CONDITION_RE.findall(masked)):
        raise QuerySafetyError("JOIN without a join condition is not allowed")
    if _COMMA_JOIN_RE.search(masked) and not _EQUI_CONDITION_RE.search(masked):
        raise QuerySafetyError("Comma join without a join condition is not allowed")
    for clause in _ON_CLAUSE_RE.finditer(masked):
        if not any(
            left.lower() != right.lower() and not {left.lower(), right.lower()} & _CONSTANTS
            for left, right in _COLUMN_EQUALITY_RE.findall(clause.group(1))
        ):
            raise QuerySafetyError("JOIN condition must compare columns of the joined tables")


def _sources(masked: str, ctes: set[str]) -> list[tuple[str, str | None]]:
    scan = _EXTRACT_FIELD_RE.sub("extract(", masked)
    sources: list[tuple[str, str | None]] = []
    for match in _SOURCE_RE.finditer(scan):
        found = [(match.group(2), match.group(3))]
        if match.group(1).lower() == "from":
            position = match.end()
            follow = _NEXT_SOURCE_RE.match(scan, position)
            while follow is not None:
                found.append((follow.group(1), follow.group(2)))
                position = follow.end()
                follow = _NEXT_SOURCE_RE.match(scan, position)
        for name, alias in found:
            table = name.lower()
            if table not in ALLOWED_TABLES and table not in ctes:
                raise QuerySafetyError(f"Unknown table: {table}")
            sources.append((table, alias.lower() if alias else None))
    return sources


def _qualify_join(text: str, sources: list[tuple[str, str | None]]) -> str:
    """Alias joined tables and qualify columns that more than one of them defines."""

    tables = list(dict.fromkeys(table for table, _ in sources if table in TABLE_ALIASES))
    ambiguous: dict[str, str] = {}
    for index, table in enumerate(tables):
        for other in tables[index + 1 :]:
            for column in set(COLUMN_DICTIONARY[table]) & set(COLUMN_DICTIONARY[other]):
                ambiguous.setdefault(column, TABLE_ALIASES[table])

    def transform(segment: str) -> str:
        for table in tables:
            alias = TABLE_ALIASES[table]
            segment = re.sub(rf"\b{table}\.", f"{alias}.", segment, flags=re.IGNORECASE)
            segment = re.sub(
                rf"\b(from|join)\s+{table}\b", rf"\1 {table} {alias}", segment, flags=re.IGNORECASE
            )
        if ambiguous:
            names = "|".join(sorted(ambiguous))
            segment = re.sub(
                rf"(\bas\s+)?(?<![\w.])\b({names})\b(?!\s*\()",
                lambda m: m.group(0) if m.group(1) else f"{ambiguous[m.group(2).lower()]}.{m.group(2)}",
                segment,
                flags=re.IGNORECASE,
            )
        return segment

    logger.debug("qualified join tables=%s ambiguous=%s", ",".join(tables), ",".join(sorted(ambiguous)))
    return _outside_literals(text, transform)


def _check_columns(masked: str) -> None:
    scan = _CAST_RE.sub(" ", _EXTRACT_FIELD_RE.sub("extract(", _QUOTED_IDENT_RE.sub(r"\1", masked)))
    ctes = {name.lower() for name in _CTE_RE.findall(scan)}
    sources = _sources(scan, ctes)
    qualifiers = {table for table, _ in sources} | {alias for _, alias in sources if alias}
    output_aliases = {alias.lower() for alias in _ALIAS_RE.findall(scan)}
    known_columns = all_columns()

    for match in _IDENT_RE.finditer(scan):
        name = match.group(1).lower()
        member = match.group(2)
        rest = scan[match.end() :].lstrip()
        if rest.startswith("("):
            if member is not None:
                raise QuerySafetyError(f"Function not allowed: {name}.{member}")
            if name not in _FUNCTIONS and name not in _KEYWORDS and name not in ctes:
                raise QuerySafetyError(f"Function not allowed: {name}")
            continue
        if member is not None:
            if name in ctes or member == "*":
                continue
            if name not in qualifiers:
                raise QuerySafetyError(f"Unknown table or alias: {name}")
            if member.lower() not in known_columns:
                raise QuerySafetyError(f"Unknown column: {name}.{member}")
            continue
        if (
            name in _KEYWORDS
            or name in known_columns
            or name in output_aliases
            or name in qualifiers
            or name in ctes
        ):
            continue
        raise QuerySafetyError(f"Unknown column: {name}")


def validate(query_text: str, *, row_limit: int = DEFAULT_ROW_LIMIT) -> str:
    """Sanitize and validate a read-only query.

    Strategy:
        1) Strip code fences and trailing statement separators.
        2) Reject denylisted keywords anywhere in the text, SQL comments, multiple statements and
           anything that does not start with SELECT (or WITH ... SELECT).
        3) Reject CROSS JOIN, joins without a join condition and ON conditions that compare no
           columns (`ON true`, `ON 1 = 1`).
        4) When known tables are joined without aliases, alias them and qualify ambiguous columns.
        5) Reject unknown tables, columns and functions outside the allowlist.
        6) Append a LIMIT when the statement does not end with one; `LIMIT ALL` becomes the ceiling.

    Returns:
        The sanitized query text.

    Raises:
        QuerySafetyError: If the query is rejected.
    """

    if row_limit < 1:
        raise ValueError("row_limit must be >= 1")

    text = _strip(query_text)
    if not text:
        raise QuerySafetyError("Query is empty")

    denied = _DENY_RE.search(text)
    if denied is not None:
        raise QuerySafetyError(f"Forbidden keyword: {denied.group(1).upper()}")

    masked = _mask_literals(text)
    _check_statement(masked)
    _check_joins(masked)

    scan = _EXTRACT_FIELD_RE.sub("extract(", masked)
    ctes = {name.lower() for name in _CTE_RE.findall(scan)}
    sources = _sources(scan, ctes)
    joined = {table for table, _ in sources if table in TABLE_ALIASES}
    if len(joined) > 1 and _JOIN_RE.search(masked) and not any(alias for _, alias in sources):
        text = _qualify_join(text, sources)
        masked = _mask_literals(text)

    _check_columns(masked)

    final_limit = _FINAL_LIMIT_RE.search(masked)
    if final_limit is None:
        return f"{text} LIMIT {row_limit}"
    if final_limit.group(1).lower() == "all":
        # The match lies after the last literal, so its offset from the end is the same in `text`.
        start = len(text) - (len(masked) - final_limit.start())
        end = len(text) - (len(masked) - final_limit.end())
        text = f"{text[:start]}LIMIT {row_limit}{text[end:]}"
    return text
