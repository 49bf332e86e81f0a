"""Allowlisted SQL identifiers.

All table and column names referenced in generated SQL must come from these mappings; no
user-provided identifier should ever be interpolated into SQL.
"""

from __future__ import annotations

PRODUCTION_TABLE = "production_summary"
TRIPS_TABLE = "trip_summary_by_date"
EQUIPMENT_TABLE = "equipment"
UPLOADED_FILES_TABLE = "uploaded_files"

COLUMN_DICTIONARY: dict[str, tuple[str, ...]] = {
    PRODUCTION_TABLE: (
        "date",
        "shift",
        "excavator",
        "dumper",
        "trip_count_for_mining",
        "qty_ton",
        "trip_count_for_reclaim",
        "qty_m3",
        "total_trips",
        "grader",
        "dozer",
        "target_ton",
        "target_m3",
    ),
    TRIPS_TABLE: (
        "trip_date",
        "shift",
        "tipper_id",
        "excavator",
        "route_or_face",
        "trip_count",
    ),
    EQUIPMENT_TABLE: ("id", "name", "type"),
    UPLOADED_FILES_TABLE: ("id", "filename", "uploaded_at"),
}

ALLOWED_TABLES: frozenset[str] = frozenset(COLUMN_DICTIONARY)

DATE_COLUMNS: dict[str, str] = {
    PRODUCTION_TABLE: "date",
    TRIPS_TABLE: "trip_date",
}

# Stable ordering for "Nth row" requests.
ORDINAL_SORT_COLUMNS: dict[str, str] = {
    PRODUCTION_TABLE: '"date"',
    TRIPS_TABLE: "trip_date",
    EQUIPMENT_TABLE: "id",
    UPLOADED_FILES_TABLE: "id",
}

TIPPER_COLUMN = "tipper_id"
EXCAVATOR_COLUMN = "excavator"
TIPPER_ID_PREFIXES: tuple[str, ...] = ("BB-", "DT-")
EXCAVATOR_ID_PREFIXES: tuple[str, ...] = ("EX-",)


def all_columns() -> frozenset[str]:
    """Every column known to any table."""

    return frozenset(column for columns in COLUMN_DICTIONARY.values() for column in columns)


def equipment_column(equipment_id: str) -> str | None:
    """Trip-table column that holds `equipment_id`, judged by its prefix."""

    value = equipment_id.upper()
    if value.startswith(TIPPER_ID_PREFIXES):
        return TIPPER_COLUMN
    if value.startswith(EXCAVATOR_ID_PREFIXES):
        return EXCAVATOR_COLUMN
    return None


def describe_schema() -> str:
    """Human-readable table/column listing used in model prompts."""

    return "\n".join(f"{table}({', '.join(columns)})" for table, columns in COLUMN_DICTIONARY.items())
