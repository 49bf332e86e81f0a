"""Two-stage query generation for questions no deterministic builder recognises.

Stage 1 resolves which table and columns answer the question (a JSON plan checked against the
column dictionary). Stage 2 writes the query against that plan. Known model mistakes are then
rewritten. If either stage throws, a single-stage generator is used instead.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from src.intent.schema import Parameters
from src.llm.client import LLMClient, LLMClientError, LLMResponseError, load_prompt
from src.llm.resilience import CircuitBreaker, RetryPolicy, retry_with_backoff
from src.sql.builders.patterns import TRIPS_RE
from src.sql.columns import ALLOWED_TABLES, COLUMN_DICTIONARY, PRODUCTION_TABLE, TRIPS_TABLE, describe_schema

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_STAGE_POLICY = RetryPolicy(max_attempts=2, initial_delay_s=0.5, timeout_s=15.0)
QUERY_STAGE_POLICY = RetryPolicy(max_attempts=2, initial_delay_s=0.5, timeout_s=20.0)

_EQUIPMENT_WORDS_RE = re.compile(r"\b(tippers?|excavators?|routes?|faces?)\b", flags=re.IGNORECASE)
_SOURCE_TABLE_RE = re.compile(r"\b(?:from|join)\s+([a-z_]\w*)", flags=re.IGNORECASE)
_CONTRADICTION_RE = re.compile(
    r"(\b(\w+)\s*=\s*('[^']*'|\d+))\s+AND\s+\2\s*(?:<>|!=)\s*(?:'[^']*'|\d+)",
    flags=re.IGNORECASE,
)


@dataclass(frozen=True)
class SchemaPlan:
    """Stage-1 output: where the answer lives."""

    primary_table: str
    columns: tuple[str, ...]
    join_table: str | None = None
    aggregation: str | None = None
    order_by: str | None = None
    limit: int | None = None

    def as_prompt(self) -> str:
        return json.dumps(
            {
                "primary_table": self.primary_table,
                "columns": list(self.columns),
                "join_table": self.join_table,
                "aggregation": self.aggregation,
                "order_by": self.order_by,
                "limit": self.limit,
            }
        )


def plan_from_payload(payload: dict[str, Any]) -> SchemaPlan:
    """Validate a stage-1 reply against the column dictionary.

    Raises:
        LLMResponseError: On unknown tables or columns, or malformed fields.
    """

    table = payload.get("primary_table")
    if table not in ALLOWED_TABLES:
        raise LLMResponseError(f"unknown table: {table!r}")
    join_table = payload.get("join_table") or None
    if join_table is not None and join_table not in ALLOWED_TABLES:
        raise LLMResponseError(f"unknown join table: {join_table!r}")

    columns = payload.get("columns") or []
    if not isinstance(columns, list) or not all(isinstance(c, str) for c in columns):
        raise LLMResponseError("columns must be a list of names")
    known = set(COLUMN_DICTIONARY[table]) | set(COLUMN_DICTIONARY.get(join_table or "", ()))
    unknown = [c for c in columns if c not in known]
    if unknown:
        raise LLMResponseError(f"unknown columns: {', '.join(unknown)}")

    limit = payload.get("limit")
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
        raise LLMResponseError(f"invalid limit: {limit!r}")

    return SchemaPlan(
        primary_table=table,
        columns=tuple(columns),
        join_table=join_table,
        aggregation=payload.get("aggregation") or None,
        order_by=payload.get("order_by") or None,
        limit=limit,
    )


def rule_based_plan(question: str, params: Parameters) -> SchemaPlan:
    """Plan used when the stage-1 reply does not validate."""

    if TRIPS_RE.search(question) or _EQUIPMENT_WORDS_RE.search(question) or params.equipment_ids:
        return SchemaPlan(
            primary_table=TRIPS_TABLE,
            columns=("trip_date", "shift", "tipper_id", "excavator", "route_or_face", "trip_count"),
            limit=params.limit,
        )
    return SchemaPlan(
        primary_table=PRODUCTION_TABLE,
        columns=("date", "shift", "qty_ton", "qty_m3", "total_trips"),
        limit=params.limit,
    )


def _replace_column(query: str, wrong: str, right: str) -> str:
    """Replace a column reference unless the query defines `wrong` as an output alias."""

    if re.search(rf"\bas\s+{wrong}\b", query, flags=re.IGNORECASE):
        return query
    return re.sub(
        rf"(\bas\s+)?(?<![\w.:'])\b{wrong}\b(?!\s*')",
        lambda m: m.group(0) if m.group(1) else right,
        query,
        flags=re.IGNORECASE,
    )


def fix_hallucinations(query: str) -> str:
    """Rewrite column names models commonly invent for this schema."""

    tables = {t.lower() for t in _SOURCE_TABLE_RE.findall(query)}
    fixed = _replace_column(query, "total_tonnage", "qty_ton")
    fixed = _replace_column(fixed, "(?:vehicle_id|truck_id|dumper_id)", "tipper_id")
    if tables == {TRIPS_TABLE}:
        fixed = _replace_column(fixed, "(?:total_trips|trips)", "trip_count")
        fixed = _replace_column(fixed, "date", "trip_date")
    elif tables == {PRODUCTION_TABLE}:
        fixed = _replace_column(fixed, "trip_date", "date")
    fixed = _CONTRADICTION_RE.sub(r"\1", fixed)
    if fixed != query:
        logger.info("rewrote generated query tables=%s", ",".join(sorted(tables)))
    return fixed


class TwoStageGenerator:
    """Generate query text with the model; callers validate it before use."""

    def __init__(
        self,
        client: LLMClient,
        *,
        breaker: CircuitBreaker | None = None,
        schema_policy: RetryPolicy = SCHEMA_STAGE_POLICY,
        query_policy: RetryPolicy = QUERY_STAGE_POLICY,
        single_stage_policy: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._breaker = breaker
        self._schema_policy = schema_policy
        self._query_policy = query_policy
        self._single_stage_policy = single_stage_policy or RetryPolicy(timeout_s=client.config.timeout_s)

    async def _guarded(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self._breaker is None:
            return await operation()
        return await self._breaker.call(operation)

    async def resolve_schema(self, question: str, params: Parameters) -> SchemaPlan:
        request = json.dumps(
            {"question": question, "schema": describe_schema(), "parameters": params.constrained_fields()}
        )
        payload = await self._guarded(
            lambda: retry_with_backoff(
                lambda: self._client.chat_json(load_prompt("schema_stage"), request),
                self._schema_policy,
                label="schema stage",
            )
        )
        try:
            return plan_from_payload(payload)
        except LLMResponseError as exc:
            logger.info("schema stage rejected reason=%s", exc)
            return rule_based_plan(question, params)

    async def generate_against(self, question: str, plan: SchemaPlan) -> str:
        request = f"Question: {question}\nPlan: {plan.as_prompt()}\nSchema:\n{describe_schema()}"
        query = await self._guarded(
            lambda: retry_with_backoff(
                lambda: self._client.chat_text(load_prompt("query_stage"), request),
                self._query_policy,
                label="query stage",
            )
        )
        if not query.strip():
            raise LLMResponseError("query stage returned no text")
        return query

    async def generate_single_stage(self, question: str) -> str:
        request = f"Question: {question}\nSchema:\n{describe_schema()}"
        query = await self._guarded(
            lambda: retry_with_backoff(
                lambda: self._client.chat_text(load_prompt("single_stage"), request),
                self._single_stage_policy,
                label="single stage",
            )
        )
        if not query.strip():
            raise LLMResponseError("single stage returned no text")
        return fix_hallucinations(query)

    async def generate(self, question: str, params: Parameters) -> str:
        """Return generated query text.

        Raises:
            LLMClientError: If the single-stage fallback fails too.
        """

        try:
            plan = await self.resolve_schema(question, params)
            query = await self.generate_against(question, plan)
        except LLMClientError as exc:
            logger.warning("two-stage generation failed reason=%s", exc)
            return await self.generate_single_stage(question)
        return fix_hallucinations(query)
