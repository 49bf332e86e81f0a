"""Routing decision schema.

A `RouterDecision` is the only output of the routing pipeline. It is immutable: later stages derive
new decisions with `model_copy(update=...)` instead of mutating earlier ones.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.intent.schema import Intent, Parameters


class Task(StrEnum):
    """Execution strategy for a question (wire values are lower-case short names)."""

    structured_query = "sql"
    retrieval = "rag"
    optimization_advice = "optimize"


class RouteSource(StrEnum):
    """Which stage produced the decision."""

    deterministic = "deterministic"
    llm = "llm"


class RouterDecision(BaseModel):
    """Confidence-annotated routing decision handed to the execution collaborators."""

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    task: Task
    confidence: float = Field(ge=0, le=1)
    reason: str = Field(min_length=1)
    intent: Intent = Intent.data_retrieval
    intent_confidence: float = Field(default=0.0, ge=0, le=1)
    matched_keywords: tuple[str, ...] = ()
    parameters: Parameters = Field(default_factory=Parameters)
    generated_query: str | None = None
    namespaces: tuple[str, ...] = ()
    template_used: str | None = None
    route_source: RouteSource = RouteSource.deterministic
    original_question: str = ""

    @field_validator("confidence", "intent_confidence")
    @classmethod
    def round_confidence(cls, value: float) -> float:
        """Validate confidences and keep two decimals for stable logs and snapshots."""

        return round(value, 2)


class ConversationTurn(BaseModel):
    """One prior exchange from chat history."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    question: str
    answer: str = ""
    task: Task | None = None
