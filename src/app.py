"""Application composition root.

This module wires configuration, the shared circuit breaker, the quick-context cache and the
optional model stages into one `RoutingPipeline`.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from src.config.settings import Settings
from src.llm.client import LLMClient, LLMConfig
from src.llm.followup import FollowUpAssistant
from src.llm.intent_selector import IntentSelector
from src.llm.resilience import CircuitBreaker
from src.llm.router import LLMRouter
from src.llm.two_stage import TwoStageGenerator
from src.routing.context_cache import QuickContextCache
from src.routing.pipeline import RoutingPipeline


@dataclass(frozen=True)
class App:
    """Process-wide services shared by every request."""

    settings: Settings
    breaker: CircuitBreaker
    context_cache: QuickContextCache
    pipeline: RoutingPipeline

    def reset(self) -> None:
        """Clear breaker and cache state (tests)."""

        self.breaker.reset()
        self.context_cache.reset()


def create_app(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> App:
    """Create the application container.

    Note:
        Model stages are wired only when `LLM_ENABLED` is set with an API key; otherwise routing is
        fully deterministic.
    """

    breaker = CircuitBreaker(
        failure_threshold=settings.breaker_failure_threshold,
        window_s=settings.breaker_window_s,
        cooldown_s=settings.breaker_cooldown_s,
    )
    cache = QuickContextCache(ttl_s=settings.quick_context_ttl_s)
    namespaces = tuple(settings.namespaces)
    pipeline = RoutingPipeline(
        context_cache=cache,
        namespaces=namespaces,
        row_limit=settings.query_row_limit,
        model_timeout_s=settings.llm_timeout_s * 3,
    )

    config = LLMConfig.from_settings(settings)
    if config is not None:
        client = LLMClient(config, transport=transport)
        pipeline.llm_router = LLMRouter(client, breaker, namespaces=namespaces)
        pipeline.intent_selector = IntentSelector(client, breaker=breaker)
        pipeline.followup_assistant = FollowUpAssistant(client, breaker=breaker)
        pipeline.generator = TwoStageGenerator(client, breaker=breaker)

    return App(settings=settings, breaker=breaker, context_cache=cache, pipeline=pipeline)
