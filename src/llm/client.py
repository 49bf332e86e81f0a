"""OpenAI-compatible chat-completions client.

The model is only ever asked for JSON (routing decisions, schema plans, intent picks) or for query
text that is validated downstream. Every failure is mapped onto the `LLMClientError` hierarchy so
callers can tell transport problems (retryable) from structural ones (not retryable).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from src.config.settings import Settings

logger = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


class LLMClientError(RuntimeError):
    """Base class for model call failures."""


class LLMResponseError(LLMClientError):
    """Raised when the model answers with something other than the expected JSON structure."""


class LLMTransportError(LLMClientError):
    """Raised on timeouts, connection errors and non-2xx responses."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Timeouts, connection errors, 429 and 5xx are worth another attempt; other 4xx are not."""

        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class CircuitOpenError(LLMClientError):
    """Raised without any I/O while the circuit breaker rejects calls."""

    def __init__(self, message: str, *, retry_after_s: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after_s = retry_after_s


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for the OpenAI-style Chat Completions API call."""

    api_key: str
    model: str = "gpt-4o-mini"
    api_base: str = "https://api.openai.com/v1"
    timeout_s: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> LLMConfig | None:
        """Build the config, or return None when model-assisted stages are disabled."""

        if not settings.llm_enabled or not settings.llm_api_key:
            return None
        return cls(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            api_base=settings.llm_api_base,
            timeout_s=settings.llm_timeout_s,
        )


def load_prompt(name: str) -> str:
    return (_PROMPTS_DIR / f"{name}.md").read_text(encoding="utf-8")


def _strip_code_fences(text: str) -> str:
    value = (text or "").strip()
    if value.startswith("```"):
        value = value.strip("`").strip()
        # After stripping backticks, drop a leading language marker.
        for marker in ("json", "sql"):
            if value.lower().startswith(marker):
                value = value[len(marker) :]
                break
        value = value.strip()
    return value


def _chat_completions_url(api_base: str) -> str:
    return api_base.rstrip("/") + "/chat/completions"


class LLMClient:
    """Async chat-completions client.

    A transport can be injected (tests use `httpx.MockTransport`); otherwise httpx's default
    network transport is used. A fresh `httpx.AsyncClient` is opened per call so the client holds no
    connection state between requests.
    """

    def __init__(self, config: LLMConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport

    @property
    def config(self) -> LLMConfig:
        return self._config

    async def _complete(self, system_prompt: str, user_content: str, *, timeout_s: float | None) -> str:
        payload = {
            "model": self._config.model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
        }
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=timeout_s or self._config.timeout_s,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    _chat_completions_url(self._config.api_base),
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise LLMTransportError("LLM request timed out") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise LLMTransportError(f"LLM HTTP error: {status}", status_code=status) from exc
        except httpx.RequestError as exc:
            raise LLMTransportError("LLM connection error") from exc

        try:
            decoded = response.json()
            content = decoded["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError("Unexpected LLM response format") from exc
        if not isinstance(content, str):
            raise LLMResponseError("Unexpected LLM response format")
        return content

    async def chat_text(self, system_prompt: str, user_content: str, *, timeout_s: float | None = None) -> str:
        """Return the model's reply with code fences removed."""

        content = await self._complete(system_prompt, user_content, timeout_s=timeout_s)
        return _strip_code_fences(content)

    async def chat_json(
        self,
        system_prompt: str,
        user_content: str,
        *,
        timeout_s: float | None = None,
    ) -> dict[str, Any]:
        """Call the model and return the decoded JSON object.

        Raises:
            LLMTransportError: On timeouts, connection errors and non-2xx responses.
            LLMResponseError: If the reply is not a JSON object.
        """

        content = await self._complete(system_prompt, user_content, timeout_s=timeout_s)
        try:
            decoded = json.loads(_strip_code_fences(content))
        except json.JSONDecodeError as exc:
            logger.warning("llm reply is not json model=%s", self._config.model)
            raise LLMResponseError("LLM did not return valid JSON") from exc
        if not isinstance(decoded, dict):
            raise LLMResponseError("LLM did not return a JSON object")
        return decoded
