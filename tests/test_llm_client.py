"""Tests for the chat-completions client (mock transport, no network)."""

from __future__ import annotations

import httpx
import pytest

from src.config.settings import Settings
from src.llm.client import LLMClient, LLMConfig, LLMResponseError, LLMTransportError, load_prompt


def _client(model) -> LLMClient:
    config = LLMConfig(api_key="secret", model="test-model", api_base="http://llm.test/v1/")
    return LLMClient(config, transport=model.transport())


@pytest.mark.asyncio
async def test_chat_json_posts_prompt_and_decodes_reply(fake_model, reply) -> None:
    model = fake_model(reply('```json\n{"task": "sql", "confidence": 0.9}\n```'))

    result = await _client(model).chat_json("system prompt", "question")

    assert result == {"task": "sql", "confidence": 0.9}
    request = model.requests[0]
    assert str(request.url) == "http://llm.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer secret"
    payload = model.payload()
    assert payload["model"] == "test-model"
    assert payload["temperature"] == 0
    assert payload["messages"] == [
        {"role": "system", "content": "system prompt"},
        {"role": "user", "content": "question"},
    ]


@pytest.mark.asyncio
async def test_chat_text_strips_sql_fence(fake_model, reply) -> None:
    model = fake_model(reply("```sql\nSELECT date FROM production_summary\n```"))
    assert await _client(model).chat_text("s", "u") == "SELECT date FROM production_summary"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("content", "message"),
    [("not json", "valid JSON"), ("[1, 2]", "JSON object")],
)
async def test_structural_errors(fake_model, reply, content: str, message: str) -> None:
    model = fake_model(reply(content))
    with pytest.raises(LLMResponseError, match=message):
        await _client(model).chat_json("s", "u")


@pytest.mark.asyncio
async def test_unexpected_envelope_is_a_structural_error(fake_model) -> None:
    model = fake_model(httpx.Response(200, json={"data": []}))
    with pytest.raises(LLMResponseError, match="Unexpected"):
        await _client(model).chat_json("s", "u")


@pytest.mark.asyncio
@pytest.mark.parametrize(("status", "retryable"), [(500, True), (429, True), (401, False)])
async def test_http_errors_map_to_transport_errors(fake_model, reply, status: int, retryable: bool) -> None:
    model = fake_model(reply("", status_code=status))
    with pytest.raises(LLMTransportError) as excinfo:
        await _client(model).chat_json("s", "u")
    assert excinfo.value.status_code == status
    assert excinfo.value.retryable is retryable


@pytest.mark.asyncio
async def test_timeouts_map_to_retryable_transport_errors(fake_model) -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    model = fake_model(timeout)
    with pytest.raises(LLMTransportError, match="timed out") as excinfo:
        await _client(model).chat_json("s", "u")
    assert excinfo.value.retryable


def test_config_from_settings() -> None:
    assert LLMConfig.from_settings(Settings(_env_file=None)) is None

    config = LLMConfig.from_settings(Settings(LLM_ENABLED=True, LLM_API_KEY="k", LLM_TIMEOUT_S=12, _env_file=None))
    assert config is not None
    assert config.api_key == "k"
    assert config.timeout_s == 12


def test_prompts_are_packaged() -> None:
    assert load_prompt("routing").strip()
