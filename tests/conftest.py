"""Pytest configuration.

The repository uses a flat `src/` layout. This conftest makes the `src.*` namespace importable when
running `pytest` without installing the project, and offers a fake model transport.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

# Ensure `import src...` works when running pytest without installing the package.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))


def chat_reply(content: str, status_code: int = 200) -> httpx.Response:
    """A chat-completions response whose message content is `content`."""

    return httpx.Response(status_code, json={"choices": [{"message": {"content": content}}]})


class FakeModel:
    """Scripted chat-completions endpoint that records every request."""

    def __init__(self, *replies: httpx.Response | Callable[[httpx.Request], httpx.Response]) -> None:
        self._replies = list(replies)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        return reply(request) if callable(reply) else reply

    @property
    def calls(self) -> int:
        return len(self.requests)

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def fake_model() -> Callable[..., FakeModel]:
    return FakeModel


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reply() -> Callable[..., httpx.Response]:
    return chat_reply
