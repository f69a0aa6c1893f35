from __future__ import annotations

from typing import Any

import pytest

from openrouter_client.contracts import ModelInfo
from openrouter_client.families import schema_strategy_for


class FakeBackend:
    """Replays scripted provider replies and records every request body."""

    def __init__(self, replies: list[Any], *, has_vision: bool = False):
        self.replies = list(replies)
        self.bodies: list[dict[str, Any]] = []
        self.has_vision = has_vision
        self.closed = False

    def identify(self, model: str) -> ModelInfo:
        return ModelInfo(
            provider="fake",
            model_name=model,
            has_vision=self.has_vision,
            schema_strategy=schema_strategy_for(model),
        )

    async def complete_once(self, body: dict[str, Any]) -> dict[str, Any]:
        self.bodies.append(body)
        reply = self.replies[0] if len(self.replies) == 1 else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self) -> None:
        self.closed = True


def reply_with(content: str | None) -> dict[str, Any]:
    return {
        "id": "gen-1",
        "model": "m",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }


@pytest.fixture
def make_backend():
    def _make(*replies: Any, has_vision: bool = False) -> FakeBackend:
        return FakeBackend(list(replies), has_vision=has_vision)

    return _make


@pytest.fixture
def reply():
    return reply_with


@pytest.fixture
def log_lines():
    lines = []
    return lines
