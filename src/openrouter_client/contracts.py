from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from .families import SchemaStrategy


@dataclass(frozen=True)
class ModelInfo:
    provider: str
    model_name: str
    has_vision: bool = False
    schema_strategy: SchemaStrategy = SchemaStrategy.NATIVE


class ChatCompletionBackend(Protocol):
    """What the client needs from a provider: model metadata and one non-streaming call."""

    def identify(self, model: str) -> ModelInfo: ...

    async def complete_once(self, body: dict[str, Any]) -> dict[str, Any]: ...

    async def close(self) -> None: ...
