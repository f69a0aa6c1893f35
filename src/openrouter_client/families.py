from __future__ import annotations

from enum import Enum

# Models that follow a textual schema instruction but reject `response_format`.
INSTRUCTION_FOLLOWING_PREFIXES: tuple[str, ...] = ("google/gemini",)


class SchemaStrategy(str, Enum):
    NATIVE = "native"
    INSTRUCTION = "instruction"


def schema_strategy_for(model: str) -> SchemaStrategy:
    if model.startswith(INSTRUCTION_FOLLOWING_PREFIXES):
        return SchemaStrategy.INSTRUCTION
    return SchemaStrategy.NATIVE
