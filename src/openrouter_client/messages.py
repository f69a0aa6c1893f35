from __future__ import annotations

import base64
from typing import Any

from .errors import ConfigurationError
from .openai_compat import ConversationTurn, ImageAttachment, ImagePart, ImageUrl, TextPart, ToolDefinition

_TEXT_ONLY_ROLES = ("system", "assistant")


def _wire_part(part: TextPart | ImagePart) -> dict[str, Any]:
    if isinstance(part, ImagePart):
        return {"type": "image_url", "image_url": {"url": part.image_url.url}}
    return {"type": "text", "text": part.text}


def format_messages(turns: list[ConversationTurn]) -> list[dict[str, Any]]:
    """Project conversation turns onto the chat-completions wire shape.

    String content always becomes a user turn. Array content keeps its role;
    system and assistant turns drop image parts, user turns keep both kinds.
    """
    out: list[dict[str, Any]] = []
    for turn in turns:
        if not isinstance(turn.content, list):
            out.append({"role": "user", "content": turn.content})
            continue

        if turn.role not in _TEXT_ONLY_ROLES and turn.role != "user":
            raise ConfigurationError(f"Unsupported message role: {turn.role!r}")
        parts = [_wire_part(p) for p in turn.content]
        if turn.role in _TEXT_ONLY_ROLES:
            parts = [p for p in parts if p["type"] == "text"]
        out.append({"role": turn.role, "content": parts})
    return out


def image_turn(image: ImageAttachment) -> ConversationTurn:
    encoded = base64.b64encode(image.buffer).decode("ascii")
    parts: list[TextPart | ImagePart] = []
    if image.description:
        parts.append(TextPart(text=image.description))
    parts.append(ImagePart(image_url=ImageUrl(url=f"data:image/png;base64,{encoded}")))
    return ConversationTurn(role="user", content=parts)


def build_tool_declarations(tools: list[ToolDefinition] | None) -> list[dict[str, Any]] | None:
    if not tools:
        return None
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }
        for tool in tools
    ]
