from __future__ import annotations

import json
import re
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .openai_compat import ResponseModel

_OPENING_FENCE_RE = re.compile(r"^\s*```(?:json)?\n?")
_CLOSING_FENCE_RE = re.compile(r"\n?```\s*$")


@lru_cache(maxsize=128)
def _adapter(schema: Any) -> TypeAdapter[Any]:
    return TypeAdapter(schema)


def validation_error(schema: Any, value: Any) -> ValidationError | None:
    try:
        _adapter(schema).validate_python(value)
    except ValidationError as e:
        return e
    return None


def matches(schema: Any, value: Any) -> bool:
    return validation_error(schema, value) is None


def json_schema_for(schema: Any) -> dict[str, Any]:
    return _adapter(schema).json_schema()


def _strict_node(node: Any) -> Any:
    if isinstance(node, list):
        return [_strict_node(v) for v in node]
    if not isinstance(node, dict):
        return node
    out: dict[str, Any] = {}
    for k, v in node.items():
        if k == "default":
            continue
        if k in ("properties", "$defs") and isinstance(v, dict):
            out[k] = {name: _strict_node(sub) for name, sub in v.items()}
        else:
            out[k] = _strict_node(v)
    if out.get("type") == "object" and isinstance(out.get("properties"), dict):
        out["additionalProperties"] = False
        out["required"] = list(out["properties"])
    return out


def strict_json_schema_for(schema: Any) -> dict[str, Any]:
    """JSON schema accepted by strict structured output.

    Every object closes ``additionalProperties`` and lists all of its
    properties as required; optional fields stay nullable through their type.
    """
    return _strict_node(json_schema_for(schema))


def schema_instruction(response_model: ResponseModel) -> str:
    return (
        "Please format your response according to this schema:\n"
        f"{json.dumps(json_schema_for(response_model.schema))}\n\n"
        "Respond with only the JSON object, no additional text or formatting."
    )


def response_format_for(response_model: ResponseModel) -> dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": response_model.name,
            "schema": strict_json_schema_for(response_model.schema),
            "strict": True,
        },
    }


def strip_code_fences(text: str) -> str:
    text = _OPENING_FENCE_RE.sub("", text)
    text = _CLOSING_FENCE_RE.sub("", text)
    return text.strip()
