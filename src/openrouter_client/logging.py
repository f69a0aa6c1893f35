from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias, cast

import structlog


_SENSITIVE_KEYS = {"authorization", "api_key", "openrouter_api_key"}


_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9._-]{6,})")

ProcessorReturn: TypeAlias = Mapping[str, Any] | str | bytes | bytearray | tuple[Any, ...]
Processor: TypeAlias = Callable[[Any, str, MutableMapping[str, Any]], ProcessorReturn]


def _redact_str(value: str, *, secrets: list[str]) -> str:
    out = value
    for secret in secrets:
        if secret and secret in out:
            out = out.replace(secret, "[REDACTED]")
    out = _BEARER_RE.sub("Bearer [REDACTED]", out)
    return out


def _redact_obj(obj: Any, *, secrets: list[str]) -> Any:
    if obj is None:
        return None
    if isinstance(obj, str):
        return _redact_str(obj, secrets=secrets)
    if isinstance(obj, (int, float, bool)):
        return obj
    if isinstance(obj, list):
        return [_redact_obj(v, secrets=secrets) for v in obj]
    if isinstance(obj, tuple):
        return tuple(_redact_obj(v, secrets=secrets) for v in obj)
    if isinstance(obj, dict):
        redacted: dict[Any, Any] = {}
        for k, v in obj.items():
            key_str = str(k).lower()
            if key_str in _SENSITIVE_KEYS or key_str.endswith("api_key"):
                redacted[k] = "[REDACTED]"
            else:
                redacted[k] = _redact_obj(v, secrets=secrets)
        return redacted
    return obj


def _make_redaction_processor(*, secrets: list[str]) -> Processor:
    secrets_norm = [s for s in secrets if isinstance(s, str) and s]

    def _processor(_logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]) -> ProcessorReturn:
        return cast(dict[str, Any], _redact_obj(event_dict, secrets=secrets_norm))

    return _processor


def configure_logging(level: str = "INFO", fmt: str = "json", *, secrets: list[str] | None = None) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))

    processors: list[Processor] = [
        cast(Processor, structlog.contextvars.merge_contextvars),
        cast(Processor, structlog.processors.add_log_level),
        cast(Processor, structlog.processors.TimeStamper(fmt="iso")),
    ]

    if secrets:
        processors.append(_make_redaction_processor(secrets=secrets))

    if fmt == "json":
        processors.append(cast(Processor, structlog.processors.JSONRenderer()))
    else:
        processors.append(cast(Processor, structlog.dev.ConsoleRenderer()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        cache_logger_on_first_use=True,
    )


AuxiliaryType: TypeAlias = Literal["object", "string", "html", "integer", "float", "boolean"]

_LEVEL_METHODS = {0: "error", 1: "info", 2: "debug"}


@dataclass(frozen=True)
class AuxiliaryValue:
    value: str
    type: AuxiliaryType


@dataclass(frozen=True)
class LogLine:
    """Structured event handed to the caller's logger callback.

    ``level`` follows the host convention: 0 error, 1 info, 2 debug.
    """

    category: str
    message: str
    level: int = 1
    auxiliary: dict[str, AuxiliaryValue] = field(default_factory=dict)


LogCallback: TypeAlias = Callable[[LogLine], None]


def aux_string(value: Any) -> AuxiliaryValue:
    return AuxiliaryValue(value="" if value is None else str(value), type="string")


def aux_integer(value: int) -> AuxiliaryValue:
    return AuxiliaryValue(value=str(value), type="integer")


def aux_object(value: Any) -> AuxiliaryValue:
    return AuxiliaryValue(value=json.dumps(value, default=str), type="object")


def structlog_sink(line: LogLine) -> None:
    """Default logger callback: forwards a LogLine to structlog."""
    logger = structlog.get_logger(line.category)
    method = getattr(logger, _LEVEL_METHODS.get(line.level, "debug"))
    method(line.message, category=line.category, **{k: v.value for k, v in line.auxiliary.items()})
