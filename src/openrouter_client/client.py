from __future__ import annotations

import json
from typing import Any

import structlog

from .cache import BaseResponseCache, InMemoryResponseCache, JsonFileResponseCache
from .config import OpenRouterClientConfig
from .contracts import ChatCompletionBackend, ModelInfo
from .errors import ConfigurationError, FailureStage, ProviderError
from .families import SchemaStrategy
from .logging import LogCallback, LogLine, aux_integer, aux_object, aux_string, configure_logging, structlog_sink
from .messages import build_tool_declarations, format_messages, image_turn
from .metrics import (
    cache_events_total,
    completion_latency_seconds,
    completion_retries_total,
    completions_total,
    maybe_start_metrics,
)
from .openai_compat import (
    CompletionRequest,
    ConversationTurn,
    TextPart,
    extract_generation_params,
)
from .openrouter_session import OpenRouterSession
from .schema import response_format_for, schema_instruction, strip_code_fences, validation_error

log = structlog.get_logger()

DEFAULT_RETRIES = 3


def _first_message(raw: dict[str, Any]) -> dict[str, Any] | None:
    choices = raw.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    return message if isinstance(message, dict) else None


class OpenRouterClient:
    """
    Schema-guided chat completions with an optional response cache.

    ``complete`` returns the raw provider response when the request carries no
    response model, otherwise the parsed JSON value that passed validation.
    Empty replies, missing content, unparseable JSON and schema mismatches all
    draw from one retry budget; transport errors propagate immediately.
    """

    def __init__(
        self,
        backend: ChatCompletionBackend,
        *,
        cache: BaseResponseCache | None = None,
        enable_caching: bool = False,
        default_retries: int = DEFAULT_RETRIES,
    ):
        if enable_caching and cache is None:
            cache = InMemoryResponseCache()
        self.backend = backend
        self.cache = cache
        self.enable_caching = enable_caching
        self.default_retries = default_retries

    @classmethod
    def from_config(
        cls,
        cfg: OpenRouterClientConfig | None = None,
        *,
        backend: ChatCompletionBackend | None = None,
        cache: BaseResponseCache | None = None,
    ) -> OpenRouterClient:
        cfg = cfg or OpenRouterClientConfig()
        configure_logging(level=cfg.log_level, fmt=cfg.log_format, secrets=cfg.secrets())
        maybe_start_metrics(enable=cfg.enable_metrics, bind=cfg.metrics_bind, port=cfg.metrics_port)

        backend = backend or OpenRouterSession(
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            http_referer=cfg.http_referer,
            app_title=cfg.app_title,
            has_vision=cfg.enable_vision,
            timeout_seconds=cfg.upstream_timeout_seconds,
            max_attempts=cfg.upstream_max_attempts,
            backoff_initial_seconds=cfg.upstream_backoff_initial_seconds,
            backoff_max_seconds=cfg.upstream_backoff_max_seconds,
            circuit_breaker_failures=cfg.upstream_circuit_breaker_failures,
            circuit_breaker_reset_seconds=cfg.upstream_circuit_breaker_reset_seconds,
        )
        if cfg.enable_caching and cache is None:
            cache = JsonFileResponseCache(cfg.cache_dir) if cfg.cache_dir else InMemoryResponseCache()
        return cls(backend, cache=cache, enable_caching=cfg.enable_caching, default_retries=cfg.max_retries)

    async def close(self) -> None:
        await self.backend.close()

    async def __aenter__(self) -> OpenRouterClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def complete(
        self,
        request: CompletionRequest,
        *,
        retries: int | None = None,
        logger: LogCallback | None = None,
    ) -> Any:
        emit = logger or structlog_sink
        budget = self.default_retries if retries is None else retries
        if budget < 0:
            raise ConfigurationError("retries must be >= 0.")

        info = self.backend.identify(request.model)
        options = request.model_dump(mode="json", exclude={"image", "response_model"})
        options["response_model"] = request.response_model.name if request.response_model else None
        emit(
            LogLine(
                category="openrouter",
                message="creating chat completion",
                level=1,
                auxiliary={
                    "options": aux_object(options),
                    "modelName": aux_string(request.model),
                },
            )
        )

        cache_options = request.cache_options()
        if self.enable_caching and self.cache is not None:
            cached = await self.cache.get(cache_options, request.request_id)
            if cached is not None:
                cache_events_total.labels(event="hit").inc()
                emit(
                    LogLine(
                        category="llm_cache",
                        message="LLM cache hit - returning cached response",
                        level=1,
                        auxiliary={
                            "requestId": aux_string(request.request_id),
                            "cachedResponse": aux_object(cached),
                        },
                    )
                )
                return cached
            cache_events_total.labels(event="miss").inc()

        try:
            with completion_latency_seconds.labels(provider=info.provider).time():
                result = await self._complete_with_retries(request, info, budget, emit)
        except Exception as e:
            completions_total.labels(provider=info.provider, status="error").inc()
            log.exception(
                "completion_error",
                provider=info.provider,
                model=request.model,
                request_id=request.request_id,
                error=str(e),
            )
            raise

        completions_total.labels(provider=info.provider, status="success").inc()
        if self.enable_caching and self.cache is not None:
            await self.cache.set(cache_options, result, request.request_id)
            cache_events_total.labels(event="store").inc()
        return result

    async def _complete_with_retries(
        self,
        request: CompletionRequest,
        info: ModelInfo,
        budget: int,
        emit: LogCallback,
    ) -> Any:
        attempt = 0
        while True:
            try:
                return await self._attempt(request, info, emit)
            except ProviderError as e:
                if not e.retryable:
                    raise
                stage = e.stage.value if e.stage else "unknown"
                if attempt >= budget:
                    raise
                attempt += 1
                completion_retries_total.labels(provider=info.provider, stage=stage).inc()
                emit(
                    LogLine(
                        category="openrouter",
                        message="retrying chat completion",
                        level=2,
                        auxiliary={
                            "stage": aux_string(stage),
                            "error": aux_string(str(e)),
                            "retriesRemaining": aux_integer(budget - attempt),
                            "requestId": aux_string(request.request_id),
                        },
                    )
                )

    def _build_body(self, request: CompletionRequest, info: ModelInfo) -> dict[str, Any]:
        # Attempt-local copy; the caller's turns are never extended.
        turns = list(request.messages)
        response_format: dict[str, Any] | None = None
        if request.response_model is not None:
            if info.schema_strategy is SchemaStrategy.INSTRUCTION:
                turns.append(
                    ConversationTurn(
                        role="system",
                        content=[TextPart(text=schema_instruction(request.response_model))],
                    )
                )
            else:
                response_format = response_format_for(request.response_model)
        if request.image is not None and info.has_vision:
            turns.append(image_turn(request.image))

        body: dict[str, Any] = {
            "model": request.model,
            "messages": format_messages(turns),
            **extract_generation_params(request),
        }
        if response_format is not None:
            body["response_format"] = response_format
        tools = build_tool_declarations(request.tools)
        if tools is not None:
            body["tools"] = tools
        body["stream"] = False
        return body

    async def _attempt(self, request: CompletionRequest, info: ModelInfo, emit: LogCallback) -> Any:
        body = self._build_body(request, info)
        emit(
            LogLine(
                category="openrouter",
                message="sending chat completion request",
                level=2,
                auxiliary={"body": aux_object(body), "requestId": aux_string(request.request_id)},
            )
        )

        raw = await self.backend.complete_once(body)
        emit(
            LogLine(
                category="openrouter",
                message="response",
                level=1,
                auxiliary={"response": aux_object(raw), "requestId": aux_string(request.request_id)},
            )
        )

        message = _first_message(raw)
        if message is None:
            raise ProviderError("empty response", stage=FailureStage.EMPTY_RESPONSE)

        if request.response_model is None:
            return raw

        content = message.get("content")
        if not isinstance(content, str) or not content:
            raise ProviderError("no content in response", stage=FailureStage.MISSING_CONTENT)

        cleaned = strip_code_fences(content)
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as e:
            emit(
                LogLine(
                    category="openrouter",
                    message="Failed to parse response",
                    level=0,
                    auxiliary={"error": aux_string(str(e)), "content": aux_string(content)},
                )
            )
            raise ProviderError(f"failed to parse response: {e}", stage=FailureStage.PARSE, cause=e) from e

        schema = request.response_model.schema
        mismatch = validation_error(schema, parsed)
        if mismatch is not None:
            emit(
                LogLine(
                    category="openrouter",
                    message="response does not match the required schema",
                    level=1,
                    auxiliary={
                        "schemaName": aux_string(request.response_model.name),
                        "validationErrors": aux_string(str(mismatch)),
                        "content": aux_string(content),
                    },
                )
            )
            raise ProviderError(
                "response does not match the required schema", stage=FailureStage.SCHEMA, cause=mismatch
            ) from mismatch

        return parsed
