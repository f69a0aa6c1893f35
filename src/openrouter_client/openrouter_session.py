from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from .contracts import ModelInfo
from .errors import AuthenticationError, CircuitBreakerOpenError, RateLimitError, UpstreamProtocolError
from .families import schema_strategy_for
from .metrics import upstream_circuit_breaker_events_total, upstream_requests_total

log = structlog.get_logger()

OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"


class OpenRouterSession:
    """
    HTTP session for the OpenRouter chat-completions API (OpenAI wire format).

    Retries timeouts, transport errors, 429 and 5xx with capped exponential
    backoff, and opens a circuit breaker after consecutive failures. Any other
    4xx is surfaced immediately.
    """

    provider = "openrouter"

    def __init__(
        self,
        api_key: str | None,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = OPENROUTER_API_BASE,
        http_referer: str | None = None,
        app_title: str | None = None,
        has_vision: bool = False,
        timeout_seconds: float = 60,
        max_attempts: int = 3,
        backoff_initial_seconds: float = 0.5,
        backoff_max_seconds: float = 8.0,
        circuit_breaker_failures: int = 5,
        circuit_breaker_reset_seconds: float = 30.0,
        sleeper: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._base_url = base_url.rstrip("/")
        self._http_referer = http_referer
        self._app_title = app_title
        self._has_vision = has_vision
        self._max_attempts = max(1, max_attempts)
        self._backoff_initial_seconds = max(0.0, backoff_initial_seconds)
        self._backoff_max_seconds = max(self._backoff_initial_seconds, backoff_max_seconds)
        self._sleep: Callable[[float], Awaitable[None]] = sleeper or asyncio.sleep
        self._clock: Callable[[], float] = clock or time.monotonic

        self._cb_threshold = max(0, int(circuit_breaker_failures))
        self._cb_reset_seconds = max(0.0, float(circuit_breaker_reset_seconds))
        self._cb_failures = 0
        self._cb_open_until: float | None = None

    async def close(self) -> None:
        await self._client.aclose()

    def identify(self, model: str) -> ModelInfo:
        return ModelInfo(
            provider=self.provider,
            model_name=model,
            has_vision=self._has_vision,
            schema_strategy=schema_strategy_for(model),
        )

    def _circuit_remaining_seconds(self) -> int | None:
        if self._cb_open_until is None:
            return None
        remaining = self._cb_open_until - self._clock()
        if remaining <= 0:
            return None
        return int(remaining) + 1

    def _circuit_allow(self) -> None:
        if self._cb_threshold <= 0:
            return
        remaining = self._circuit_remaining_seconds()
        if remaining is None:
            return
        upstream_circuit_breaker_events_total.labels(event="short_circuit").inc()
        raise CircuitBreakerOpenError(retry_after_seconds=remaining)

    def _circuit_on_success(self) -> None:
        if self._cb_threshold <= 0:
            return
        self._cb_failures = 0
        self._cb_open_until = None

    def _circuit_on_failure(self) -> None:
        if self._cb_threshold <= 0:
            return
        self._cb_failures += 1
        if self._cb_failures < self._cb_threshold:
            return
        if self._cb_reset_seconds <= 0:
            return
        self._cb_open_until = self._clock() + self._cb_reset_seconds
        upstream_circuit_breaker_events_total.labels(event="open").inc()

    def _compute_backoff(self, attempt_index: int) -> float:
        # attempt_index: 0-based retry count (0 for first retry)
        base = float(min(self._backoff_max_seconds, self._backoff_initial_seconds * (2**attempt_index)))
        jitter = float(random.uniform(0.0, min(0.25, base * 0.1))) if base > 0 else 0.0
        return base + jitter

    def _headers(self) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._http_referer:
            headers["HTTP-Referer"] = self._http_referer
        if self._app_title:
            headers["X-Title"] = self._app_title
        return headers

    async def complete_once(self, body: dict[str, Any]) -> dict[str, Any]:
        """POST one non-streaming chat completion and return the decoded JSON body."""
        self._circuit_allow()

        if not self.api_key:
            raise AuthenticationError("Missing OPENROUTER_API_KEY for OpenRouter API call.")

        url = f"{self._base_url}/chat/completions"
        payload = {**body, "stream": False}

        last_rate_limit: RateLimitError | None = None
        for attempt in range(self._max_attempts):
            try:
                resp = await self._client.post(url, headers=self._headers(), json=payload)
            except httpx.TimeoutException as e:
                upstream_requests_total.labels(status="timeout").inc()
                self._circuit_on_failure()
                if attempt >= self._max_attempts - 1:
                    raise UpstreamProtocolError("Upstream request timed out.") from e
                await self._sleep(self._compute_backoff(attempt))
                continue
            except httpx.HTTPError as e:
                upstream_requests_total.labels(status="transport_error").inc()
                self._circuit_on_failure()
                if attempt >= self._max_attempts - 1:
                    raise UpstreamProtocolError("Upstream request failed.") from e
                await self._sleep(self._compute_backoff(attempt))
                continue

            upstream_requests_total.labels(status=str(resp.status_code)).inc()

            if resp.status_code in (401, 403):
                raise AuthenticationError("Upstream rejected credentials (check OPENROUTER_API_KEY).")

            if resp.status_code == 429:
                retry_after = resp.headers.get("retry-after")
                retry_seconds = int(retry_after) if retry_after and retry_after.isdigit() else None
                last_rate_limit = RateLimitError(retry_after_seconds=retry_seconds)
                self._circuit_on_failure()
                if attempt >= self._max_attempts - 1:
                    raise last_rate_limit
                sleep_for = retry_seconds if retry_seconds is not None else self._compute_backoff(attempt)
                await self._sleep(sleep_for)
                continue

            if 500 <= resp.status_code <= 599:
                self._circuit_on_failure()
                if attempt >= self._max_attempts - 1:
                    log.warning(
                        "openrouter_upstream_5xx",
                        status_code=resp.status_code,
                        body=resp.text[:500],
                    )
                    raise UpstreamProtocolError(f"Upstream error {resp.status_code}.")
                await self._sleep(self._compute_backoff(attempt))
                continue

            if resp.status_code >= 400:
                log.warning("openrouter_upstream_4xx", status_code=resp.status_code, body=resp.text[:500])
                raise UpstreamProtocolError(f"Upstream error {resp.status_code}.")

            try:
                data = resp.json()
            except ValueError as e:
                raise UpstreamProtocolError("Upstream returned a non-JSON body.") from e
            break
        else:  # pragma: no cover
            if last_rate_limit is not None:
                raise last_rate_limit
            raise UpstreamProtocolError("Upstream request failed after retries.")

        self._circuit_on_success()

        if not isinstance(data, dict):
            raise UpstreamProtocolError("Upstream response must be a JSON object.")
        if "error" in data and not data.get("choices"):
            # OpenRouter reports some provider failures as a 200 with an error body.
            log.warning("openrouter_error_body", model=body.get("model"), error=data["error"])

        log.debug("openrouter_complete_ok", model=body.get("model"), messages=len(body.get("messages", [])))
        return data
