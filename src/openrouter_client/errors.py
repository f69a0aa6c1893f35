from __future__ import annotations

from enum import Enum


class FailureStage(str, Enum):
    """Pipeline stage at which a completion attempt failed."""

    EMPTY_RESPONSE = "empty_response"
    MISSING_CONTENT = "missing_content"
    PARSE = "parse"
    SCHEMA = "schema"


class ProviderError(Exception):
    """Base error for provider failures.

    Errors raised by the completion pipeline carry the failing ``stage`` and the
    underlying ``cause``; transport errors leave both unset.
    """

    def __init__(
        self,
        message: str = "",
        *,
        stage: FailureStage | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return self.stage is not None


class ConfigurationError(ProviderError):
    pass


class AuthenticationError(ProviderError):
    pass


class RateLimitError(ProviderError):
    def __init__(self, retry_after_seconds: int | None = None, message: str = "Rate limited"):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class UpstreamProtocolError(ProviderError):
    """Unexpected upstream response shape / contract mismatch."""


class CircuitBreakerOpenError(ProviderError):
    def __init__(self, retry_after_seconds: int | None = None, message: str = "Upstream temporarily unavailable"):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
