from .cache import BaseResponseCache, InMemoryResponseCache, JsonFileResponseCache, cache_key
from .client import OpenRouterClient
from .config import OpenRouterClientConfig
from .contracts import ChatCompletionBackend, ModelInfo
from .errors import FailureStage, ProviderError
from .logging import AuxiliaryValue, LogLine
from .openai_compat import (
    CompletionRequest,
    ConversationTurn,
    ImageAttachment,
    ImagePart,
    ResponseModel,
    TextPart,
    ToolDefinition,
)
from .openrouter_session import OpenRouterSession

__all__ = [
    "AuxiliaryValue",
    "BaseResponseCache",
    "ChatCompletionBackend",
    "CompletionRequest",
    "ConversationTurn",
    "FailureStage",
    "ImageAttachment",
    "ImagePart",
    "InMemoryResponseCache",
    "JsonFileResponseCache",
    "LogLine",
    "ModelInfo",
    "OpenRouterClient",
    "OpenRouterClientConfig",
    "OpenRouterSession",
    "ProviderError",
    "ResponseModel",
    "TextPart",
    "ToolDefinition",
    "cache_key",
]
