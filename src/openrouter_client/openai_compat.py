from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImageUrl(BaseModel):
    url: str


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]


class ConversationTurn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str | list[ContentPart]


@dataclass(frozen=True)
class ResponseModel:
    """Named output schema; ``schema`` is any type pydantic can validate against."""

    name: str
    schema: Any


class ImageAttachment(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64")

    buffer: bytes
    description: str | None = None


class ToolDefinition(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class CompletionRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model: str
    messages: list[ConversationTurn]
    request_id: str

    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    max_tokens: int | None = None

    response_model: ResponseModel | None = None
    image: ImageAttachment | None = None
    tools: list[ToolDefinition] | None = None

    @field_validator("temperature")
    @classmethod
    def _validate_temperature(cls, v: float | None) -> float | None:
        if v is None:
            return None
        if not (0.0 <= v <= 2.0):
            raise ValueError("temperature must be between 0 and 2.")
        return v

    @field_validator("top_p")
    @classmethod
    def _validate_top_p(cls, v: float | None) -> float | None:
        if v is None:
            return None
        if not (0.0 < v <= 1.0):
            raise ValueError("top_p must be > 0 and <= 1.")
        return v

    @field_validator("max_tokens")
    @classmethod
    def _validate_max_tokens(cls, v: int | None) -> int | None:
        if v is None:
            return None
        if v <= 0:
            raise ValueError("max_tokens must be > 0.")
        return v

    @field_validator("presence_penalty", "frequency_penalty")
    @classmethod
    def _validate_penalties(cls, v: float | None) -> float | None:
        if v is None:
            return None
        if not (-2.0 <= v <= 2.0):
            raise ValueError("penalty must be between -2 and 2.")
        return v

    def cache_options(self) -> dict[str, Any]:
        """Fields that identify the request for caching; ``request_id`` and ``tools`` are left out."""
        return {
            "model": self.model,
            "messages": [m.model_dump(mode="json") for m in self.messages],
            "temperature": self.temperature,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
            "image": self.image.model_dump(mode="json") if self.image else None,
            "response_model": self.response_model.name if self.response_model else None,
        }


def extract_generation_params(req: CompletionRequest) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if req.temperature is not None:
        out["temperature"] = req.temperature
    if req.top_p is not None:
        out["top_p"] = req.top_p
    if req.max_tokens is not None:
        out["max_tokens"] = req.max_tokens
    if req.presence_penalty is not None:
        out["presence_penalty"] = req.presence_penalty
    if req.frequency_penalty is not None:
        out["frequency_penalty"] = req.frequency_penalty
    return out
