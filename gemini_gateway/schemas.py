from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContentPart(BaseModel):
    type: str | None = None
    text: str | None = None
    content: str | None = None

    model_config = ConfigDict(extra="allow")


class Message(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str | list[ContentPart]


class StreamOptions(BaseModel):
    include_usage: bool | None = None


class ChatCompletionRequest(BaseModel):
    model: str | None = None
    messages: list[Message]
    temperature: float | None = None
    max_tokens: int | None = None
    stream: bool | None = None
    stream_options: StreamOptions | None = None

    # Accept extra fields from clients (top_p, user, etc.).
    model_config = ConfigDict(extra="allow")

    @property
    def include_usage(self) -> bool:
        return bool(self.stream_options and self.stream_options.include_usage)


class CompletionRequest(BaseModel):
    model: str | None = None
    prompt: str = Field(min_length=1)
    temperature: float | None = None
    max_tokens: int | None = None

    model_config = ConfigDict(extra="ignore")


class EmbeddingRequest(BaseModel):
    model: str
    input: str | list[str]

    model_config = ConfigDict(extra="ignore")

    @field_validator("input")
    @classmethod
    def _require_input(cls, value: str | list[str]) -> str | list[str]:
        if isinstance(value, list) and not value:
            raise ValueError("input must contain at least one string")
        if isinstance(value, str) and not value:
            raise ValueError("input must not be empty")
        return value

    @property
    def inputs(self) -> list[str]:
        return list(self.input) if isinstance(self.input, list) else [self.input]
