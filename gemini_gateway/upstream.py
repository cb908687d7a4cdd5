from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
from fastapi import status

from gemini_gateway.config import GenerationDefaults
from gemini_gateway.errors import internal_error, invalid_request
from gemini_gateway.logging_config import GatewayLogger
from gemini_gateway.sanitizer import sanitize
from gemini_gateway.schemas import ContentPart, Message

SUPPORTED_MODELS: tuple[str, ...] = ("gemini-pro", "gemini-pro-vision")
EMBEDDING_MODEL = "text-embedding-004"
EMPTY_MESSAGE_PLACEHOLDER = "[Empty message]"
API_KEY_HEADER = "x-goog-api-key"


def validate_model(model: str | None) -> str:
    if not model or model not in SUPPORTED_MODELS:
        raise invalid_request(
            f"Unsupported model: {model}. "
            f"Supported models are: {', '.join(SUPPORTED_MODELS)}"
        )
    return model


def validate_embedding_model(model: str | None) -> str:
    if model != EMBEDDING_MODEL:
        raise invalid_request(
            f"Invalid model: {model}. "
            f"Only {EMBEDDING_MODEL} is supported for embeddings."
        )
    return model


def _part_text(part: ContentPart | dict[str, Any] | str) -> str:
    if isinstance(part, str):
        return part
    if isinstance(part, ContentPart):
        return part.text or part.content or ""
    if isinstance(part, dict):
        value = part.get("text") or part.get("content") or ""
        return value if isinstance(value, str) else ""
    return ""


def flatten_content(content: str | Sequence[ContentPart | dict[str, Any]]) -> str:
    if isinstance(content, str):
        return content
    return "\n".join(text for text in (_part_text(part) for part in content) if text)


def to_upstream_role(role: str) -> str:
    # The upstream has no system role; system prompts are sent as user turns.
    return "model" if role == "assistant" else "user"


def build_chat_contents(messages: Sequence[Message]) -> list[dict[str, Any]]:
    contents: list[dict[str, Any]] = []
    for message in messages:
        text = flatten_content(message.content)
        if not text.strip():
            text = EMPTY_MESSAGE_PLACEHOLDER
        contents.append(
            {
                "role": to_upstream_role(message.role),
                "parts": [{"text": sanitize(text)}],
            }
        )
    return contents


def build_prompt_contents(prompt: str) -> list[dict[str, Any]]:
    return [{"role": "user", "parts": [{"text": sanitize(prompt)}]}]


def build_generation_config(
    defaults: GenerationDefaults,
    *,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> dict[str, Any]:
    return {
        "temperature": temperature if temperature is not None else defaults.temperature,
        "maxOutputTokens": (
            max_tokens if max_tokens is not None else defaults.max_output_tokens
        ),
        "topP": defaults.top_p,
        "topK": defaults.top_k,
    }


def degrade_contents(contents: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    degraded: list[dict[str, Any]] = []
    for content in contents:
        parts = content.get("parts") or []
        first_text = parts[0].get("text", "") if parts else ""
        degraded.append(
            {
                "role": "user" if content.get("role") == "system" else content.get("role"),
                "parts": [{"text": first_text}],
            }
        )
    return degraded


def _embed_content(text: str) -> dict[str, Any]:
    return {"parts": [{"text": sanitize(text)}]}


class GeminiClient:
    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        timeout_seconds: float,
        connect_timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: GatewayLogger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._logger = logger or GatewayLogger("GeminiClient")
        connect_timeout = (
            max(0.1, float(connect_timeout_seconds))
            if connect_timeout_seconds is not None
            else max(0.1, min(5.0, timeout_seconds))
        )
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                timeout=max(0.1, float(timeout_seconds)),
                connect=connect_timeout,
            ),
            limits=httpx.Limits(max_connections=256, max_keepalive_connections=64),
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    def require_api_key(self, context: str | None = None) -> str:
        if not self._api_key:
            self._logger.error("Gemini API key not configured", context=context)
            raise internal_error("Gemini API key not configured")
        return self._api_key

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        response = await self.client.post(
            f"{self.base_url}/{path}",
            json=payload,
            headers={API_KEY_HEADER: self.require_api_key()},
        )
        response.raise_for_status()
        return response.json()

    async def send_generate(
        self,
        model: str,
        contents: list[dict[str, Any]],
        generation_config: dict[str, Any],
    ) -> Any:
        path = f"{model}:generateContent"
        payload = {"contents": contents, "generationConfig": generation_config}
        self._logger.log(
            {
                "message": "Sending request to upstream",
                "model": model,
                "contents": len(contents),
            },
            "send_generate",
        )
        self._logger.debug({"model": model, "payload": payload}, "send_generate")
        try:
            return await self._post(path, payload)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code != status.HTTP_400_BAD_REQUEST:
                raise
            self._logger.warn(
                {
                    "message": "Upstream rejected request, retrying with degraded payload",
                    "model": model,
                    "status": exc.response.status_code,
                },
                "send_generate",
            )
        retry_payload = {
            "contents": degrade_contents(contents),
            "generationConfig": generation_config,
        }
        return await self._post(path, retry_payload)

    async def send_embed(self, inputs: Sequence[str]) -> Any:
        if len(inputs) > 1:
            payload: dict[str, Any] = {
                "requests": [
                    {"model": f"models/{EMBEDDING_MODEL}", "content": _embed_content(text)}
                    for text in inputs
                ]
            }
            return await self._post(f"{EMBEDDING_MODEL}:batchEmbedContents", payload)
        return await self._post(
            f"{EMBEDDING_MODEL}:embedContent",
            {"content": _embed_content(inputs[0])},
        )
