from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from typing import Any

from gemini_gateway.usage import TokenUsage

NO_RESPONSE_TEXT = "No response generated"

TextExtractor = Callable[[dict[str, Any]], str | None]


def _non_empty_text(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _text_from_content_parts(candidate: dict[str, Any]) -> str | None:
    content = candidate.get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    return _non_empty_text(parts[0].get("text"))


def _text_from_candidate_text(candidate: dict[str, Any]) -> str | None:
    return _non_empty_text(candidate.get("text"))


def _text_from_content_text(candidate: dict[str, Any]) -> str | None:
    content = candidate.get("content")
    if not isinstance(content, dict):
        return None
    return _non_empty_text(content.get("text"))


# Known shapes of a generateContent candidate, most specific first.
TEXT_EXTRACTORS: tuple[TextExtractor, ...] = (
    _text_from_content_parts,
    _text_from_candidate_text,
    _text_from_content_text,
)


def first_candidate(response: Any) -> dict[str, Any] | None:
    if not isinstance(response, dict):
        return None
    candidates = response.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    candidate = candidates[0]
    return candidate if isinstance(candidate, dict) else None


def extract_generated_text(response: Any) -> str | None:
    candidate = first_candidate(response)
    if candidate is None:
        return None
    for extractor in TEXT_EXTRACTORS:
        text = extractor(candidate)
        if text is not None:
            return text
    return None


def _embedding_values(entry: Any, index: int) -> list[float]:
    values = entry.get("values") if isinstance(entry, dict) else None
    if not isinstance(values, list):
        raise ValueError(f"Upstream embedding {index} has no 'values' list")
    return values


def extract_embeddings(response: Any, input_count: int) -> list[list[float]]:
    if not isinstance(response, dict):
        raise ValueError("Upstream embedding response is not a JSON object")
    if input_count > 1:
        entries = response.get("embeddings")
        if not isinstance(entries, list):
            raise ValueError("Upstream batch embedding response has no 'embeddings'")
    else:
        entries = [response.get("embedding")]
    return [_embedding_values(entry, index) for index, entry in enumerate(entries)]


def now_ms() -> int:
    return int(time.time() * 1000)


def build_chat_completion(
    *,
    model: str,
    text: str,
    usage: TokenUsage | None,
    timestamp_ms: int | None = None,
) -> dict[str, Any]:
    stamp = timestamp_ms if timestamp_ms is not None else now_ms()
    completion: dict[str, Any] = {
        "id": f"chatcmpl-{stamp}",
        "object": "chat.completion",
        "created": stamp // 1000,
        "model": model,
        "system_fingerprint": f"fp_{stamp}",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
    }
    if usage is not None:
        completion["usage"] = usage.as_dict()
    return completion


def build_text_completion(
    *,
    model: str,
    text: str,
    usage: TokenUsage,
    timestamp_ms: int | None = None,
) -> dict[str, Any]:
    stamp = timestamp_ms if timestamp_ms is not None else now_ms()
    return {
        "id": f"cmpl-{stamp}",
        "object": "text_completion",
        "created": stamp // 1000,
        "model": model,
        "choices": [
            {
                "text": text,
                "index": 0,
                "logprobs": None,
                "finish_reason": "stop",
            }
        ],
        "usage": usage.as_dict(),
    }


def build_embedding_response(
    *,
    model: str,
    vectors: Sequence[list[float]],
    usage: TokenUsage,
) -> dict[str, Any]:
    return {
        "object": "list",
        "data": [
            {"object": "embedding", "embedding": vector, "index": index}
            for index, vector in enumerate(vectors)
        ],
        "model": model,
        "usage": {
            "prompt_tokens": usage.prompt_tokens,
            "total_tokens": usage.total_tokens,
        },
    }


def build_model_list(models: Sequence[str], created: int) -> dict[str, Any]:
    return {
        "object": "list",
        "data": [
            {"id": model_id, "object": "model", "created": created, "owned_by": "google"}
            for model_id in models
        ],
    }
