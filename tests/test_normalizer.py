from __future__ import annotations

import pytest

from gemini_gateway.normalizer import (
    build_chat_completion,
    build_embedding_response,
    build_model_list,
    build_text_completion,
    extract_embeddings,
    extract_generated_text,
)
from gemini_gateway.streaming import SSE_DONE, chat_completion_chunk
from gemini_gateway.usage import TokenUsage


def test_extract_generated_text_prefers_content_parts() -> None:
    response = {
        "candidates": [
            {"content": {"parts": [{"text": "from parts"}], "text": "x"}, "text": "y"}
        ]
    }
    assert extract_generated_text(response) == "from parts"


def test_extract_generated_text_falls_back_to_candidate_text() -> None:
    response = {"candidates": [{"content": {"parts": [{"text": ""}]}, "text": "flat"}]}
    assert extract_generated_text(response) == "flat"


def test_extract_generated_text_falls_back_to_content_text() -> None:
    response = {"candidates": [{"content": {"text": "nested"}}]}
    assert extract_generated_text(response) == "nested"


@pytest.mark.parametrize(
    "response",
    [
        {},
        {"candidates": []},
        {"candidates": [{"finishReason": "SAFETY"}]},
        {"candidates": [{"content": {"parts": [{"inlineData": {}}]}}]},
        "not a dict",
    ],
)
def test_extract_generated_text_returns_none_without_text(response: object) -> None:
    assert extract_generated_text(response) is None


def test_extract_embeddings_handles_single_and_batch_shapes() -> None:
    assert extract_embeddings({"embedding": {"values": [0.5]}}, 1) == [[0.5]]
    batch = {"embeddings": [{"values": [1.0]}, {"values": [2.0]}, {"values": [3.0]}]}
    assert extract_embeddings(batch, 3) == [[1.0], [2.0], [3.0]]


def test_extract_embeddings_rejects_malformed_response() -> None:
    with pytest.raises(ValueError):
        extract_embeddings({"embeddings": "nope"}, 2)
    with pytest.raises(ValueError):
        extract_embeddings({}, 1)


def test_build_chat_completion_shapes_envelope() -> None:
    completion = build_chat_completion(
        model="gemini-pro",
        text="Paris",
        usage=TokenUsage(prompt_tokens=8, completion_tokens=2, total_tokens=9),
        timestamp_ms=1_700_000_000_123,
    )
    assert completion == {
        "id": "chatcmpl-1700000000123",
        "object": "chat.completion",
        "created": 1_700_000_000,
        "model": "gemini-pro",
        "system_fingerprint": "fp_1700000000123",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": "Paris"},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 8, "completion_tokens": 2, "total_tokens": 9},
    }


def test_build_chat_completion_omits_usage_when_not_requested() -> None:
    completion = build_chat_completion(model="gemini-pro", text="hi", usage=None)
    assert "usage" not in completion
    assert completion["id"].startswith("chatcmpl-")


def test_build_text_completion_shapes_envelope() -> None:
    completion = build_text_completion(
        model="gemini-pro",
        text="42",
        usage=TokenUsage(prompt_tokens=3, completion_tokens=1, total_tokens=4),
        timestamp_ms=1_000,
    )
    assert completion["id"] == "cmpl-1000"
    assert completion["object"] == "text_completion"
    assert completion["choices"] == [
        {"text": "42", "index": 0, "logprobs": None, "finish_reason": "stop"}
    ]
    assert completion["usage"]["total_tokens"] == 4


def test_build_embedding_response_indexes_vectors_in_order() -> None:
    response = build_embedding_response(
        model="text-embedding-004",
        vectors=[[1.0], [2.0], [3.0]],
        usage=TokenUsage(prompt_tokens=3, completion_tokens=0, total_tokens=3),
    )
    assert [item["index"] for item in response["data"]] == [0, 1, 2]
    assert [item["embedding"] for item in response["data"]] == [[1.0], [2.0], [3.0]]
    assert response["usage"] == {"prompt_tokens": 3, "total_tokens": 3}


def test_build_model_list_marks_google_ownership() -> None:
    payload = build_model_list(["gemini-pro"], created=123)
    assert payload == {
        "object": "list",
        "data": [
            {"id": "gemini-pro", "object": "model", "created": 123, "owned_by": "google"}
        ],
    }


def test_chat_completion_chunk_is_sse_frame() -> None:
    completion = build_chat_completion(
        model="gemini-pro", text="hi", usage=None, timestamp_ms=5_000
    )
    frame = chat_completion_chunk(completion, {}, finish_reason="stop")
    assert frame.startswith(b"data: {")
    assert frame.endswith(b"}\n\n")
    assert b'"object":"chat.completion.chunk"' in frame
    assert b'"finish_reason":"stop"' in frame
    assert SSE_DONE == b"data: [DONE]\n\n"
