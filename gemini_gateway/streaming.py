from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

SSE_DONE = b"data: [DONE]\n\n"


def chat_completion_chunk(
    completion: dict[str, Any],
    delta: dict[str, Any],
    finish_reason: str | None = None,
    usage: dict[str, int] | None = None,
) -> bytes:
    chunk: dict[str, Any] = {
        "id": completion["id"],
        "object": "chat.completion.chunk",
        "created": completion["created"],
        "model": completion["model"],
        "choices": [
            {
                "index": 0,
                "delta": delta,
                "finish_reason": finish_reason,
            }
        ],
    }
    if usage is not None:
        chunk["usage"] = usage
    return f"data: {json.dumps(chunk, separators=(',', ':'))}\n\n".encode("utf-8")


async def iter_pseudo_stream(completion: dict[str, Any]) -> AsyncIterator[bytes]:
    """Replay a finished chat completion as an OpenAI-style event stream.

    The whole answer is already in hand, so the stream is exactly one content
    frame, one stop frame and the ``[DONE]`` terminator.
    """
    content = completion["choices"][0]["message"]["content"]
    yield chat_completion_chunk(
        completion, {"role": "assistant", "content": content}
    )
    yield chat_completion_chunk(
        completion, {}, finish_reason="stop", usage=completion.get("usage")
    )
    yield SSE_DONE
