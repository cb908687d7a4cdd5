from __future__ import annotations

import json
import re
from typing import Any

from gemini_gateway.logging_config import GatewayLogger

# C0/C1 controls (tab, LF and CR are kept), non-characters and surrogate code
# points. A surrogate inside a Python str is always unpaired.
_FORBIDDEN_CHARS = re.compile(
    r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufdd0-\ufdef\ufffe\uffff\ud800-\udfff]"
)

logger = GatewayLogger("Sanitizer")


def sanitize_text(text: str) -> str:
    return _FORBIDDEN_CHARS.sub("", text)


def sanitize(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value]
    if isinstance(value, dict):
        sanitized: dict[Any, Any] = {}
        for key, item in value.items():
            try:
                sanitized[key] = sanitize(item)
            except Exception:
                logger.warn(f"Failed to sanitize value for key {key}", "sanitize")
                sanitized[key] = None
        return sanitized
    return value


def _first_part_text(response: Any) -> str | None:
    try:
        text = response["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) and text else None


def _with_first_part_text(response: dict[str, Any], text: str) -> dict[str, Any]:
    candidates = list(response["candidates"])
    candidate = dict(candidates[0])
    content = dict(candidate["content"])
    parts = list(content["parts"])
    part = dict(parts[0])

    part["text"] = text
    parts[0] = part
    content["parts"] = parts
    candidate["content"] = content
    candidates[0] = candidate
    return {**response, "candidates": candidates}


def sanitize_response(response: Any) -> Any:
    try:
        sanitized = sanitize(response)
        json.loads(json.dumps(sanitized))
        return sanitized
    except (TypeError, ValueError, RecursionError):
        logger.warn(
            "Failed to sanitize response, falling back to basic sanitization",
            "sanitize_response",
        )
    text = _first_part_text(response)
    if text is None:
        return response
    return _with_first_part_text(response, sanitize_text(text))
