from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Request, Response, status

from gemini_gateway.gateway.audit import JsonlAuditLogger
from gemini_gateway.logging_config import GatewayLogger

CallNext = Callable[[Request], Awaitable[Response]]

LOGGED_REQUEST_ROUTES = frozenset({("POST", "/v1/chat/completions")})
STREAMING_MEDIA_TYPE = "text/event-stream"
JSON_MEDIA_TYPE = "application/json"


def _decode_body(raw: bytes) -> Any:
    if not raw:
        return None
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client is not None else None


def _media_type(response: Response) -> str:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";")[0].strip().lower()


def is_streaming_response(response: Response) -> bool:
    return _media_type(response) == STREAMING_MEDIA_TYPE


def is_json_response(response: Response) -> bool:
    media_type = _media_type(response)
    return media_type == JSON_MEDIA_TYPE or media_type.endswith("+json")


async def buffer_response(response: Response) -> tuple[Response, bytes]:
    """Drain a response body so it can be logged and rebuild the response."""
    body_iterator = getattr(response, "body_iterator", None)
    if body_iterator is None:
        return response, bytes(response.body)
    chunks: list[bytes] = []
    async for chunk in body_iterator:
        chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))
    body = b"".join(chunks)
    rebuilt = Response(
        content=body,
        status_code=response.status_code,
        headers=dict(response.headers),
        background=response.background,
    )
    return rebuilt, body


class HttpTrafficLogger:
    """Records inbound requests and their responses as JSONL audit entries."""

    def __init__(
        self,
        audit_logger: JsonlAuditLogger,
        logger: GatewayLogger | None = None,
    ) -> None:
        self._audit = audit_logger
        self._logger = logger or GatewayLogger("HTTP")

    def _base_entry(self, request: Request) -> dict[str, Any]:
        return {
            "method": request.method,
            "url": str(request.url),
            "user_agent": request.headers.get("user-agent"),
            "ip": client_ip(request),
        }

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        raw_request = await request.body()
        request_body = _decode_body(raw_request)
        if (request.method, request.url.path) in LOGGED_REQUEST_ROUTES:
            self._audit.log(
                {
                    "event": "request",
                    **self._base_entry(request),
                    "headers": {"content-type": request.headers.get("content-type")},
                    "body": request_body,
                }
            )

        response = await call_next(request)

        entry: dict[str, Any] = {
            "event": "response",
            **self._base_entry(request),
            "status": response.status_code,
        }
        if is_streaming_response(response):
            entry["content_length"] = "streaming"
        elif not is_json_response(response):
            # Static files and other non-JSON bodies are passed through unread.
            entry["content_length"] = response.headers.get("content-length")
        else:
            response, raw_response = await buffer_response(response)
            entry["content_length"] = response.headers.get(
                "content-length", str(len(raw_response))
            )
            entry["response_body"] = _decode_body(raw_response)

        if response.status_code >= status.HTTP_400_BAD_REQUEST:
            entry["request_body"] = request_body
            self._logger.warn(
                f"method={request.method} path={request.url.path} "
                f"status={response.status_code}",
                "dispatch",
            )
        self._audit.log(entry)
        return response
