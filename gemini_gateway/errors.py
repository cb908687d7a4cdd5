from __future__ import annotations

import json
import traceback
from typing import Any

import httpx
from fastapi import status

from gemini_gateway.logging_config import GatewayLogger

INVALID_REQUEST_ERROR = "invalid_request_error"
INTERNAL_ERROR = "internal_error"
NOT_FOUND_ERROR = "not_found_error"


class GatewayError(Exception):
    """An error already shaped as an OpenAI-compatible error envelope."""

    def __init__(self, status_code: int, message: str, error_type: str) -> None:
        super().__init__(message)
        self.status_code = int(status_code)
        self.message = message
        self.error_type = error_type

    def to_envelope(self) -> dict[str, Any]:
        return error_envelope(self.message, self.error_type, self.status_code)


def error_envelope(message: str, error_type: str, code: int) -> dict[str, Any]:
    return {"error": {"message": message, "type": error_type, "code": int(code)}}


def invalid_request(message: str) -> GatewayError:
    return GatewayError(status.HTTP_400_BAD_REQUEST, message, INVALID_REQUEST_ERROR)


def internal_error(message: str) -> GatewayError:
    return GatewayError(
        status.HTTP_500_INTERNAL_SERVER_ERROR, message, INTERNAL_ERROR
    )


def _decode_json_bytes(raw: bytes | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return raw.decode("utf-8", errors="replace")


def _exception_request(exc: httpx.HTTPError) -> httpx.Request | None:
    # httpx raises RuntimeError when no request is attached to the exception.
    try:
        return exc.request
    except RuntimeError:
        return None


def _exception_response(exc: httpx.HTTPError) -> httpx.Response | None:
    response = getattr(exc, "response", None)
    return response if isinstance(response, httpx.Response) else None


def _upstream_error_body(response: httpx.Response | None) -> Any:
    if response is None:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _upstream_error_detail(body: Any) -> dict[str, Any]:
    if not isinstance(body, dict):
        return {}
    error = body.get("error")
    return error if isinstance(error, dict) else {}


def describe_upstream_error(exc: httpx.HTTPError, body: Any) -> str:
    detail = _upstream_error_detail(body)
    message = detail.get("message")
    if not isinstance(message, str) or not message.strip():
        message = str(exc).strip() or "Unknown error occurred"

    details = detail.get("details")
    first_detail = details[0] if isinstance(details, list) and details else None
    if isinstance(first_detail, dict):
        description = first_detail.get("description") or first_detail.get("reason")
        if description:
            message = f"{message}\nDetails: {description}"
        violations = first_detail.get("fieldViolations")
        if isinstance(violations, list) and violations:
            lines = "\n".join(
                f"{item.get('field')}: {item.get('description')}"
                for item in violations
                if isinstance(item, dict)
            )
            message = f"{message}\nField violations:\n{lines}"
    return message


class ErrorMapper:
    """Turns any failure raised while serving a request into a GatewayError.

    Upstream HTTP failures keep the upstream status code; everything else
    becomes a 500 ``internal_error``. Every mapped error is logged.
    """

    def __init__(self, logger: GatewayLogger, provider_name: str = "upstream") -> None:
        self._logger = logger
        self.upstream_error_type = f"{provider_name.strip() or 'upstream'}_error"

    def map(self, exc: BaseException, context: str | None = None) -> GatewayError:
        if isinstance(exc, GatewayError):
            self._logger.warn(
                {
                    "message": exc.message,
                    "status": exc.status_code,
                    "type": exc.error_type,
                },
                context,
            )
            return exc
        if isinstance(exc, httpx.HTTPError):
            return self._map_upstream(exc, context)
        return self._map_internal(exc, context)

    def _map_upstream(self, exc: httpx.HTTPError, context: str | None) -> GatewayError:
        response = _exception_response(exc)
        request = _exception_request(exc)
        status_code = (
            response.status_code
            if response is not None
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        body = _upstream_error_body(response)
        request_body = _decode_json_bytes(request.content) if request is not None else None
        message = describe_upstream_error(exc, body)

        self._logger.error(
            {
                "message": f"Upstream API error: {message}",
                "status": status_code,
                "error": {
                    "type": exc.__class__.__name__,
                    "response": body,
                    "request": {
                        "method": request.method if request is not None else None,
                        "url": str(request.url) if request is not None else None,
                        "data": request_body,
                    },
                },
            },
            "".join(traceback.format_exception(exc)),
            context,
        )

        if status_code == status.HTTP_400_BAD_REQUEST and request_body is not None:
            rendered = json.dumps(request_body, indent=2, ensure_ascii=False)
            message = f"{message}\nRequest payload: {rendered}"
        return GatewayError(
            status_code, f"Upstream API error: {message}", self.upstream_error_type
        )

    def _map_internal(self, exc: BaseException, context: str | None) -> GatewayError:
        message = str(exc).strip() or "An unexpected error occurred"
        self._logger.error(
            {
                "message": message,
                "error": {"name": exc.__class__.__name__},
            },
            "".join(traceback.format_exception(exc)),
            context,
        )
        return internal_error(message)
