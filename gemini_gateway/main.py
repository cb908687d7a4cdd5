from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles

from gemini_gateway import __version__
from gemini_gateway.api_keys import ApiKeyNotFoundError, ApiKeyRegistry
from gemini_gateway.api_keys import router as api_key_router
from gemini_gateway.config import (
    effective_logging_config,
    load_gateway_config,
    resolve_api_key,
)
from gemini_gateway.errors import (
    INVALID_REQUEST_ERROR,
    NOT_FOUND_ERROR,
    ErrorMapper,
    GatewayError,
    error_envelope,
    internal_error,
)
from gemini_gateway.gateway.audit import JsonlAuditLogger
from gemini_gateway.gateway.http_logging import HttpTrafficLogger
from gemini_gateway.logging_config import (
    GatewayLogger,
    configure_logging,
    shutdown_logging,
)
from gemini_gateway.schemas import (
    ChatCompletionRequest,
    CompletionRequest,
    EmbeddingRequest,
)
from gemini_gateway.service import GeminiService
from gemini_gateway.settings import get_settings
from gemini_gateway.streaming import iter_pseudo_stream
from gemini_gateway.upstream import GeminiClient

app = FastAPI(
    title="Gemini Gateway",
    description="OpenAI-compatible API gateway in front of Google Gemini.",
    version=__version__,
)

logger = logging.getLogger("uvicorn.error")

STATIC_MOUNT_NAME = "static"

# CORS origins are read once at import time; a CORS_ORIGINS change needs a
# new process, unlike settings read in startup().
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_key_router)


@app.middleware("http")
async def http_logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    registry: ApiKeyRegistry | None = getattr(app.state, "api_key_registry", None)
    authorization = request.headers.get("authorization", "")
    if registry is not None and authorization.lower().startswith("bearer "):
        registry.increment_usage(authorization[7:].strip())

    traffic_logger: HttpTrafficLogger | None = getattr(
        app.state, "http_traffic_logger", None
    )
    if traffic_logger is None:
        return await call_next(request)
    return await traffic_logger.dispatch(request, call_next)


def _mount_static(directory: str) -> None:
    path = Path(directory)
    if not path.is_dir():
        return
    if any(getattr(route, "name", None) == STATIC_MOUNT_NAME for route in app.routes):
        return
    app.mount("/", StaticFiles(directory=path, html=True), name=STATIC_MOUNT_NAME)


def _unmount_static() -> None:
    app.router.routes[:] = [
        route
        for route in app.router.routes
        if getattr(route, "name", None) != STATIC_MOUNT_NAME
    ]


@app.on_event("startup")
async def startup() -> None:
    settings = get_settings()
    gateway_config = load_gateway_config(settings.gateway_config_path)
    logging_config = effective_logging_config(settings, gateway_config)
    configure_logging(logging_config)

    client = GeminiClient(
        base_url=settings.gemini_base_url,
        api_key=resolve_api_key(settings, gateway_config),
        timeout_seconds=settings.upstream_timeout_seconds,
        connect_timeout_seconds=settings.upstream_connect_timeout_seconds,
        transport=getattr(app.state, "upstream_transport", None),
    )
    app.state.settings = settings
    app.state.gateway_config = gateway_config
    app.state.gemini_client = client
    app.state.gemini_service = GeminiService(
        client=client,
        generation_defaults=gateway_config.generation,
        default_model=settings.gemini_default_model,
        logger=GatewayLogger("GeminiService"),
        error_mapper=ErrorMapper(
            GatewayLogger("ErrorMapper"),
            provider_name=settings.upstream_provider_name,
        ),
    )
    app.state.api_key_registry = ApiKeyRegistry()

    audit_logger = JsonlAuditLogger(
        directory=logging_config.dir,
        pattern=settings.http_log_pattern,
        date_pattern=logging_config.date_pattern,
        enabled=settings.http_log_enabled,
    )
    app.state.audit_logger = audit_logger
    app.state.http_traffic_logger = (
        HttpTrafficLogger(audit_logger) if audit_logger.enabled else None
    )
    _mount_static(settings.static_dir)
    logger.info(
        (
            "startup complete base_url=%s default_model=%s api_key_configured=%s "
            "log_dir=%s log_level=%s http_log_enabled=%s"
        ),
        settings.gemini_base_url,
        settings.gemini_default_model,
        client.has_api_key,
        logging_config.dir,
        logging_config.level,
        settings.http_log_enabled,
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    client: GeminiClient | None = getattr(app.state, "gemini_client", None)
    if client is not None:
        await client.close()
    audit_logger: JsonlAuditLogger | None = getattr(app.state, "audit_logger", None)
    if audit_logger is not None:
        audit_logger.close()
    app.state.http_traffic_logger = None
    _unmount_static()
    shutdown_logging()
    logger.info("shutdown complete")


def _service() -> GeminiService:
    return app.state.gemini_service


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/v1/models")
async def models() -> dict[str, Any]:
    return _service().list_models()


@app.post("/v1/chat/completions")
async def chat_completions(payload: ChatCompletionRequest) -> Response:
    completion = await _service().create_chat_completion(payload)
    if payload.stream:
        return StreamingResponse(
            iter_pseudo_stream(completion),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )
    return JSONResponse(content=completion)


@app.post("/v1/completions")
async def completions(payload: CompletionRequest) -> dict[str, Any]:
    return await _service().create_completion(payload)


@app.post("/v1/embeddings")
async def embeddings(payload: EmbeddingRequest) -> dict[str, Any]:
    return await _service().create_embedding(payload)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid value"))
    return f"{location}: {message}" if location else message


@app.exception_handler(GatewayError)
async def gateway_error_handler(_: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    _: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_envelope(
            _validation_message(exc),
            INVALID_REQUEST_ERROR,
            status.HTTP_400_BAD_REQUEST,
        ),
    )


@app.exception_handler(ApiKeyNotFoundError)
async def api_key_not_found_handler(
    _: Request, exc: ApiKeyNotFoundError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=error_envelope(str(exc), NOT_FOUND_ERROR, status.HTTP_404_NOT_FOUND),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error method=%s path=%s", request.method, request.url.path
    )
    error = internal_error(str(exc).strip() or "An unexpected error occurred")
    return JSONResponse(status_code=error.status_code, content=error.to_envelope())


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("gemini_gateway.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
