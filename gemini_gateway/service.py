from __future__ import annotations

import json
import time
from typing import Any

from gemini_gateway.config import GenerationDefaults
from gemini_gateway.errors import ErrorMapper, invalid_request
from gemini_gateway.logging_config import GatewayLogger
from gemini_gateway.normalizer import (
    NO_RESPONSE_TEXT,
    build_chat_completion,
    build_embedding_response,
    build_model_list,
    build_text_completion,
    extract_embeddings,
    extract_generated_text,
    first_candidate,
)
from gemini_gateway.sanitizer import sanitize_response
from gemini_gateway.schemas import (
    ChatCompletionRequest,
    CompletionRequest,
    EmbeddingRequest,
)
from gemini_gateway.upstream import (
    SUPPORTED_MODELS,
    GeminiClient,
    build_chat_contents,
    build_generation_config,
    build_prompt_contents,
    flatten_content,
    validate_embedding_model,
    validate_model,
)
from gemini_gateway.usage import estimate_usage


class GeminiService:
    def __init__(
        self,
        *,
        client: GeminiClient,
        generation_defaults: GenerationDefaults,
        default_model: str,
        logger: GatewayLogger,
        error_mapper: ErrorMapper,
    ) -> None:
        self._client = client
        self._generation_defaults = generation_defaults
        self._default_model = default_model
        self._logger = logger
        self._errors = error_mapper

    def list_models(self) -> dict[str, Any]:
        return build_model_list(SUPPORTED_MODELS, created=int(time.time()))

    def _generated_text(self, response: Any, context: str) -> str:
        text = extract_generated_text(response)
        if text is not None:
            return text
        candidate = first_candidate(response)
        self._logger.warn(
            {
                "message": "No text was generated in the response",
                "candidateStructure": json.dumps(candidate, default=str),
            },
            context,
        )
        return NO_RESPONSE_TEXT

    async def create_chat_completion(
        self, request: ChatCompletionRequest
    ) -> dict[str, Any]:
        context = "create_chat_completion"
        try:
            self._logger.log("Starting chat completion request", context)
            self._client.require_api_key(context)
            model = validate_model(
                self._default_model if request.model is None else request.model
            )
            if not request.messages:
                raise invalid_request("messages must contain at least one message")

            contents = build_chat_contents(request.messages)
            generation_config = build_generation_config(
                self._generation_defaults,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
            raw = await self._client.send_generate(model, contents, generation_config)
            text = self._generated_text(sanitize_response(raw), context)
            usage = estimate_usage(
                [flatten_content(message.content) for message in request.messages],
                text,
            )
            return build_chat_completion(
                model=model,
                text=text,
                usage=usage if request.include_usage else None,
            )
        except Exception as exc:
            raise self._errors.map(exc, context) from exc

    async def create_completion(self, request: CompletionRequest) -> dict[str, Any]:
        context = "create_completion"
        try:
            self._logger.log("Starting completion request", context)
            self._client.require_api_key(context)
            model = validate_model(
                self._default_model if request.model is None else request.model
            )

            generation_config = build_generation_config(
                self._generation_defaults,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
            raw = await self._client.send_generate(
                model, build_prompt_contents(request.prompt), generation_config
            )
            text = self._generated_text(sanitize_response(raw), context)
            return build_text_completion(
                model=model,
                text=text,
                usage=estimate_usage([request.prompt], text),
            )
        except Exception as exc:
            raise self._errors.map(exc, context) from exc

    async def create_embedding(self, request: EmbeddingRequest) -> dict[str, Any]:
        context = "create_embedding"
        try:
            self._logger.log("Starting embedding request", context)
            self._client.require_api_key(context)
            model = validate_embedding_model(request.model)
            inputs = request.inputs

            raw = await self._client.send_embed(inputs)
            vectors = extract_embeddings(sanitize_response(raw), len(inputs))
            return build_embedding_response(
                model=model,
                vectors=vectors,
                usage=estimate_usage(inputs, ""),
            )
        except Exception as exc:
            raise self._errors.map(exc, context) from exc
