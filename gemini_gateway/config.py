from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from gemini_gateway.settings import Settings
from gemini_gateway.utils.yaml_utils import load_yaml_dict


class GeminiConfig(BaseModel):
    api_key: str | None = None


class GenerationDefaults(BaseModel):
    temperature: float = 0.7
    max_output_tokens: int = 1024
    top_p: float = 0.8
    top_k: int = 40


class LoggingConfig(BaseModel):
    level: str = "INFO"
    dir: str = "logs"
    date_pattern: str = "%Y-%m-%d"
    combined_log_pattern: str = "combined-%DATE%.log"
    error_log_pattern: str = "error-%DATE%.log"

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        normalized = str(value).strip().upper()
        if normalized == "WARN":
            normalized = "WARNING"
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level '{value}'.")
        return normalized

    @field_validator("combined_log_pattern", "error_log_pattern")
    @classmethod
    def _require_date_marker(cls, value: str) -> str:
        if "%DATE%" not in value:
            raise ValueError("Log file patterns must contain '%DATE%'.")
        return value


class GatewayConfig(BaseModel):
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    generation: GenerationDefaults = Field(default_factory=GenerationDefaults)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_gateway_config(path: str | Path) -> GatewayConfig:
    resolved = Path(path)
    if not resolved.exists():
        return GatewayConfig()
    raw = load_yaml_dict(
        resolved,
        error_message=f"Expected YAML object in '{resolved}'.",
    )
    return GatewayConfig.model_validate(raw)


def resolve_api_key(settings: Settings, config: GatewayConfig) -> str | None:
    for candidate in (settings.gemini_api_key, config.gemini.api_key):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def effective_logging_config(settings: Settings, config: GatewayConfig) -> LoggingConfig:
    overrides: dict[str, str] = {}
    if settings.log_level:
        overrides["level"] = settings.log_level
    if settings.log_dir:
        overrides["dir"] = settings.log_dir
    if settings.combined_log_pattern:
        overrides["combined_log_pattern"] = settings.combined_log_pattern
    if settings.error_log_pattern:
        overrides["error_log_pattern"] = settings.error_log_pattern
    if not overrides:
        return config.logging
    return LoggingConfig.model_validate({**config.logging.model_dump(), **overrides})
