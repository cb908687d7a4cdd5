from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    gemini_api_key: str | None = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1/models"
    gemini_default_model: str = "gemini-pro"
    upstream_provider_name: str = "upstream"
    upstream_timeout_seconds: float = 120.0
    upstream_connect_timeout_seconds: float = 5.0
    gateway_config_path: str = "gateway.yaml"
    log_level: str | None = None
    log_dir: str | None = None
    combined_log_pattern: str | None = None
    error_log_pattern: str | None = None
    http_log_enabled: bool = True
    http_log_pattern: str = "http-%DATE%.jsonl"
    cors_origins: str = "*"
    static_dir: str = "public"
    host: str = "0.0.0.0"
    port: int = 3003

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        return _split_csv(self.cors_origins)


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
