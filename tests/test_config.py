from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml
from pydantic import ValidationError

from gemini_gateway.config import (
    GatewayConfig,
    LoggingConfig,
    effective_logging_config,
    load_gateway_config,
    resolve_api_key,
)
from gemini_gateway.settings import Settings, get_settings


def _write_yaml(path: Path, payload: Any) -> None:
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")


def test_settings_read_environment(monkeypatch: Any) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
    get_settings.cache_clear()
    try:
        settings = get_settings()
    finally:
        get_settings.cache_clear()

    assert settings.gemini_api_key == "env-key"
    assert settings.port == 8080
    assert settings.cors_origins_list == ["https://a.example", "https://b.example"]
    assert settings.gemini_base_url == "https://generativelanguage.googleapis.com/v1/models"


def test_load_gateway_config_defaults_when_file_missing(tmp_path: Path) -> None:
    config = load_gateway_config(tmp_path / "missing.yaml")
    assert config == GatewayConfig()
    assert config.generation.max_output_tokens == 1024
    assert config.logging.combined_log_pattern == "combined-%DATE%.log"


def test_load_gateway_config_reads_yaml(tmp_path: Path) -> None:
    path = tmp_path / "gateway.yaml"
    _write_yaml(
        path,
        {
            "gemini": {"api_key": "yaml-key"},
            "generation": {"temperature": 0.2, "top_k": 10},
            "logging": {"level": "debug", "dir": "var/log"},
        },
    )

    config = load_gateway_config(path)

    assert config.gemini.api_key == "yaml-key"
    assert config.generation.temperature == 0.2
    assert config.generation.top_k == 10
    assert config.generation.top_p == 0.8
    assert config.logging.level == "DEBUG"
    assert config.logging.dir == "var/log"


def test_load_gateway_config_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "gateway.yaml"
    _write_yaml(path, ["not", "a", "mapping"])

    with pytest.raises(ValueError, match="Expected YAML object"):
        load_gateway_config(path)


def test_logging_config_validates_level_and_patterns() -> None:
    assert LoggingConfig(level="warn").level == "WARNING"
    with pytest.raises(ValidationError):
        LoggingConfig(level="chatty")
    with pytest.raises(ValidationError):
        LoggingConfig(combined_log_pattern="combined.log")


def test_resolve_api_key_prefers_environment() -> None:
    config = GatewayConfig.model_validate({"gemini": {"api_key": "yaml-key"}})
    assert resolve_api_key(Settings(gemini_api_key=" env-key "), config) == "env-key"
    assert resolve_api_key(Settings(gemini_api_key=""), config) == "yaml-key"
    assert resolve_api_key(Settings(gemini_api_key=None), GatewayConfig()) is None


def test_effective_logging_config_applies_setting_overrides() -> None:
    config = GatewayConfig.model_validate({"logging": {"level": "INFO", "dir": "a"}})
    settings = Settings(
        log_level="error",
        log_dir="b",
        error_log_pattern="err-%DATE%.txt",
    )

    effective = effective_logging_config(settings, config)

    assert effective.level == "ERROR"
    assert effective.dir == "b"
    assert effective.error_log_pattern == "err-%DATE%.txt"
    assert effective.combined_log_pattern == "combined-%DATE%.log"
    assert config.logging.dir == "a"
