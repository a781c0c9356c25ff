"""Load configuration from YAML and environment variables. No hardcoded secrets."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default config lives next to this module
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class ProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore", populate_by_name=True)
    protocol: str = "openai"
    model: str = "gpt-4o-mini"
    api_base: str = "https://api.openai.com"
    api_key: str = Field(default="", alias="LLM_API_KEY")
    system_prompt: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)


class ChatSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHAT_", extra="ignore", populate_by_name=True)
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    timeout: Optional[float] = 120.0


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore", populate_by_name=True)
    level: str = "INFO"
    json_format: bool = True


class Config(BaseSettings):
    """Client config: YAML + env. Secrets from env only."""

    model_config = SettingsConfigDict(env_nested_delimiter="__", extra="ignore", populate_by_name=True)

    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "Config":
        path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
        yaml_data = _load_yaml(path)
        env_prefix = os.getenv("STREAMCHAT_ENV_PREFIX", "")
        if env_prefix:
            yaml_data = _deep_merge(yaml_data, _load_yaml(Path(f"config/{env_prefix}.yaml")))
        api_key = os.getenv("LLM_API_KEY")
        if api_key:
            yaml_data.setdefault("provider", {})["api_key"] = api_key
        for env_name, field in (
            ("LLM_PROTOCOL", "protocol"),
            ("LLM_MODEL", "model"),
            ("LLM_API_BASE", "api_base"),
        ):
            value = os.getenv(env_name)
            if value:
                yaml_data.setdefault("provider", {})[field] = value
        level = os.getenv("LOG_LEVEL")
        if level:
            yaml_data.setdefault("logging", {})["level"] = level
        return cls(**yaml_data)


def get_config(config_path: str | Path | None = None) -> Config:
    return Config.load(config_path)
