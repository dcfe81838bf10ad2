"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    max_retries: int = 3
    timeout: int = 120


class ModelConfig(BaseModel):
    name: str = "claude-sonnet-4-20250514"
    temperature: float = 0.3
    max_output_tokens: int = 4000
    context_window: int = 32000
    chars_per_token: int = 4  # heuristic used by the token estimator


class AssistantLimits(BaseModel):
    """Numeric knobs for the orchestration core."""

    safety_margin_tokens: int = 500
    max_single_message_tokens: int = 2000
    max_history_messages: int = 40
    max_tool_result_tokens: int = 8000
    tokens_per_tool: int = 200
    message_overhead_tokens: int = 4
    max_tool_rounds: int = 10
    tool_timeout_seconds: float = 30.0
    cache_ttl_seconds: float = 60.0
    cache_max_entries: int = 2000
    title_length: int = 50


class RateLimitConfig(BaseModel):
    requests_per_minute: int = 30
    window_seconds: float = 60.0
    cleanup_interval_seconds: float = 300.0
    entry_expiration_seconds: float = 600.0


class PersonaConfig(BaseModel):
    max_message_length: int = 4000
    max_client_history: Optional[int] = None  # None = no cap on client-supplied history
    prompt_addendum: str = ""


def _customer_persona() -> PersonaConfig:
    return PersonaConfig(max_message_length=2000, max_client_history=20)


class PersonasConfig(BaseModel):
    staff: PersonaConfig = Field(default_factory=PersonaConfig)
    customer: PersonaConfig = Field(default_factory=_customer_persona)


class StorageConfig(BaseModel):
    db_path: str = "./data/store.db"
    conversation_retention_days: int = 30


class MaintenanceConfig(BaseModel):
    enabled: bool = True
    sweep_interval_seconds: int = 300
    retention_interval_hours: int = 24
    timezone: str = "UTC"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    json_logs: bool = False
    data_dir: str = "./data"
    anthropic: Optional[AnthropicConfig] = None
    model: ModelConfig = Field(default_factory=ModelConfig)
    assistant: AssistantLimits = Field(default_factory=AssistantLimits)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    personas: PersonasConfig = Field(default_factory=PersonasConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    maintenance: MaintenanceConfig = Field(default_factory=MaintenanceConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = raw_data.get("data_dir", "./data")
    data_dir = _interpolate_env_vars(data_dir)

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
