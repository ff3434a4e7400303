"""Configuration management for Reco: pydantic-settings + TOML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.constants import (
    CONFIG_FILE,
    CONVERSATION_TIMEOUT_SECONDS,
    DEFAULT_EXCHANGE_RATE,
    DEFAULT_INITIAL_CREDITS,
    DEFAULT_MARGIN_MULTIPLIER,
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_MESSAGE_QUOTA,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    MAX_CONTEXT_MESSAGES,
    SEARCH_CACHE_TTL_SECONDS,
    SEARCH_MAX_TOKENS,
    SEARCH_PRICE_PER_MTOK_USD,
)


class LLMConfig(BaseModel):
    model: str = DEFAULT_MODEL
    api_base: str = ""
    api_key_name: str = "OPENAI_API_KEY"
    max_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    timeout_seconds: float = 60.0
    moderation_enabled: bool = True
    moderation_model: str = "omni-moderation-latest"


class SearchConfig(BaseModel):
    enabled: bool = True
    model: str = "sonar"
    base_url: str = "https://api.perplexity.ai"
    api_key_name: str = "PERPLEXITY_API_KEY"
    max_tokens: int = SEARCH_MAX_TOKENS
    cache_ttl_seconds: int = SEARCH_CACHE_TTL_SECONDS
    price_per_mtok_usd: float = SEARCH_PRICE_PER_MTOK_USD
    timeout_seconds: float = 30.0


class BillingConfig(BaseModel):
    mode: str = "credits"
    margin_multiplier: float = DEFAULT_MARGIN_MULTIPLIER
    exchange_rate: float = DEFAULT_EXCHANGE_RATE
    initial_credits: int = DEFAULT_INITIAL_CREDITS
    message_quota: int = DEFAULT_MESSAGE_QUOTA
    top_up_links: list[str] = []

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        if v not in ("credits", "messages"):
            raise ValueError("Billing mode must be 'credits' or 'messages'")
        return v

    @field_validator("margin_multiplier", "exchange_rate")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Multipliers and exchange rates must be positive")
        return v


class ConversationConfig(BaseModel):
    window_size: int = MAX_CONTEXT_MESSAGES
    timeout_seconds: int = CONVERSATION_TIMEOUT_SECONDS

    @field_validator("window_size")
    @classmethod
    def validate_window(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Conversation window must hold at least one message")
        return v


class StorageConfig(BaseModel):
    # Empty path means no durable store: ledger and mirror run in memory
    db_path: str = ""


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"


class RecoConfig(BaseSettings):
    """Root configuration for Reco. Loads from TOML + env vars (RECO_SECTION__KEY)."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    billing: BillingConfig = Field(default_factory=BillingConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(env_prefix="RECO_", env_nested_delimiter="__")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats values loaded from TOML files
        return env_settings, init_settings, dotenv_settings, file_secret_settings


class ConfigurationError(Exception):
    """Raised when a required setting or credential is missing."""

    pass


def load_config(config_path: Path | None = None) -> RecoConfig:
    """
    Load configuration from TOML file with env var overrides.

    Priority (highest to lowest):
    1. Environment variables (RECO_*)
    2. User config file (~/.reco/config.toml or the given path)
    3. Default config (config/default.toml)
    """
    import tomli

    merged: dict[str, Any] = {}

    default_path = Path(__file__).parent.parent / "config" / "default.toml"
    if default_path.exists():
        with open(default_path, "rb") as f:
            merged = tomli.load(f)

    user_path = config_path or CONFIG_FILE
    if user_path.exists():
        with open(user_path, "rb") as f:
            merged = _deep_merge(merged, tomli.load(f))

    try:
        return RecoConfig(**merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def resolve_secret(name: str) -> str:
    """Read a credential from the environment (a local .env file is honoured)."""
    load_dotenv()
    return os.getenv(name, "")


def require_secret(name: str) -> str:
    """Like resolve_secret, but a missing credential is a hard error."""
    value = resolve_secret(name)
    if not value:
        raise ConfigurationError(f"{name} is not set. Export it or add it to .env")
    return value


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Override values take precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
