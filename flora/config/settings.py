from __future__ import annotations

from pathlib import Path
from typing import Literal, Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flora.constants import DB_SCHEMA

# Load .env once at module import; every BaseSettings subclass sees the env vars
load_dotenv()


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings. Env vars prefixed with DATABASE_."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    name: str = "flora"
    schema_: str = Field(DB_SCHEMA, validation_alias="DATABASE_SCHEMA")

    @field_validator("schema_")
    @classmethod
    def _validate_schema(cls, v: str) -> str:
        if v != DB_SCHEMA:
            msg = f"DATABASE_SCHEMA must be '{DB_SCHEMA}' (got '{v}')"
            raise ValueError(msg)
        return v


class StorageSettings(BaseSettings):
    """Durable flower record storage. Env vars prefixed with STORAGE_."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: Literal["file", "postgres"] = "file"
    path: Path = Path("flowerbed")  # file backend only


class OpenAISettings(BaseSettings):
    """OpenAI API settings. Env vars prefixed with OPENAI_."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: str = ""  # empty = backend disabled
    base_url: str | None = None
    model: str = "gpt-4"  # flower genome baseModel this backend answers for
    upstream_model: str = "gpt-4"


class AnthropicSettings(BaseSettings):
    """Anthropic API settings via OpenAI-compatible endpoint."""

    model_config = SettingsConfigDict(env_prefix="ANTHROPIC_")

    api_key: str = ""  # empty = backend disabled
    base_url: str = "https://api.anthropic.com/v1/"
    model: str = "claude-3"
    upstream_model: str = "claude-3-haiku-20240307"


class MemorySettings(BaseSettings):
    """Tiered memory retention settings. Env vars prefixed with MEMORY_."""

    model_config = SettingsConfigDict(env_prefix="MEMORY_")

    short_term_capacity: int = Field(10, gt=0)
    short_term_retain: int = Field(8, gt=0)
    promotion_threshold: float = 0.7  # strictly greater promotes
    promotion_limit: int = Field(2, ge=0)  # per overflow event
    episode_threshold: float = 0.8  # strictly greater creates an episode
    summary_chars: int = Field(50, gt=0)
    context_fragments: int = Field(5, gt=0)  # fragments rendered by ContextEncoder

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.short_term_retain >= self.short_term_capacity:
            raise ValueError(
                f"short_term_retain ({self.short_term_retain}) must be less than "
                f"short_term_capacity ({self.short_term_capacity})"
            )
        for name in ("promotion_threshold", "episode_threshold"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must be in [0.0, 1.0], got {value}")
        return self


class EvolutionSettings(BaseSettings):
    """EvolutionContext retention windows. Env vars prefixed with EVOLUTION_."""

    model_config = SettingsConfigDict(env_prefix="EVOLUTION_")

    trajectory_window: int = Field(10, gt=0)
    topic_window: int = Field(10, gt=0)


class SessionSettings(BaseSettings):
    """Session lifecycle settings. Env vars prefixed with SESSION_."""

    model_config = SettingsConfigDict(env_prefix="SESSION_")

    # False: the bloom counter bump rides along with the next successful tend.
    persist_on_bloom: bool = False
    # session: one writer per session id. flower: one writer per flower id.
    serialization: str = "session"

    @field_validator("serialization")
    @classmethod
    def _validate_serialization(cls, v: str) -> str:
        allowed = {"session", "flower"}
        if v not in allowed:
            msg = f"SESSION_SERIALIZATION must be one of {allowed} (got '{v}')"
            raise ValueError(msg)
        return v


class LoggingSettings(BaseSettings):
    """Logging output settings. Env vars prefixed with LOG_."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    json_output: bool = True
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        v = v.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v not in allowed:
            msg = f"LOG_LEVEL must be one of {allowed} (got '{v}')"
            raise ValueError(msg)
        return v


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    anthropic: AnthropicSettings = Field(default_factory=AnthropicSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    evolution: EvolutionSettings = Field(default_factory=EvolutionSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()
