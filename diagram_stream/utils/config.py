"""Application configuration."""
from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from .env and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(
        default="sqlite+pysqlite:///./diagram_stream.db",
        validation_alias=AliasChoices("DATABASE_URL"),
    )
    max_assembly_rounds: int = 10
    resume_tail_chars: int = 500
    assembly_ttl_seconds: float = 30 * 60
    region_cache_ttl_seconds: float = 10 * 60
    assembled_echo_chars: int = 2000
    log_level: str = "INFO"


settings = Settings()
