"""Runtime settings, read from ``AUMAI_RULEGROUNDING_*`` environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for rule ingestion.

    Attributes:
        initial_rule_id: Counter start value; the first annotated rule gets
            ``initial_rule_id + 1``.
        oracle_retries: Extra validation attempts when the knowledge base is
            unavailable.
        log_level: Logging level used by the CLI.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUMAI_RULEGROUNDING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    initial_rule_id: int = 0
    oracle_retries: int = Field(default=0, ge=0)
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"unknown log level: {value!r}")
        return level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
