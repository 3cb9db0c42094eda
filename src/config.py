from functools import lru_cache
from typing import ClassVar, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PRIORITY_CODES = ("1", "2", "3")


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # LLM provider: "anthropic" (default) or "openai"
    llm_provider: Literal["anthropic", "openai"] = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""  # Optional OpenAI-compatible proxy URL
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.0

    # Storage: sqlite for local runs, oracle for the helpdesk database
    db_backend: Literal["sqlite", "oracle"] = "sqlite"
    sqlite_db_path: str = "triage.db"
    oracle_username: str = ""
    oracle_password: str = ""
    oracle_connstring: str = ""
    oracle_client_lib_dir: str = ""  # empty = python-oracledb thin mode

    # Which incidents are pending triage
    event_state_id: int = 96719
    event_agenda_id: int = 3907041
    event_template: int = 0
    batch_size: int = Field(default=5, ge=1)

    # Classification write-back
    response_max_bytes: int = Field(default=200, ge=0)
    default_priority: str = "1"
    quote_priority: bool = False  # legacy: store the code as '"2"'

    # An LLM failure stops the rest of the batch unless disabled
    abort_on_inference_error: bool = True

    # Observability (empty string means disabled)
    log_level: str = "INFO"
    log_dir: str = "logs"
    metrics_textfile: str = ""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("default_priority")
    @classmethod
    def _check_priority(cls, value: str) -> str:
        if value not in PRIORITY_CODES:
            msg = f"default_priority must be one of {', '.join(PRIORITY_CODES)}"
            raise ValueError(msg)
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()
