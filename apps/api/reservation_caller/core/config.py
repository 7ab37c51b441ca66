"""Application configuration for the reservation caller."""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_env: str = Field(default="development")
    app_base_url: str = Field(default="http://localhost:8787")
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    twilio_account_sid: str = Field(default="")
    twilio_auth_token: str = Field(default="")
    twilio_phone_number: str = Field(default="")
    twilio_create_timeout_ms: int = Field(default=12_000, gt=0)
    twilio_create_max_attempts: int = Field(default=3, ge=1)
    twilio_backoff_base_ms: int = Field(default=1_000, ge=0)
    twilio_backoff_max_ms: int = Field(default=5_000, ge=0)
    twilio_machine_detection: str = Field(default="detect-message-end")

    database_url: str = Field(default="")
    data_file: str = Field(default="./data/calls.json")

    call_dial_timeout_ms: int = Field(default=120_000, gt=0)
    call_conversation_timeout_ms: int = Field(default=600_000, gt=0)
    transcript_dedupe_window_ms: int = Field(default=15_000, ge=0)
    max_clarification_turns: int = Field(default=3, ge=1)

    notify_callback_url: str = Field(default="")
    notify_callback_token: str = Field(default="")
    notify_timeout_seconds: float = Field(default=5.0, gt=0)

    default_caller_name: str = Field(default="Felix")

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        """Allow comma-separated env values for CORS origins."""

        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("twilio_machine_detection", mode="before")
    @classmethod
    def _normalise_detection(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def has_twilio_config(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)

    @property
    def has_database_config(self) -> bool:
        return bool(self.database_url.strip())


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
