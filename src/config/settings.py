"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=10000)
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        description="Origins allowed to call the operator API from a browser.",
    )

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None, description="E.164, e.g. +1555...")
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )

    # Call flow
    default_voice: str = Field(default="alice")
    greeting_text: str = Field(
        default="Hello, you are now connected to a TTY communication service."
    )
    goodbye_text: str = Field(default="Thank you for using TTY service. Goodbye.")
    gather_timeout_seconds: int = Field(
        default=300,
        ge=1,
        description="How long the keep-alive <Gather> holds the call open between messages.",
    )

    # Media Streams
    stream_name: str = Field(default="live-audio-stream")
    stream_track: Literal["inbound_track", "outbound_track", "both_tracks"] = Field(
        default="inbound_track"
    )

    # Recording / transcription callbacks
    record_calls: bool = Field(
        default=False,
        description="If true, calls are recorded and recording/transcription webhooks are requested.",
    )

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.rstrip("/") or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
