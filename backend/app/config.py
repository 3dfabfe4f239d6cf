from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Literal

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Roomrelay API", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=True, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
        ],
        description="List of allowed CORS origins",
    )

    cors_allow_origin_regex: str | None = Field(
        default=r"^https?://(localhost|127\.0\.0\.1|0\.0\.0\.0|\[::1\])(:\d+)?$",
        description="Optional regular expression that matches allowed CORS origins",
    )

    room_code_length: int = Field(
        default=6,
        ge=6,
        le=32,
        description="Number of characters in generated room codes.",
    )
    room_code_max_attempts: int = Field(
        default=32,
        ge=1,
        description="Collisions tolerated before room creation gives up.",
    )
    display_name_max_length: int = Field(default=64, ge=1)
    chat_history_max_messages: int = Field(
        default=500,
        ge=1,
        description="Messages retained per room; the oldest are evicted first.",
    )
    max_inline_payload_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Inline attachment/audio data beyond this size is truncated.",
    )
    like_policy: Literal["toggle", "add"] = Field(
        default="toggle",
        description="'toggle' lets a second like remove the first; 'add' ignores repeats.",
    )

    websocket_keepalive_timeout_seconds: float = Field(
        default=30,
        description="Idle time before the server probes the client with a ping.",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25,
        description="Minimum spacing between keepalive pings.",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        return str(value or "INFO").strip().upper()


@lru_cache
def get_settings() -> Settings:
    return Settings()
