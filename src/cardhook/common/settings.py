"""Configuration management using pydantic-settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CARDHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Keys
    api_keys: dict[str, str] = Field(
        default_factory=dict,
        description="Mapping of API key id to base64-encoded HMAC secret (JSON)",
    )
    api_keys_file: str | None = Field(
        default=None,
        description="Path to a JSON file with additional key id -> base64 secret entries",
    )

    # Signature headers (contract with the counterparty)
    endpoint_header: str = Field(
        default="X-Endpoint",
        description="Header carrying the logical endpoint identifier",
    )
    timestamp_header: str = Field(
        default="X-Timestamp",
        description="Header carrying the signing timestamp (epoch seconds)",
    )
    signature_header: str = Field(
        default="X-Signature",
        description="Header carrying '<algorithm> <base64 digest>'",
    )
    api_key_header: str = Field(
        default="X-Api-Key",
        description="Header selecting which secret signs the exchange",
    )
    auth_exempt_paths: tuple[str, ...] = Field(
        default=("/health", "/metrics"),
        description="Paths exempt from signature verification",
    )

    # Server
    host: str = Field(
        default="127.0.0.1",
        description="Host for the webhook HTTP server",
    )
    port: int = Field(
        default=1080,
        description="Port for the webhook HTTP server",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum log level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of console output",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
