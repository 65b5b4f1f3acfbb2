"""Application configuration management."""

from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings loaded from environment variables.

    These cover where state lives and how the server runs. Upstream
    addresses and credentials live in the gateway config file instead, so
    they can be changed at runtime through ``/api/config``.

    Attributes:
        config_file: Path of the gateway config JSON file
        history_file: Path of the history JSON file
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        host: Interface the server binds to
        max_concurrent_requests: Requests handled at once; the rest queue
        cors_origins: Allowed CORS origins
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

    config_file: str = "config.json"
    history_file: str = "history.json"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    max_concurrent_requests: int = Field(default=32, ge=1)
    cors_origins: List[str] = ["*"]


# Global settings instance
settings = Settings()
