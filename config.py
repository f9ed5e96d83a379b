from __future__ import annotations

import logging
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings

log = logging.getLogger(__name__)

VERSION = "0.1.0"

DEFAULT_PORT = 3848
DEFAULT_HOST = "127.0.0.1"
DEFAULT_INTERVAL = 300  # seconds


class Settings(BaseSettings):
    """Configuration from AGENT_USAGE_* environment variables / .env file."""

    model_config = {
        "env_prefix": "AGENT_USAGE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Serve mode
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    interval: int = DEFAULT_INTERVAL
    service: str | None = None  # None / "all" = every service

    # Logging
    log_level: str = "WARNING"

    # Provider credentials; empty means "look in the provider CLI's own files"
    claude_token: str = ""
    chatgpt_token: str = ""
    copilot_token: str = ""
    github_session: str = ""  # github.com user_session cookie
    gemini_token: str = ""

    gh_path: str = "gh"
    cli_timeout: float = 5.0
    request_timeout: float = 10.0

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 1 <= value <= 65_535:
            raise ValueError(f"Invalid port: {value}")
        return value

    @field_validator("interval", mode="before")
    @classmethod
    def _check_interval(cls, value: Any) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            parsed = 0
        if parsed < 1 or str(parsed) != str(value).strip():
            log.warning("Invalid interval value %r, using default %d", value, DEFAULT_INTERVAL)
            return DEFAULT_INTERVAL
        return parsed

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


def load_settings(**overrides: Any) -> Settings:
    """Build settings with CLI overrides taking priority over the environment."""
    return Settings(**{key: value for key, value in overrides.items() if value is not None})
