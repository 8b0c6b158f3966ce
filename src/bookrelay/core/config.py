"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"


class ConfigError(Exception):
    """Raised when required settings are missing or malformed."""


@dataclass(frozen=True)
class Settings:
    openai_api_key: str
    openai_model: str = DEFAULT_MODEL
    openai_base_url: str = DEFAULT_BASE_URL
    openai_timeout: float = 60.0  # web_search calls routinely take 10-30s
    port: int = 3001
    env: str = "dev"

    @classmethod
    def from_env(cls) -> Settings:
        api_key = os.environ.get("OPENAI_API_KEY", "").strip()
        if not api_key:
            raise ConfigError("OPENAI_API_KEY is not set. Check your .env file.")
        try:
            return cls(
                openai_api_key=api_key,
                openai_model=os.environ.get("OPENAI_MODEL", DEFAULT_MODEL),
                openai_base_url=os.environ.get("OPENAI_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
                openai_timeout=float(os.environ.get("OPENAI_TIMEOUT", "60")),
                port=int(os.environ.get("PORT", "3001")),
                env=os.environ.get("ENV", "dev"),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid setting: {e}") from e
