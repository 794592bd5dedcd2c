# convo/core/config.py
import os
from typing import List, Literal

from dotenv import load_dotenv

from convo.core.exceptions import ConfigurationError


def _env_number(name: str, default, cast=int):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


class Settings:
    """
    Setup environment variables.
        - GEMINI_API_KEY credential for the summarization model (required)
        - GEMINI_MODEL the Gemini chat model name
        - PORT the HTTP port uvicorn listens on
        - MAX_MESSAGES_PER_ROOM / MAX_CHARACTERS_PER_MESSAGE room safeguards
        - ROOM_INACTIVITY_TIMEOUT_SECONDS / REAPER_INTERVAL_SECONDS reaper timing
        - SUMMARY_GRACE_SECONDS delay between summary delivery and room teardown
        - BROADCAST_BACKEND how room events fan out: "local" or "redis"
    """

    def __init__(self) -> None:
        # Load environment variables from the .env file
        load_dotenv()

        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

        self.PORT: int = _env_number("PORT", 5000)
        self.CORS_ORIGINS: List[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]

        self.MAX_MESSAGES_PER_ROOM: int = _env_number("MAX_MESSAGES_PER_ROOM", 1000)
        self.MAX_CHARACTERS_PER_MESSAGE: int = _env_number("MAX_CHARACTERS_PER_MESSAGE", 5000)
        self.ROOM_INACTIVITY_TIMEOUT_SECONDS: float = _env_number(
            "ROOM_INACTIVITY_TIMEOUT_SECONDS", 30 * 60.0, float
        )
        self.REAPER_INTERVAL_SECONDS: float = _env_number("REAPER_INTERVAL_SECONDS", 5 * 60.0, float)
        self.SUMMARY_GRACE_SECONDS: float = _env_number("SUMMARY_GRACE_SECONDS", 2.0, float)

        self.BROADCAST_BACKEND: Literal["local", "redis"] = os.getenv("BROADCAST_BACKEND", "local")
        self.REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
        self.REDIS_PORT: int = _env_number("REDIS_PORT", 6379)
        self.REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")

    def validate(self) -> None:
        """Fail fast on configuration the server cannot run without."""
        if not self.GEMINI_API_KEY:
            raise ConfigurationError("GEMINI_API_KEY not found in environment or .env file")
        if self.BROADCAST_BACKEND not in ("local", "redis"):
            raise ConfigurationError(
                f"BROADCAST_BACKEND must be 'local' or 'redis', got {self.BROADCAST_BACKEND!r}"
            )
        if self.MAX_MESSAGES_PER_ROOM < 1 or self.MAX_CHARACTERS_PER_MESSAGE < 1:
            raise ConfigurationError("Room message limits must be positive")
