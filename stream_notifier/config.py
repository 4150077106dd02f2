"""Environment configuration for the stream notification queue."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

# Deadline applied when a producer gives neither expires_at nor a TTL and the
# notification kind has no TTL of its own.
DEFAULT_NOTIFICATION_TTL_SECONDS = 300


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL", "sqlite:///./stream_notifier.db"
        )
        self.DATABASE_SSLMODE: str = os.getenv("DATABASE_SSLMODE", "prefer")

        # Destination credentials
        self.TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
        self.TELEGRAM_API_URL: str = os.getenv(
            "TELEGRAM_API_URL", "https://api.telegram.org"
        )
        self.DISCORD_BOT_TOKEN: str = os.getenv("DISCORD_BOT_TOKEN", "")
        self.DISCORD_API_URL: str = os.getenv(
            "DISCORD_API_URL", "https://discord.com/api/v10"
        )
        self.NOTIFICATION_HTTP_TIMEOUT_SECONDS: float = _env_float(
            "NOTIFICATION_HTTP_TIMEOUT_SECONDS", 10.0
        )

        # Retry worker
        self.NOTIFICATION_RETRY_ENABLED: bool = _env_bool(
            "NOTIFICATION_RETRY_ENABLED", True
        )
        self.NOTIFICATION_RETRY_INITIAL_BACKOFF_SECONDS: int = _env_int(
            "NOTIFICATION_RETRY_INITIAL_BACKOFF_SECONDS", 30
        )
        self.NOTIFICATION_RETRY_MAX_BACKOFF_SECONDS: int = _env_int(
            "NOTIFICATION_RETRY_MAX_BACKOFF_SECONDS", 3600
        )
        self.NOTIFICATION_RETRY_JITTER: bool = _env_bool(
            "NOTIFICATION_RETRY_JITTER", False
        )
        self.NOTIFICATION_RETRY_POLL_INTERVAL_SECONDS: int = _env_int(
            "NOTIFICATION_RETRY_POLL_INTERVAL_SECONDS", 5
        )
        self.NOTIFICATION_RETRY_MAX_ATTEMPTS: int = _env_int(
            "NOTIFICATION_RETRY_MAX_ATTEMPTS", 5
        )
        self.NOTIFICATION_RETRY_WORKER_CONCURRENCY: int = _env_int(
            "NOTIFICATION_RETRY_WORKER_CONCURRENCY", 10
        )
        self.NOTIFICATION_RETRY_BATCH_SIZE: int = _env_int(
            "NOTIFICATION_RETRY_BATCH_SIZE", 50
        )
        self.NOTIFICATION_RETRY_STALE_SECONDS: int = _env_int(
            "NOTIFICATION_RETRY_STALE_SECONDS", 300
        )
        self.NOTIFICATION_STORE_RETRY_ATTEMPTS: int = _env_int(
            "NOTIFICATION_STORE_RETRY_ATTEMPTS", 3
        )

        # Expiration (TTL) per notification kind
        self.NOTIFICATION_TTL_DEFAULT_SECONDS: int = _env_int(
            "NOTIFICATION_TTL_DEFAULT_SECONDS", DEFAULT_NOTIFICATION_TTL_SECONDS
        )
        self.NOTIFICATION_TTL_STREAM_ONLINE_SECONDS: int = _env_int(
            "NOTIFICATION_TTL_STREAM_ONLINE_SECONDS", 300
        )
        self.NOTIFICATION_TTL_STREAM_OFFLINE_SECONDS: int = _env_int(
            "NOTIFICATION_TTL_STREAM_OFFLINE_SECONDS", 300
        )
        self.NOTIFICATION_TTL_TITLE_CHANGE_SECONDS: int = _env_int(
            "NOTIFICATION_TTL_TITLE_CHANGE_SECONDS", 300
        )
        self.NOTIFICATION_TTL_CATEGORY_CHANGE_SECONDS: int = _env_int(
            "NOTIFICATION_TTL_CATEGORY_CHANGE_SECONDS", 300
        )
        self.NOTIFICATION_TTL_REWARD_REDEMPTION_SECONDS: int = _env_int(
            "NOTIFICATION_TTL_REWARD_REDEMPTION_SECONDS", 300
        )

    def validate(self) -> None:
        """Validate that numeric settings are usable."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")

        positive = {
            "NOTIFICATION_RETRY_INITIAL_BACKOFF_SECONDS": self.NOTIFICATION_RETRY_INITIAL_BACKOFF_SECONDS,
            "NOTIFICATION_RETRY_MAX_BACKOFF_SECONDS": self.NOTIFICATION_RETRY_MAX_BACKOFF_SECONDS,
            "NOTIFICATION_RETRY_POLL_INTERVAL_SECONDS": self.NOTIFICATION_RETRY_POLL_INTERVAL_SECONDS,
            "NOTIFICATION_RETRY_MAX_ATTEMPTS": self.NOTIFICATION_RETRY_MAX_ATTEMPTS,
            "NOTIFICATION_RETRY_WORKER_CONCURRENCY": self.NOTIFICATION_RETRY_WORKER_CONCURRENCY,
            "NOTIFICATION_RETRY_BATCH_SIZE": self.NOTIFICATION_RETRY_BATCH_SIZE,
            "NOTIFICATION_RETRY_STALE_SECONDS": self.NOTIFICATION_RETRY_STALE_SECONDS,
            "NOTIFICATION_STORE_RETRY_ATTEMPTS": self.NOTIFICATION_STORE_RETRY_ATTEMPTS,
            "NOTIFICATION_TTL_DEFAULT_SECONDS": self.NOTIFICATION_TTL_DEFAULT_SECONDS,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        if (
            self.NOTIFICATION_RETRY_MAX_BACKOFF_SECONDS
            < self.NOTIFICATION_RETRY_INITIAL_BACKOFF_SECONDS
        ):
            raise ValueError(
                "NOTIFICATION_RETRY_MAX_BACKOFF_SECONDS must not be lower than "
                "NOTIFICATION_RETRY_INITIAL_BACKOFF_SECONDS"
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
