"""
StockTrail Configuration

Uses pydantic-settings for type-safe environment variable loading.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

# Find .env file: check CWD first, then the project root
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # App
    app_name: str = "StockTrail"
    app_version: str = "0.1.0"
    app_env: str = "local"
    debug: bool = False

    # Tracking API
    tracking_api_url: str = "http://localhost:8000/api"
    tracking_api_token: str = ""
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    tracking_default_limit: int = Field(default=500, gt=0)

    # Alert polling
    alert_poll_interval_seconds: float = Field(default=60.0, gt=0)

    # Durable notification storage
    notification_backend: str = "memory"  # memory | redis
    redis_url: str = "redis://localhost:6379/0"
    notifications_key: str = "stock-notifications"
    cleared_keys_key: str = "cleared-notification-ids"

    # Analytics
    week_starts_on: int = Field(default=6, ge=0, le=6)  # Python weekday, 6 = Sunday

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_runtime_guardrails(settings)
    return settings


def _enforce_runtime_guardrails(settings: Settings) -> None:
    env = settings.app_env.strip().lower()
    is_local = env in {"", "local", "dev", "development", "test"}
    if is_local:
        return

    if settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")
    if not settings.tracking_api_token:
        raise ValueError("Refusing to start without a tracking API token outside local/dev/test")
    if settings.notification_backend.strip().lower() == "memory":
        raise ValueError("Refusing to start with the memory notification backend outside local/dev/test")
