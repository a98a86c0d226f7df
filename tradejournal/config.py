"""Application configuration loaded from environment variables."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All config from environment. Never hardcode secrets."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Record store: memory, redis or firebase
    store_backend: str = Field(default="memory")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="tradejournal")

    # Firebase Realtime Database (REST)
    firebase_database_url: str = Field(default="")
    firebase_auth_token: str = Field(default="")
    http_timeout_seconds: float = Field(default=10.0)

    # Optimistic delete grace period shown on the undo notice
    undo_window_seconds: float = Field(default=10.0)

    # Step-up verification (RFC 6238)
    totp_issuer: str = Field(default="ProfitMetrics")
    totp_digits: int = Field(default=6)
    totp_period_seconds: int = Field(default=30)
    totp_valid_window: int = Field(default=1)

    # Session
    selection_file: Path = Field(default=Path.home() / ".tradejournal" / "selected_challenge.json")

    # App
    log_level: str = Field(default="INFO")


settings = Settings()
