# backend/core/config.py
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Offer durations a client may choose from, in hours.
ALLOWED_EXPIRES_HOURS = (6, 12, 24, 48, 72)


class Settings(BaseSettings):
    """Application settings loaded from the environment or a local .env file."""

    APP_NAME: str = "Wasteland Exchange API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Supabase
    SUPABASE_URL: Optional[str] = None
    SUPABASE_KEY: Optional[str] = None

    # Trading
    DEFAULT_EXPIRES_HOURS: int = 24
    OFFER_EXPIRY_SWEEP_SECONDS: int = 60  # 0 disables the background sweeper

    # CORS, comma-separated
    CORS_ORIGINS: str = "*"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("DEFAULT_EXPIRES_HOURS")
    @classmethod
    def check_default_expiry(cls, v: int) -> int:
        if v not in ALLOWED_EXPIRES_HOURS:
            raise ValueError(f"DEFAULT_EXPIRES_HOURS must be one of {ALLOWED_EXPIRES_HOURS}")
        return v

    @field_validator("OFFER_EXPIRY_SWEEP_SECONDS")
    @classmethod
    def check_sweep_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError("OFFER_EXPIRY_SWEEP_SECONDS cannot be negative")
        return v

    def get_cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
