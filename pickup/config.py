"""
Storefront configuration

Values come from PICKUP_* environment variables or a local .env file.
Deadlines are wall-clock times in the shop's time zone.
"""
import logging
from datetime import time
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PICKUP_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    APP_NAME: str = "Pickup Store"

    # Boundary
    API_BASE: str = "http://127.0.0.1:8085"
    API_TOKEN: Optional[str] = None
    REQUEST_TIMEOUT: float = 10.0

    # Time
    TIMEZONE: str = "Asia/Seoul"
    RESERVATION_DEADLINE: time = time(19, 30)
    CANCELLATION_DEADLINE: time = time(19, 0)
    PICKUP_DEADLINE: time = time(20, 0)
    HORIZON_DAYS: int = Field(default=10, ge=1, le=31)
    CLOCK_SYNC_INTERVAL_SECONDS: float = Field(default=300.0, gt=0)

    # Categories
    CATEGORY_NAME_MAX_LENGTH: int = Field(default=10, ge=1)
    MAX_CATEGORY_COUNT: int = Field(default=9, ge=1)

    LOG_LEVEL: str = "INFO"

    @field_validator("API_BASE")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown time zone: {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.TIMEZONE)


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    logger.debug("Loaded settings for %s (tz=%s)", settings.APP_NAME, settings.TIMEZONE)
    return settings
