# log_prioritization/app/config.py
import re
from datetime import time
from functools import lru_cache
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dotenv import load_dotenv

load_dotenv()

_DAILY_TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]:[0-5][0-9]$")


class Settings(BaseSettings):
    # --- Core ---
    env: Literal["dev", "stage", "prod"] = Field(default="dev", alias="ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # --- Analysis endpoint ---
    analysis_base_url: str = Field(
        default="http://localhost:8080", alias="ANALYSIS_BASE_URL"
    )
    analysis_api_key: Optional[str] = Field(default=None, alias="ANALYSIS_API_KEY")
    analysis_timeout_seconds: int = Field(
        default=30, ge=1, le=300, alias="ANALYSIS_TIMEOUT_SECONDS"
    )
    analysis_max_retries: int = Field(
        default=3, ge=1, le=10, alias="ANALYSIS_MAX_RETRIES"
    )
    analysis_retry_base_delay_seconds: float = Field(
        default=1.0, gt=0, alias="ANALYSIS_RETRY_BASE_DELAY_SECONDS"
    )

    # --- Storage ---
    logs_path: str = Field(default="Data/Logs", min_length=1, alias="LOGS_PATH")

    # --- Scheduling ---
    daily_analysis_time: str = Field(default="01:00:00", alias="DAILY_ANALYSIS_TIME")
    scheduling_timezone: str = Field(default="UTC", alias="SCHEDULING_TIMEZONE")
    retry_interval_minutes: int = Field(
        default=30, ge=1, le=1440, alias="RETRY_INTERVAL_MINUTES"
    )
    enable_scheduled_analysis: bool = Field(
        default=True, alias="ENABLE_SCHEDULED_ANALYSIS"
    )

    # pydantic-settings config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,  # Settings(logs_path=...) in tests and scripts
    )

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str, _: ValidationInfo) -> str:
        v2 = (v or "").upper()
        return v2 if v2 in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"} else "INFO"

    @field_validator("analysis_api_key")
    @classmethod
    def blank_key_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() or None if v else None

    @field_validator("daily_analysis_time")
    @classmethod
    def check_daily_time(cls, v: str) -> str:
        if not _DAILY_TIME_RE.match(v or ""):
            raise ValueError("DAILY_ANALYSIS_TIME must be in HH:MM:SS format")
        return v

    @field_validator("scheduling_timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Invalid timezone '{v}'") from e
        return v

    @property
    def run_at(self) -> time:
        hours, minutes, seconds = (int(p) for p in self.daily_analysis_time.split(":"))
        return time(hours, minutes, seconds)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.scheduling_timezone)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings (cached)."""
    return Settings()
