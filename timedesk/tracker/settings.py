from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackerSettings(BaseSettings):
    api_base_url: str = "http://127.0.0.1:8000"
    poll_interval_seconds: float = 30.0
    tick_interval_seconds: float = 1.0
    rollover_delay_seconds: float = 10.0
    issue_lookback_days: int = 31
    request_timeout_seconds: float = 15.0
    timezone: str = "Asia/Kolkata"
    geocoder_url: str = "https://nominatim.openstreetmap.org/reverse"

    model_config = SettingsConfigDict(
        env_prefix="TIMEDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_tracker_settings() -> TrackerSettings:
    return TrackerSettings()
