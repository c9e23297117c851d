from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./babylog.db"
    default_timezone: str = "UTC"  # zone recorded when the caller gives none
    default_bottle_size_oz: float = 4.0
    refrigerated_expiry_hours: int = 24
    expiry_warning_minutes: int = 15
    quiet_hours_enabled: bool = True
    quiet_hours_start: int = 22
    quiet_hours_end: int = 6
    rolling_window_days: int = 14

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "BABYLOG_"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
