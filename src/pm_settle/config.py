from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PM_SETTLE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    app_name: str = "pm-settlement-engine"

    database_url_async: str = "sqlite+aiosqlite:///./pm_settle.db"
    database_url_sync: str = "sqlite:///./pm_settle.db"

    twap_max_window_seconds: int = 7 * 24 * 3600

    log_level: str = "INFO"
    log_json: bool = True
    debug: bool = False


settings = Settings()
