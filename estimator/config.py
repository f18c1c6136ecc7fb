"""Configuration module.

This file centralizes runtime configuration for local development and
single-host deployments. Values can be provided via environment variables or a
local `.env` file.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE_PATH = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    app_name: str = "Initiative Estimator"
    environment: str = "development"
    debug: bool = True
    database_url: str = "sqlite:///./estimator.db"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    backup_dir: Path = PROJECT_ROOT / "backups"
    backups_enabled: bool = True
    backup_frequency_minutes: int = 30
    hours_per_day: float = 8
    hours_per_month: float = 160
    build_number: str = "Unknown"
    build_created_at: str | None = None

    # Use an absolute path so `.env` is consistently discovered regardless of
    # the process working directory used to start uvicorn.
    model_config = SettingsConfigDict(env_file=ENV_FILE_PATH, env_file_encoding="utf-8")


settings = Settings()
