# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Settings for the API server, scheduler loop and work executor.

Everything is read from ``REGWATCH_*`` environment variables or a local
``.env`` file.  List settings take comma-separated values.
"""

from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

CsvList = Annotated[list[str], NoDecode]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REGWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )

    db_path: Path = Path("regwatch.db")
    auto_migrate: bool = True

    api_host: str = "127.0.0.1"
    api_port: int = 8000
    api_workers: int = 1
    api_keys: CsvList = []
    cors_origins: CsvList = ["*"]

    # Scheduler loop
    scheduler_enabled: bool = True
    scheduler_interval: float = Field(default=60.0, gt=0)
    scheduler_stop_grace: float = Field(default=10.0, ge=0)
    upcoming_default_hours: int = Field(default=24, gt=0)

    # Work executor
    executor_backend: str = "local"  # "local" or "http"
    executor_url: str = ""  # e.g. "http://research-worker:5000"
    executor_api_key: str = ""
    dispatch_timeout: float = Field(default=30.0, gt=0)

    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "text"

    @field_validator("api_keys", "cors_origins", mode="before")
    @classmethod
    def _split_csv(cls, v: object) -> object:
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v


def get_settings() -> Settings:
    return Settings()
