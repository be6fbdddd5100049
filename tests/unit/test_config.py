# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

import pydantic
import pytest

from regwatch.core.config import Settings, get_settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.db_path == Path("regwatch.db")
        assert settings.scheduler_enabled is True
        assert settings.scheduler_interval == 60.0
        assert settings.upcoming_default_hours == 24
        assert settings.executor_backend == "local"
        assert settings.dispatch_timeout == 30.0
        assert settings.api_keys == []

    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.setenv("REGWATCH_DB_PATH", str(tmp_path / "rw.db"))
        monkeypatch.setenv("REGWATCH_SCHEDULER_INTERVAL", "5")
        monkeypatch.setenv("REGWATCH_SCHEDULER_ENABLED", "false")
        monkeypatch.setenv("REGWATCH_EXECUTOR_BACKEND", "http")
        monkeypatch.setenv("REGWATCH_EXECUTOR_URL", "http://worker:5000")

        settings = get_settings()

        assert settings.db_path == tmp_path / "rw.db"
        assert settings.scheduler_interval == 5.0
        assert settings.scheduler_enabled is False
        assert settings.executor_backend == "http"
        assert settings.executor_url == "http://worker:5000"

    def test_comma_separated_lists(self, monkeypatch):
        monkeypatch.setenv("REGWATCH_API_KEYS", "key-one, key-two,,")
        monkeypatch.setenv("REGWATCH_CORS_ORIGINS", "http://a.example,http://b.example")

        settings = Settings()

        assert settings.api_keys == ["key-one", "key-two"]
        assert settings.cors_origins == ["http://a.example", "http://b.example"]

    def test_empty_env_values_ignored(self, monkeypatch):
        monkeypatch.setenv("REGWATCH_LOG_LEVEL", "")
        assert Settings().log_level == "INFO"

    def test_rejects_non_positive_interval(self, monkeypatch):
        monkeypatch.setenv("REGWATCH_SCHEDULER_INTERVAL", "0")
        with pytest.raises(pydantic.ValidationError):
            Settings()
