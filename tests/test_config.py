"""Tests for settings defaults and environment overrides."""

from __future__ import annotations

from src.gateway.config import Environment, Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("PIPERUN_API_BASE_URL", "PIPERUN_API_TOKEN", "MAX_RETRIES", "PORT"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.PIPERUN_API_BASE_URL == "https://api.pipe.run/v1"
        assert settings.PIPERUN_API_TOKEN == ""
        assert settings.PORT == 3000
        assert settings.REQUEST_TIMEOUT == 30.0
        assert settings.MAX_RETRIES == 3
        assert settings.INITIAL_RETRY_DELAY == 1.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PIPERUN_API_TOKEN", "env-token")
        monkeypatch.setenv("MAX_RETRIES", "5")
        monkeypatch.setenv("ENVIRONMENT", "production")

        settings = Settings(_env_file=None)

        assert settings.PIPERUN_API_TOKEN == "env-token"
        assert settings.MAX_RETRIES == 5
        assert settings.ENVIRONMENT == Environment.production

    def test_cors_origins(self):
        assert Settings(_env_file=None, CORS_ALLOWED_ORIGINS="*").cors_origins() == ["*"]
        assert Settings(
            _env_file=None, CORS_ALLOWED_ORIGINS="https://a.example, https://b.example"
        ).cors_origins() == ["https://a.example", "https://b.example"]
