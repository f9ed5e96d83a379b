"""Tests for environment-driven settings."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from config import DEFAULT_INTERVAL, DEFAULT_PORT, Settings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("PORT", "HOST", "INTERVAL", "SERVICE", "LOG_LEVEL", "CLAUDE_TOKEN"):
        monkeypatch.delenv(f"AGENT_USAGE_{name}", raising=False)


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.port == DEFAULT_PORT
        assert settings.host == "127.0.0.1"
        assert settings.interval == DEFAULT_INTERVAL
        assert settings.service is None
        assert settings.claude_token == ""

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("AGENT_USAGE_PORT", "9000")
        monkeypatch.setenv("AGENT_USAGE_CLAUDE_TOKEN", "from-env")
        monkeypatch.setenv("AGENT_USAGE_LOG_LEVEL", "debug")

        settings = Settings()
        assert settings.port == 9000
        assert settings.claude_token == "from-env"
        assert settings.log_level == "DEBUG"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("AGENT_USAGE_HOST=0.0.0.0\n")
        assert Settings().host == "0.0.0.0"

    @pytest.mark.parametrize("port", [0, 65_536, -1])
    def test_invalid_port(self, port):
        with pytest.raises(ValidationError, match="Invalid port"):
            Settings(port=port)

    @pytest.mark.parametrize("value", ["soon", "0", "-5", "1.5", ""])
    def test_invalid_interval_falls_back(self, caplog, value):
        with caplog.at_level(logging.WARNING, logger="config"):
            settings = Settings(interval=value)

        assert settings.interval == DEFAULT_INTERVAL
        assert "Invalid interval value" in caplog.text

    def test_valid_interval(self):
        assert Settings(interval="60").interval == 60


class TestLoadSettings:
    def test_overrides_take_priority(self, monkeypatch):
        monkeypatch.setenv("AGENT_USAGE_PORT", "9000")
        assert load_settings(port="9100").port == 9100

    def test_none_overrides_are_ignored(self, monkeypatch):
        monkeypatch.setenv("AGENT_USAGE_PORT", "9000")
        settings = load_settings(port=None, host=None)
        assert settings.port == 9000
        assert settings.host == "127.0.0.1"
