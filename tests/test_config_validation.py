"""Tests for settings and startup validation."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from recapbot.config import Settings
from recapbot.validation import validate_and_exit, validate_config


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:
    def test_defaults(self, monkeypatch):
        for var in ("RECALL_API_KEY", "RECONCILE_INTERVAL_SECONDS", "ENVIRONMENT"):
            monkeypatch.delenv(var, raising=False)
        s = _settings()

        assert s.recall_api_url == "https://api.recall.ai/api/v1"
        assert s.reconcile_interval_seconds == 60
        assert s.transcript_quiescence_minutes == 2.0
        assert s.recording_quiescence_minutes == 5.0
        assert s.default_bot_join_minutes_before == 5
        assert s.recall_transcription_provider == "deepgram"

    def test_env_vars_are_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("recall_api_key", "abc")
        monkeypatch.setenv("RECONCILE_INTERVAL_SECONDS", "120")
        s = _settings()

        assert s.has_recall is True
        assert s.reconcile_interval_seconds == 120

    def test_llm_flags(self):
        assert _settings(anthropic_api_key="", openai_api_key="", azure_openai_api_key="").has_llm is False
        assert _settings(openai_api_key="sk-test").has_llm is True
        assert _settings(azure_openai_api_key="k", azure_openai_endpoint="").has_azure_openai is False

    def test_join_minutes_bounds(self):
        with pytest.raises(ValueError):
            _settings(default_bot_join_minutes_before=0)


class TestValidation:
    def test_development_needs_only_database(self):
        with patch("recapbot.validation.settings", _settings(environment="development", recall_api_key="")):
            assert validate_config() == []

    def test_production_requires_recall_key(self):
        with patch("recapbot.validation.settings", _settings(environment="production", recall_api_key="")):
            assert validate_config() == ["RECALL_API_KEY is required"]

    def test_production_rejects_tight_interval(self):
        s = _settings(environment="production", recall_api_key="k", reconcile_interval_seconds=5)
        with patch("recapbot.validation.settings", s):
            assert validate_config() == ["RECONCILE_INTERVAL_SECONDS must be at least 10"]

    def test_validate_and_exit_exits_on_errors(self):
        with patch("recapbot.validation.settings", _settings(environment="staging", recall_api_key="")):
            with pytest.raises(SystemExit):
                validate_and_exit()

    def test_validate_and_exit_passes(self):
        with patch("recapbot.validation.settings", _settings(environment="staging", recall_api_key="k")):
            validate_and_exit()
