from __future__ import annotations

import pytest
from pydantic import ValidationError

from shared.settings import OrchestratorSettings


def test_defaults(monkeypatch):
    for name in ("MODEL_BASE_URL", "OLLAMA_URL", "ORCH_MAX_ATTEMPTS", "ORCH_PARALLEL_SIBLINGS", "BRAVE_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    settings = OrchestratorSettings.from_env()
    assert settings.max_attempts == 3
    assert settings.fallback_attempts == 2
    assert settings.param_timeout_seconds == 30.0
    assert settings.confirm_timeout_seconds == 60.0
    assert settings.model_base_url == "http://localhost:11434"
    assert settings.parallel_siblings is False
    assert settings.brave_api_key == ""


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("ORCH_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("ORCH_PARALLEL_SIBLINGS", "yes")
    monkeypatch.setenv("OLLAMA_URL", "http://ollama:11434")
    monkeypatch.delenv("MODEL_BASE_URL", raising=False)
    monkeypatch.setenv("DEXSCREENER_BASE_URL", "https://dex.example/")

    settings = OrchestratorSettings.from_env()

    assert settings.max_attempts == 5
    assert settings.parallel_siblings is True
    assert settings.model_base_url == "http://ollama:11434"
    assert settings.dexscreener_base_url == "https://dex.example"


def test_invalid_and_out_of_range_values_clamped(monkeypatch):
    monkeypatch.setenv("ORCH_MAX_ATTEMPTS", "lots")
    monkeypatch.setenv("ORCH_MAX_REPLANS", "0")
    monkeypatch.setenv("ORCH_CONFIRM_TIMEOUT_SECONDS", "-4")

    settings = OrchestratorSettings.from_env()

    assert settings.max_attempts == 3
    assert settings.max_replans == 1
    assert settings.confirm_timeout_seconds == 0.01


def test_settings_are_frozen():
    settings = OrchestratorSettings()
    with pytest.raises(ValidationError):
        settings.max_attempts = 10
