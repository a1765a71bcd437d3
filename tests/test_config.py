from __future__ import annotations

import pytest

from huddle.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in ("HUDDLE_MODEL", "HUDDLE_BACKEND", "HUDDLE_ENABLE_TOOLS", "HUDDLE_SUMMARY_TOKEN_TRIGGER"):
        monkeypatch.delenv(key, raising=False)


def test_defaults_match_conversation_limits() -> None:
    settings = Settings()

    assert settings.model is None
    assert settings.backend == "openai"
    assert settings.enable_tools is True
    assert settings.summary_word_count == 200
    assert settings.summary_token_trigger == 3200
    assert not settings.requires_user_message


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HUDDLE_MODEL", "openai:gpt-4o-mini")
    monkeypatch.setenv("HUDDLE_BACKEND", "customllm")
    monkeypatch.setenv("HUDDLE_ENABLE_TOOLS", "0")
    monkeypatch.setenv("HUDDLE_SUMMARY_TOKEN_TRIGGER", "1000")

    settings = get_settings()

    assert settings.model == "openai:gpt-4o-mini"
    assert settings.requires_user_message
    assert settings.enable_tools is False
    assert settings.summary_token_trigger == 1000


def test_explicit_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HUDDLE_BACKEND", "customllm")

    settings = get_settings(backend="realtime")

    assert settings.backend == "realtime"
    assert not settings.requires_user_message
