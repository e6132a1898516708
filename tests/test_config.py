import pytest

from config.config import get_task_config, load_llm_config, resolve_request_config, validate_llm_config
from config.settings import (
    ClaudeSettings,
    GeminiSettings,
    LLMSettings,
    MockProviderSettings,
    OpenAISettings,
    RetrySettings,
)
from core.types import RequestConfig
from exceptions import ConfigError
from tests.mocks import make_settings


def no_providers() -> LLMSettings:
    return LLMSettings(
        provider="gemini",
        gemini=GeminiSettings(enabled=False),
        openai=OpenAISettings(enabled=False),
        claude=ClaudeSettings(enabled=False),
        mock=MockProviderSettings(enabled=False),
    )


def test_zero_enabled_providers_fails_startup():
    with pytest.raises(ConfigError) as exc:
        load_llm_config(no_providers())
    assert "no providers enabled" in str(exc.value).lower()


def test_valid_mock_config_loads():
    settings = make_settings(gemini=GeminiSettings(enabled=False))
    assert validate_llm_config(settings) == []
    assert load_llm_config(settings) is settings


def test_missing_key_and_unimplemented_provider():
    settings = make_settings(
        provider="claude",
        gemini=GeminiSettings(enabled=True, api_key=""),
        claude=ClaudeSettings(enabled=True, api_key="x"),
    )
    errors = validate_llm_config(settings)
    assert "Gemini API key is required when gemini is enabled" in errors
    assert "Provider 'claude' is enabled but not implemented" in errors


def test_disabled_default_provider():
    settings = make_settings(provider="openai", openai=OpenAISettings(enabled=False))
    assert "Default provider 'openai' is not enabled" in validate_llm_config(settings)


def test_range_checks():
    settings = make_settings(
        gemini=GeminiSettings(enabled=False),
        temperature=3,
        max_tokens=0,
        retry=RetrySettings(max_attempts=11),
    )
    errors = validate_llm_config(settings)
    assert "Temperature must be between 0 and 2" in errors
    assert "Max tokens must be between 1 and 128000" in errors
    assert "Retry max attempts must be between 1 and 10" in errors


def test_task_config_overrides_and_defaults():
    settings = make_settings(task_models={"resumeParsing": "special"})

    parsing = get_task_config("resumeParsing", settings)
    assert parsing.model == "special"
    assert parsing.cache_ttl_seconds == 86400
    assert parsing.timeout_ms == 45000

    unknown = get_task_config("somethingNew", settings)
    assert unknown.model == "mock-model"
    assert unknown.cache_ttl_seconds == settings.cache.ttl
    assert unknown.timeout_ms == settings.timeouts.default_ms


def test_resolve_request_config_prefers_explicit_values():
    settings = make_settings()
    resolved = resolve_request_config(
        RequestConfig(temperature=0.1, task="jobMatching", stop_sequences=("END",)), settings
    )
    assert resolved.temperature == 0.1
    assert resolved.max_tokens == settings.max_tokens
    assert resolved.cache_ttl_seconds == 7200
    assert resolved.timeout_ms == 20000
    assert resolved.stop_sequences == ("END",)
    assert resolved.max_attempts == settings.retry.max_attempts


def test_env_resolution(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("MOCK_LLM", "true")
    monkeypatch.setenv("GEMINI_API_KEY", "secret")
    monkeypatch.setenv("LLM_CACHE_TTL", "120")
    settings = LLMSettings()

    assert settings.provider == "mock"
    assert settings.mock.enabled is True
    assert settings.gemini.secret() == "secret"
    assert settings.cache.ttl == 120
