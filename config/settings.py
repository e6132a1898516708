"""Environment-resolved settings for the generation layer."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.types import CostRate

ProviderLiteral = Literal["gemini", "openai", "claude", "mock"]


def _env(prefix: str) -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=prefix,
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


class ProviderSettings(BaseSettings):
    """Credentials, endpoint and pricing for one managed provider."""

    enabled: bool = False
    api_key: Optional[SecretStr] = None
    base_url: Optional[str] = None
    model: str = ""
    price_input: float = 0.0
    price_output: float = 0.0

    @property
    def requires_api_key(self) -> bool:
        return True

    def secret(self) -> str:
        return self.api_key.get_secret_value() if self.api_key else ""


class GeminiSettings(ProviderSettings):
    model_config = _env("GEMINI_")

    enabled: bool = True
    base_url: Optional[str] = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-2.0-flash-exp"
    price_input: float = 0.00001
    price_output: float = 0.00003


class OpenAISettings(ProviderSettings):
    model_config = _env("OPENAI_")

    base_url: Optional[str] = "https://api.openai.com/v1"
    organization: Optional[str] = Field(None, validation_alias=AliasChoices("OPENAI_ORG", "OPENAI_ORGANIZATION"))
    model: str = "gpt-4-turbo-preview"
    price_input: float = 0.00003
    price_output: float = 0.00006


class ClaudeSettings(ProviderSettings):
    model_config = _env("CLAUDE_")

    base_url: Optional[str] = "https://api.anthropic.com"
    model: str = "claude-3-opus-20240229"
    price_input: float = 0.00008
    price_output: float = 0.00024


class MockProviderSettings(BaseSettings):
    model_config = _env("MOCK_LLM_")

    enabled: bool = Field(False, validation_alias=AliasChoices("MOCK_LLM", "MOCK_LLM_ENABLED"))
    model: str = "mock-model"
    latency_ms: int = 100

    @property
    def requires_api_key(self) -> bool:
        return False


class CacheSettings(BaseSettings):
    """Response cache configuration."""

    model_config = _env("LLM_CACHE_")

    enabled: bool = True
    ttl: int = 3600
    max_size_mb: float = 100
    dir: Optional[str] = None
    task_ttls: Dict[str, int] = Field(
        default_factory=lambda: {
            "resumeParsing": 86400,
            "coverLetterGeneration": 3600,
            "jobMatching": 7200,
            "templateSuggestions": 604800,
            "skillsExtraction": 86400,
            "textCleaning": 3600,
        }
    )


class RateLimitSettings(BaseSettings):
    model_config = _env("LLM_RATE_LIMIT_")

    enabled: bool = False
    per_minute: int = 60
    per_hour: int = 1000
    per_day: int = 10000
    burst: int = 10


class RetrySettings(BaseSettings):
    """Backoff policy applied to retryable provider failures."""

    model_config = _env("LLM_RETRY_")

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_factor: float = 2.0
    retryable_errors: List[str] = Field(
        default_factory=lambda: [
            "RATE_LIMIT_EXCEEDED",
            "TIMEOUT",
            "NETWORK_ERROR",
            "SERVICE_UNAVAILABLE",
        ]
    )


class MonitoringSettings(BaseSettings):
    """Logging and alert thresholds."""

    model_config = _env("LLM_MONITORING_")

    enabled: bool = True
    log_level: str = "INFO"
    log_format: str = "console"
    max_records: int = 10000

    alert_error_rate: float = 5.0
    alert_latency_ms: float = 5000
    alert_cache_hit_rate: float = 30.0
    critical_error_rate: float = 10.0
    critical_latency_ms: float = 15000

    @field_validator("log_level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        valid = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {valid}")
        return v.upper()


class CostSettings(BaseSettings):
    model_config = _env("LLM_COST_")

    tracking_enabled: bool = True
    budget_daily: float = 10.0
    budget_weekly: float = 50.0
    budget_monthly: float = 200.0


class TimeoutSettings(BaseSettings):
    model_config = _env("LLM_TIMEOUT_")

    default_ms: int = 30000
    task_overrides: Dict[str, int] = Field(
        default_factory=lambda: {
            "resumeParsing": 45000,
            "coverLetterGeneration": 30000,
            "jobMatching": 20000,
        }
    )


class LLMSettings(BaseSettings):
    """Complete generation layer configuration."""

    model_config = _env("LLM_")

    provider: ProviderLiteral = "gemini"
    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float = 0.95
    top_k: int = 40
    task_models: Dict[str, str] = Field(default_factory=dict)

    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    claude: ClaudeSettings = Field(default_factory=ClaudeSettings)
    mock: MockProviderSettings = Field(default_factory=MockProviderSettings)

    cache: CacheSettings = Field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    cost: CostSettings = Field(default_factory=CostSettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)

    def provider_settings(self, name: str):
        if name not in ("gemini", "openai", "claude", "mock"):
            return None
        return getattr(self, name)

    def cost_rates(self) -> Dict[str, CostRate]:
        """Static per-token price table keyed by provider name."""
        return {
            name: CostRate(
                input_price_per_token=cfg.price_input,
                output_price_per_token=cfg.price_output,
            )
            for name, cfg in (
                ("gemini", self.gemini),
                ("openai", self.openai),
                ("claude", self.claude),
            )
        }
