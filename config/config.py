# -*- coding: utf-8 -*-
"""Task configuration and startup validation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import structlog

from core.types import RequestConfig, ResolvedConfig
from exceptions import ConfigError

from .settings import LLMSettings

logger = structlog.get_logger(__name__)

PROVIDERS = ("gemini", "openai", "claude", "mock")
IMPLEMENTED_PROVIDERS = frozenset({"gemini", "openai", "mock"})


@dataclass(frozen=True)
class TaskConfig:
    model: str
    cache_ttl_seconds: int
    timeout_ms: int


def get_task_config(task: Optional[str], settings: LLMSettings) -> TaskConfig:
    """Resolve model, cache TTL and timeout for a logical task name."""
    default_model = settings.provider_settings(settings.provider).model
    if not task:
        return TaskConfig(
            model=default_model,
            cache_ttl_seconds=settings.cache.ttl,
            timeout_ms=settings.timeouts.default_ms,
        )
    return TaskConfig(
        model=settings.task_models.get(task, default_model),
        cache_ttl_seconds=settings.cache.task_ttls.get(task, settings.cache.ttl),
        timeout_ms=settings.timeouts.task_overrides.get(task, settings.timeouts.default_ms),
    )


def resolve_request_config(config: Optional[RequestConfig], settings: LLMSettings) -> ResolvedConfig:
    """Fill every unset field from the task, then from global defaults."""
    config = config or RequestConfig()
    task_cfg = get_task_config(config.task, settings)

    def pick(value, default):
        return default if value is None else value

    ttl = pick(config.cache_ttl_seconds, task_cfg.cache_ttl_seconds)
    if not settings.cache.enabled:
        ttl = 0

    return ResolvedConfig(
        temperature=pick(config.temperature, settings.temperature),
        max_tokens=pick(config.max_tokens, settings.max_tokens),
        top_p=pick(config.top_p, settings.top_p),
        top_k=pick(config.top_k, settings.top_k),
        stop_sequences=tuple(config.stop_sequences or ()),
        cache_ttl_seconds=ttl,
        timeout_ms=pick(config.timeout_ms, task_cfg.timeout_ms),
        max_attempts=pick(config.max_attempts, settings.retry.max_attempts),
        task=config.task,
    )


def validate_llm_config(settings: LLMSettings) -> List[str]:
    """Return human-readable problems; an empty list means the config is usable."""
    errors: List[str] = []

    enabled = [name for name in PROVIDERS if settings.provider_settings(name).enabled]
    if not enabled:
        errors.append("No providers enabled")

    if settings.provider not in enabled:
        errors.append(f"Default provider '{settings.provider}' is not enabled")

    for name in enabled:
        cfg = settings.provider_settings(name)
        if cfg.requires_api_key and not cfg.secret():
            errors.append(f"{name.capitalize()} API key is required when {name} is enabled")
        if name not in IMPLEMENTED_PROVIDERS:
            errors.append(f"Provider '{name}' is enabled but not implemented")

    if not 0 <= settings.temperature <= 2:
        errors.append("Temperature must be between 0 and 2")
    if not 1 <= settings.max_tokens <= 128000:
        errors.append("Max tokens must be between 1 and 128000")
    if not 1 <= settings.retry.max_attempts <= 10:
        errors.append("Retry max attempts must be between 1 and 10")
    if settings.cache.ttl < 0:
        errors.append("Cache TTL must not be negative")
    if settings.timeouts.default_ms <= 0:
        errors.append("Default timeout must be positive")

    return errors


def load_llm_config(settings: Optional[LLMSettings] = None) -> LLMSettings:
    """Load settings and fail loudly when they are unusable."""
    settings = settings or LLMSettings()
    errors = validate_llm_config(settings)
    if errors:
        logger.error("llm_config_invalid", errors=errors)
        raise ConfigError("Invalid LLM configuration: " + "; ".join(errors))
    logger.info(
        "llm_config_loaded",
        provider=settings.provider,
        cache_enabled=settings.cache.enabled,
        mock=settings.mock.enabled,
    )
    return settings
