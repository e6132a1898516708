"""Adapter registry and service composition."""

from __future__ import annotations

from typing import Dict, Optional

import structlog

from config.config import get_task_config
from config.settings import LLMSettings
from core.adapter import LLMAdapter
from core.cache import LLMCache
from core.orchestrator import GenerationOrchestrator
from core.providers import ClaudeAdapter, GeminiAdapter, MockAdapter, OpenAIAdapter
from core.rate_limit import RateLimiter
from exceptions import ConfigError
from monitoring.metrics import MetricsRecorder

logger = structlog.get_logger(__name__)


class LLMFactory:
    """Create adapters and keep one instance per ``(provider, model)``."""

    def __init__(
        self,
        settings: LLMSettings,
        cache: LLMCache,
        metrics: MetricsRecorder,
        orchestrator: GenerationOrchestrator,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.metrics = metrics
        self.orchestrator = orchestrator
        self._instances: Dict[str, LLMAdapter] = {}

    def create_adapter(
        self,
        provider: str,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> LLMAdapter:
        name = str(getattr(provider, "value", provider)).lower()
        cfg = self.settings.provider_settings(name)
        if cfg is None:
            raise ConfigError(f"Unknown provider: {provider}")

        model = model or cfg.model
        key = f"{name}-{model or 'default'}"
        if key in self._instances:
            return self._instances[key]

        if name == "gemini":
            adapter = GeminiAdapter(api_key or cfg.secret(), model, self.orchestrator, base_url=cfg.base_url)
        elif name == "openai":
            adapter = OpenAIAdapter(
                api_key or cfg.secret(),
                model,
                self.orchestrator,
                base_url=cfg.base_url,
                organization=cfg.organization,
            )
        elif name == "claude":
            adapter = ClaudeAdapter(api_key or cfg.secret(), model, self.orchestrator)
        else:
            adapter = MockAdapter(self.orchestrator, model, latency_ms=cfg.latency_ms)

        self._instances[key] = adapter
        logger.info("adapter_created", provider=name, model=model)
        return adapter

    def get_default_adapter(self) -> LLMAdapter:
        return self.create_adapter(self.settings.provider)

    def get_task_adapter(self, task: str) -> LLMAdapter:
        """Adapter for the default provider using the task's model override."""
        task_cfg = get_task_config(task, self.settings)
        return self.create_adapter(self.settings.provider, model=task_cfg.model)

    @property
    def instances(self) -> Dict[str, LLMAdapter]:
        return dict(self._instances)

    def clear_instances(self) -> None:
        self._instances.clear()

    async def reset(self) -> None:
        """Drop adapters, cached responses and recorded metrics."""
        await self.aclose()
        await self.cache.reset()
        self.metrics.clear()

    async def aclose(self) -> None:
        for adapter in self._instances.values():
            await adapter.aclose()
        self._instances.clear()


def build_factory(settings: Optional[LLMSettings] = None) -> LLMFactory:
    """Compose cache, metrics, limiter and orchestrator from settings."""
    settings = settings or LLMSettings()
    cache = LLMCache(
        max_size_mb=settings.cache.max_size_mb,
        default_ttl=settings.cache.ttl,
        persist_dir=settings.cache.dir,
    )
    metrics = MetricsRecorder(
        max_records=settings.monitoring.max_records,
        cost_rates=settings.cost_rates(),
        monitoring=settings.monitoring,
        cost=settings.cost,
    )
    rate_limiter = None
    if settings.rate_limit.enabled:
        rl = settings.rate_limit
        rate_limiter = RateLimiter(
            per_minute=rl.per_minute,
            per_hour=rl.per_hour,
            per_day=rl.per_day,
            burst=rl.burst,
        )
    orchestrator = GenerationOrchestrator(settings, cache, metrics, rate_limiter)
    return LLMFactory(settings, cache, metrics, orchestrator)
