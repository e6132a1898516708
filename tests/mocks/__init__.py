from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from config.settings import (
    CacheSettings,
    LLMSettings,
    MockProviderSettings,
    MonitoringSettings,
    RetrySettings,
)
from core.adapter import LLMAdapter
from core.cache import LLMCache
from core.factory import LLMFactory
from core.orchestrator import GenerationOrchestrator
from core.types import ProviderOutput, ResolvedConfig, TokenUsage
from monitoring.metrics import MetricsRecorder


class ScriptedAdapter(LLMAdapter):
    """Adapter that replays a script of outputs or exceptions.

    The last script item repeats once the script is exhausted.
    """

    provider = "scripted"

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        script: Optional[List[Any]] = None,
        *,
        model: str = "scripted-model",
        delay: float = 0.0,
    ) -> None:
        super().__init__(model, orchestrator)
        self.script = list(script or ["ok"])
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def _next(self, prompt: str) -> ProviderOutput:
        index = min(len(self.calls) - 1, len(self.script) - 1)
        item = self.script[index]
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, ProviderOutput):
            return item
        return ProviderOutput(data=item, tokens=TokenUsage(prompt=10, completion=5, total=15))

    async def _call_text(self, prompt: str, config: ResolvedConfig) -> ProviderOutput:
        self.calls.append({"kind": "text", "prompt": prompt, "config": config})
        return await self._next(prompt)

    async def _call_structured(self, prompt: str, schema, config: ResolvedConfig) -> ProviderOutput:
        self.calls.append({"kind": "structured", "prompt": prompt, "schema": schema, "config": config})
        return await self._next(prompt)

    async def aclose(self) -> None:
        self.closed = True


def make_settings(**overrides: Any) -> LLMSettings:
    """Settings for tests: mock provider, fast retries, no env dependence for the key fields."""
    values: Dict[str, Any] = {
        "provider": "mock",
        "mock": MockProviderSettings(enabled=True, latency_ms=1),
        "cache": CacheSettings(enabled=True, ttl=3600, max_size_mb=1),
        "retry": RetrySettings(max_attempts=3, initial_delay_ms=1, max_delay_ms=5),
        "monitoring": MonitoringSettings(enabled=True),
    }
    values.update(overrides)
    return LLMSettings(**values)


def make_services(settings: Optional[LLMSettings] = None, clock=None):
    settings = settings or make_settings()
    cache_kwargs: Dict[str, Any] = {"max_size_mb": settings.cache.max_size_mb, "default_ttl": settings.cache.ttl}
    if clock is not None:
        cache_kwargs["clock"] = clock
    cache = LLMCache(**cache_kwargs)
    metrics = MetricsRecorder(
        cost_rates=settings.cost_rates(),
        monitoring=settings.monitoring,
        cost=settings.cost,
    )
    orchestrator = GenerationOrchestrator(settings, cache, metrics)
    return settings, cache, metrics, orchestrator


def make_factory(settings: Optional[LLMSettings] = None) -> LLMFactory:
    settings, cache, metrics, orchestrator = make_services(settings)
    return LLMFactory(settings, cache, metrics, orchestrator)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
