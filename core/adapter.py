"""Provider adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from core.confidence import estimate_confidence
from core.orchestrator import GenerationOrchestrator
from core.types import (
    GenerationRequest,
    GenerationResult,
    OperationKind,
    ProviderOutput,
    RequestConfig,
    ResolvedConfig,
)


class LLMAdapter(ABC):
    """Base class for every provider.

    Subclasses implement the raw transport in ``_call_text`` and
    ``_call_structured`` and raise from ``exceptions`` on failure. The public
    ``generate_*`` methods route through the orchestrator and never raise.
    """

    provider: str = ""

    def __init__(self, model: str, orchestrator: GenerationOrchestrator) -> None:
        self.model = model
        self.orchestrator = orchestrator

    async def generate_text(self, prompt: str, config: Optional[RequestConfig] = None) -> GenerationResult[str]:
        request = GenerationRequest(OperationKind.TEXT, prompt, None, config or RequestConfig())
        return await self.orchestrator.execute(self, request)

    async def generate_structured(
        self,
        prompt: str,
        schema: Dict[str, Any],
        config: Optional[RequestConfig] = None,
    ) -> GenerationResult[Any]:
        request = GenerationRequest(OperationKind.STRUCTURED, prompt, schema, config or RequestConfig())
        return await self.orchestrator.execute(self, request)

    def estimate_confidence(self, raw: Any) -> float:
        return estimate_confidence(raw)

    def cache_extra(self) -> Dict[str, Any]:
        """Adapter fields that change the output and so belong in the cache key."""
        return {"model": self.model}

    @abstractmethod
    async def _call_text(self, prompt: str, config: ResolvedConfig) -> ProviderOutput:
        ...

    @abstractmethod
    async def _call_structured(
        self, prompt: str, schema: Optional[Dict[str, Any]], config: ResolvedConfig
    ) -> ProviderOutput:
        ...

    async def aclose(self) -> None:
        """Release transport resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
