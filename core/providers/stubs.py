"""Providers without a backend yet. They fail loudly on every call."""

from __future__ import annotations

from typing import Any, Dict, Optional

from core.adapter import LLMAdapter
from core.orchestrator import GenerationOrchestrator
from core.types import ProviderOutput, ResolvedConfig
from exceptions import ProviderNotImplementedError


class ClaudeAdapter(LLMAdapter):
    provider = "claude"

    def __init__(self, api_key: str, model: str, orchestrator: GenerationOrchestrator) -> None:
        super().__init__(model, orchestrator)
        self.api_key = api_key

    async def _call_text(self, prompt: str, config: ResolvedConfig) -> ProviderOutput:
        raise ProviderNotImplementedError("Claude adapter not yet implemented")

    async def _call_structured(
        self, prompt: str, schema: Optional[Dict[str, Any]], config: ResolvedConfig
    ) -> ProviderOutput:
        raise ProviderNotImplementedError("Claude adapter not yet implemented")
