"""Gemini adapter over the REST ``generateContent`` endpoint."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import aiohttp
import structlog

from api import gemini as gemini_api
from core.adapter import LLMAdapter
from core.orchestrator import GenerationOrchestrator
from core.types import ProviderOutput, ResolvedConfig, TokenUsage
from exceptions import ConfigError, ProviderError

logger = structlog.get_logger(__name__)


def to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a schema descriptor to Gemini's ``responseSchema`` dialect."""
    out: Dict[str, Any] = {}
    if "type" in schema:
        out["type"] = str(schema["type"]).upper()
    for key in ("description", "enum", "nullable", "required", "format"):
        if key in schema:
            out[key] = schema[key]
    if schema.get("properties"):
        out["properties"] = {k: to_gemini_schema(v) for k, v in schema["properties"].items()}
    if schema.get("items"):
        out["items"] = to_gemini_schema(schema["items"])
    return out


def _usage(data: Dict[str, Any]) -> Optional[TokenUsage]:
    meta = data.get("usageMetadata")
    if not meta:
        return None
    prompt = int(meta.get("promptTokenCount", 0))
    completion = int(meta.get("candidatesTokenCount", 0))
    return TokenUsage(
        prompt=prompt,
        completion=completion,
        total=int(meta.get("totalTokenCount", prompt + completion)),
    )


class GeminiAdapter(LLMAdapter):
    """Primary managed provider."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        orchestrator: GenerationOrchestrator,
        *,
        base_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if not api_key:
            raise ConfigError("Gemini API key is required")
        super().__init__(model, orchestrator)
        self.api_key = api_key
        self.base_url = base_url
        self._session = session
        self._owned_session = session is None

    def _generation_config(self, config: ResolvedConfig) -> Dict[str, Any]:
        gen: Dict[str, Any] = {
            "temperature": config.temperature,
            "maxOutputTokens": config.max_tokens,
            "topP": config.top_p,
            "topK": config.top_k,
        }
        if config.stop_sequences:
            gen["stopSequences"] = list(config.stop_sequences)
        return gen

    async def _generate(self, prompt: str, generation_config: Dict[str, Any]) -> Dict[str, Any]:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        return await gemini_api.generate_content(
            self.api_key,
            self.model,
            payload,
            base_url=self.base_url,
            session=self._session,
        )

    async def _call_text(self, prompt: str, config: ResolvedConfig) -> ProviderOutput:
        data = await self._generate(prompt, self._generation_config(config))
        text = gemini_api.extract_text(data).strip()
        return ProviderOutput(data=text, tokens=_usage(data))

    async def _call_structured(
        self, prompt: str, schema: Optional[Dict[str, Any]], config: ResolvedConfig
    ) -> ProviderOutput:
        gen = self._generation_config(config)
        gen["responseMimeType"] = "application/json"
        if schema:
            gen["responseSchema"] = to_gemini_schema(schema)
        data = await self._generate(prompt, gen)
        text = gemini_api.extract_text(data) or "{}"
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("gemini_json_parse_failed", model=self.model, error=str(e))
            raise ProviderError(f"Failed to parse structured response: {e}") from e
        return ProviderOutput(data=parsed, tokens=_usage(data))

    async def aclose(self) -> None:
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None
