"""OpenAI adapter using the official ``openai`` package."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import openai
import structlog

from core.adapter import LLMAdapter
from core.orchestrator import GenerationOrchestrator
from core.types import ProviderOutput, ResolvedConfig, TokenUsage
from exceptions import (
    ConfigError,
    ErrorKind,
    GenerationTimeoutError,
    ProviderError,
    RateLimitError,
    TokenLimitError,
)

logger = structlog.get_logger(__name__)


class OpenAIAdapter(LLMAdapter):
    """Chat completions adapter; structured calls use a JSON schema response format."""

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        orchestrator: GenerationOrchestrator,
        *,
        base_url: Optional[str] = None,
        organization: Optional[str] = None,
        client: Optional[openai.AsyncOpenAI] = None,
    ) -> None:
        if not api_key and client is None:
            raise ConfigError("OpenAI API key is required")
        super().__init__(model, orchestrator)
        self.api_key = api_key
        self.base_url = base_url
        self.organization = organization
        self._client = client
        self._owned_client = client is None

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            # retries and timeouts are applied by the orchestrator
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                organization=self.organization,
                max_retries=0,
            )
        return self._client

    async def _complete(
        self,
        messages: List[Dict[str, str]],
        config: ResolvedConfig,
        response_format: Optional[Dict[str, Any]] = None,
    ):
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "top_p": config.top_p,
        }
        if config.stop_sequences:
            kwargs["stop"] = list(config.stop_sequences)
        if response_format:
            kwargs["response_format"] = response_format

        try:
            return await self._get_client().chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            raise RateLimitError(str(e)) from e
        except openai.APITimeoutError as e:
            raise GenerationTimeoutError(str(e)) from e
        except openai.APIConnectionError as e:
            raise ProviderError(str(e), kind=ErrorKind.NETWORK_ERROR) from e
        except openai.InternalServerError as e:
            raise ProviderError(str(e), kind=ErrorKind.SERVICE_UNAVAILABLE) from e
        except openai.BadRequestError as e:
            if "token" in str(e).lower():
                raise TokenLimitError(str(e)) from e
            raise ProviderError(str(e)) from e
        except openai.OpenAIError as e:
            logger.error("openai_request_failed", model=self.model, error=str(e), error_type=type(e).__name__)
            raise ProviderError(str(e)) from e

    @staticmethod
    def _usage(resp) -> Optional[TokenUsage]:
        usage = getattr(resp, "usage", None)
        if usage is None:
            return None
        prompt = getattr(usage, "prompt_tokens", 0) or 0
        completion = getattr(usage, "completion_tokens", 0) or 0
        return TokenUsage(
            prompt=prompt,
            completion=completion,
            total=getattr(usage, "total_tokens", None) or prompt + completion,
        )

    async def _call_text(self, prompt: str, config: ResolvedConfig) -> ProviderOutput:
        resp = await self._complete([{"role": "user", "content": prompt}], config)
        content = (resp.choices[0].message.content or "").strip()
        return ProviderOutput(data=content, tokens=self._usage(resp))

    async def _call_structured(
        self, prompt: str, schema: Optional[Dict[str, Any]], config: ResolvedConfig
    ) -> ProviderOutput:
        if schema:
            response_format = {
                "type": "json_schema",
                "json_schema": {"name": "structured_output", "schema": schema, "strict": False},
            }
        else:
            response_format = {"type": "json_object"}
        messages = [
            {"role": "system", "content": "Respond only with JSON."},
            {"role": "user", "content": prompt},
        ]
        resp = await self._complete(messages, config, response_format)
        content = resp.choices[0].message.content or "{}"
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ProviderError(f"Failed to parse structured response: {e}") from e
        return ProviderOutput(data=data, tokens=self._usage(resp))

    async def aclose(self) -> None:
        if self._owned_client and self._client is not None:
            await self._client.close()
            self._client = None
