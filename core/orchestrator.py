"""Shared request pipeline: cache, retries, timeout, confidence and metrics."""

from __future__ import annotations

import asyncio
import copy
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from config.config import resolve_request_config
from config.settings import LLMSettings
from core.cache import LLMCache
from core.confidence import CACHED_CONFIDENCE
from core.rate_limit import RateLimiter
from core.schema import validate_against_schema
from core.types import (
    GenerationRequest,
    GenerationResult,
    OperationKind,
    ProviderOutput,
    ResolvedConfig,
)
from exceptions import ErrorKind, LLMError
from monitoring.metrics import MetricsRecorder

if TYPE_CHECKING:
    from core.adapter import LLMAdapter

logger = structlog.get_logger(__name__)


class GenerationOrchestrator:
    """Run every adapter call through the same pipeline.

    Callers never see an exception from ``execute`` apart from their own
    cancellation: failures come back as ``GenerationResult(success=False)``.
    Concurrent calls for the same cache key share one provider call; the
    callers that joined an in-flight request are reported as cached. If the
    leading caller is cancelled, one of the waiting callers runs the request
    instead. Cache read and write errors count as a miss or a skipped store.
    """

    def __init__(
        self,
        settings: LLMSettings,
        cache: LLMCache,
        metrics: MetricsRecorder,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.metrics = metrics
        self.rate_limiter = rate_limiter
        self._inflight: Dict[str, asyncio.Future] = {}

    def cache_key(self, adapter: "LLMAdapter", request: GenerationRequest, config: ResolvedConfig) -> str:
        label = "-".join(
            part for part in (adapter.provider, request.operation.value, config.task) if part
        )
        extra = {
            "schema": request.schema,
            "params": config.generation_params(),
            **adapter.cache_extra(),
        }
        return self.cache.generate_key(label, request.prompt, extra)

    async def execute(self, adapter: "LLMAdapter", request: GenerationRequest) -> GenerationResult:
        config = resolve_request_config(request.config, self.settings)
        operation = config.task or f"generate_{request.operation.value}"
        key = self.cache_key(adapter, request, config)
        caching = config.cache_ttl_seconds > 0
        start = time.perf_counter()

        logger.debug(
            "llm_request_start",
            provider=adapter.provider,
            model=adapter.model,
            operation=operation,
            caching=caching,
        )

        if not caching:
            return await self._run(adapter, request, config, operation, key, start, caching)

        cached = await self._cache_get(key)
        if cached is not None:
            latency = self._elapsed_ms(start)
            logger.debug("cache_hit", provider=adapter.provider, operation=operation)
            self._record(adapter, operation, latency, success=True, cached=True)
            return GenerationResult(
                success=True,
                data=cached,
                confidence=CACHED_CONFIDENCE,
                provider=adapter.provider,
                model=adapter.model,
                latency_ms=latency,
                cached=True,
            )

        while True:
            leader = self._inflight.get(key)
            if leader is None:
                break
            joined = await self._follow(leader, adapter, config, operation, start)
            if joined is not None:
                return joined
            logger.debug("llm_request_takeover", provider=adapter.provider, operation=operation)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await self._run(adapter, request, config, operation, key, start, caching)
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]
            if not future.done():
                # leader cancelled; a waiting follower takes over the call
                future.set_result(None)

    async def _run(
        self,
        adapter: "LLMAdapter",
        request: GenerationRequest,
        config: ResolvedConfig,
        operation: str,
        key: str,
        start: float,
        caching: bool,
    ) -> GenerationResult:
        try:
            output = await asyncio.wait_for(
                self._call_with_retry(adapter, request, config),
                timeout=config.timeout_ms / 1000,
            )
            data = output.data
            if request.operation is OperationKind.STRUCTURED:
                validate_against_schema(data, request.schema)
            confidence = adapter.estimate_confidence(data)
        except asyncio.CancelledError:
            latency = self._elapsed_ms(start)
            logger.warning("llm_request_cancelled", provider=adapter.provider, operation=operation)
            self._record(
                adapter, operation, latency, success=False, cached=False,
                error="Request was cancelled", error_kind=ErrorKind.CANCELLED,
            )
            raise
        except LLMError as e:
            return self._fail(adapter, operation, start, str(e), e.kind)
        except asyncio.TimeoutError:
            message = f"Request exceeded timeout of {config.timeout_ms}ms"
            return self._fail(adapter, operation, start, message, ErrorKind.TIMEOUT)
        except Exception as e:
            logger.exception("llm_unexpected_error", provider=adapter.provider, operation=operation)
            return self._fail(adapter, operation, start, str(e) or type(e).__name__, ErrorKind.PROVIDER_ERROR)

        if caching and data is not None:
            await self._cache_set(key, data, config.cache_ttl_seconds)

        latency = self._elapsed_ms(start)
        self._record(adapter, operation, latency, success=True, cached=False, tokens=output.tokens)
        logger.info(
            "llm_request_success",
            provider=adapter.provider,
            model=adapter.model,
            operation=operation,
            latency_ms=round(latency, 2),
            confidence=confidence,
        )
        return GenerationResult(
            success=True,
            data=data,
            confidence=confidence,
            provider=adapter.provider,
            model=adapter.model,
            latency_ms=latency,
            tokens=output.tokens,
        )

    async def _follow(
        self,
        leader: asyncio.Future,
        adapter: "LLMAdapter",
        config: ResolvedConfig,
        operation: str,
        start: float,
    ) -> Optional[GenerationResult]:
        """Wait for the leader's result. ``None`` means the leader was cancelled."""
        logger.debug("llm_request_joined", provider=adapter.provider, operation=operation)
        remaining = config.timeout_ms / 1000 - (time.perf_counter() - start)
        try:
            result: Optional[GenerationResult] = await asyncio.wait_for(
                asyncio.shield(leader), timeout=max(0.0, remaining)
            )
        except asyncio.CancelledError:
            self._record(
                adapter, operation, self._elapsed_ms(start), success=False, cached=False,
                error="Request was cancelled", error_kind=ErrorKind.CANCELLED,
            )
            raise
        except asyncio.TimeoutError:
            message = f"Request exceeded timeout of {config.timeout_ms}ms"
            return self._fail(adapter, operation, start, message, ErrorKind.TIMEOUT)

        if result is None:
            return None

        latency = self._elapsed_ms(start)
        if not result.success:
            self._record(
                adapter, operation, latency, success=False, cached=False,
                error=result.error, error_kind=result.error_kind,
            )
            return replace(result, latency_ms=latency)

        self._record(adapter, operation, latency, success=True, cached=True)
        return GenerationResult(
            success=True,
            data=copy.deepcopy(result.data),
            confidence=CACHED_CONFIDENCE,
            provider=adapter.provider,
            model=adapter.model,
            latency_ms=latency,
            cached=True,
        )

    async def _cache_get(self, key: str) -> Any:
        try:
            return await self.cache.get(key)
        except Exception as e:
            logger.warning("cache_read_failed", key=key, error=str(e) or type(e).__name__)
            return None

    async def _cache_set(self, key: str, data: Any, ttl: int) -> None:
        try:
            await self.cache.set(key, data, ttl)
        except Exception as e:
            logger.warning("cache_write_failed", key=key, error=str(e) or type(e).__name__)

    async def _call_with_retry(
        self, adapter: "LLMAdapter", request: GenerationRequest, config: ResolvedConfig
    ) -> ProviderOutput:
        policy = self.settings.retry
        retryable = set(policy.retryable_errors)

        def is_retryable(exc: BaseException) -> bool:
            return isinstance(exc, LLMError) and exc.kind.value in retryable

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, config.max_attempts)),
            wait=wait_exponential(
                multiplier=policy.initial_delay_ms / 1000,
                exp_base=policy.backoff_factor,
                max=policy.max_delay_ms / 1000,
            ),
            retry=retry_if_exception(is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                if self.rate_limiter is not None:
                    self.rate_limiter.acquire()
                if request.operation is OperationKind.STRUCTURED:
                    output = await adapter._call_structured(request.prompt, request.schema, config)
                else:
                    output = await adapter._call_text(request.prompt, config)
        return output

    @staticmethod
    def _log_retry(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "llm_retry_scheduled",
            attempt=retry_state.attempt_number,
            error=str(exc),
            error_kind=getattr(getattr(exc, "kind", None), "value", None),
            sleep_s=retry_state.next_action.sleep if retry_state.next_action else None,
        )

    def _fail(
        self,
        adapter: "LLMAdapter",
        operation: str,
        start: float,
        message: str,
        kind: ErrorKind,
    ) -> GenerationResult:
        latency = self._elapsed_ms(start)
        logger.error(
            "llm_request_failed",
            provider=adapter.provider,
            model=adapter.model,
            operation=operation,
            error=message,
            error_kind=kind.value,
        )
        self._record(
            adapter, operation, latency, success=False, cached=False,
            error=message, error_kind=kind,
        )
        return self._failure(adapter, message, kind, latency)

    @staticmethod
    def _failure(adapter: "LLMAdapter", message: str, kind: ErrorKind, latency: float) -> GenerationResult:
        return GenerationResult(
            success=False,
            data=None,
            confidence=0.0,
            provider=adapter.provider,
            model=adapter.model,
            latency_ms=latency,
            error=message,
            error_kind=kind.value,
        )

    def _record(
        self,
        adapter: "LLMAdapter",
        operation: str,
        latency: float,
        *,
        success: bool,
        cached: bool,
        tokens: Any = None,
        error: Optional[str] = None,
        error_kind: Any = None,
    ) -> None:
        if not self.settings.monitoring.enabled:
            return
        if isinstance(error_kind, ErrorKind):
            error_kind = error_kind.value
        self.metrics.record_request(
            adapter.provider,
            adapter.model,
            operation,
            latency,
            success,
            cached,
            tokens=tokens,
            error=error,
            error_kind=error_kind,
        )

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000
