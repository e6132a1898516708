from __future__ import annotations

import time
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from config.config import validate_llm_config
from core.factory import LLMFactory, build_factory
from core.types import RequestConfig
from exceptions import ConfigError
from monitoring.telemetry import configure_logging, generate_request_id

logger = structlog.get_logger(__name__)

DEFAULT_TEST_PROMPT = "Hello, respond with 'OK' if you're working."


class PatternRequest(BaseModel):
    pattern: Optional[str] = None


class ProviderTestRequest(BaseModel):
    provider: Optional[str] = None
    prompt: Optional[str] = None


class GenerateRequest(BaseModel):
    prompt: str
    output_schema: Optional[Dict[str, Any]] = None
    task: Optional[str] = None
    provider: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    cache_ttl_seconds: Optional[int] = None


def _timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def create_app(factory: Optional[LLMFactory] = None) -> FastAPI:
    """Build the admin API around an explicit factory."""
    factory = factory or build_factory()
    app = FastAPI(title="LLM Admin API")
    app.state.factory = factory

    @app.on_event("startup")
    async def init_logging() -> None:
        mon = factory.settings.monitoring
        configure_logging(mon.log_level, mon.log_format)
        if factory.cache.persist_dir:
            await factory.cache.load_from_disk()

    @app.on_event("shutdown")
    async def close_adapters() -> None:
        await factory.aclose()

    @app.get("/api/admin/llm/cache/stats")
    async def cache_stats():
        await factory.cache.purge_expired()
        entries = factory.cache.get_entries_summary()
        return {
            "stats": factory.cache.get_stats(),
            "top_entries": entries[:10],
            "total_entries": len(entries),
        }

    @app.delete("/api/admin/llm/cache")
    async def clear_cache():
        cleared = await factory.cache.clear()
        logger.info("admin_cache_cleared", cleared=cleared)
        return {"message": "Cache cleared successfully", "cleared": cleared, "timestamp": _timestamp()}

    @app.delete("/api/admin/llm/cache/pattern")
    async def clear_cache_pattern(request: PatternRequest):
        if not request.pattern:
            raise HTTPException(status_code=400, detail="Pattern is required")
        cleared = await factory.cache.clear_by_pattern(request.pattern)
        return {
            "message": f"Cleared {cleared} cache entries matching pattern: {request.pattern}",
            "cleared": cleared,
            "timestamp": _timestamp(),
        }

    @app.get("/api/admin/llm/metrics")
    async def get_metrics(since: Optional[float] = None):
        metrics = factory.metrics
        return {
            "summary": metrics.get_summary(),
            "aggregated": metrics.get_metrics(since),
            "by_provider": metrics.get_provider_metrics(since),
            "by_operation": metrics.get_operation_metrics(since),
            "costs": metrics.get_cost_breakdown(),
            "timestamp": _timestamp(),
        }

    @app.get("/api/admin/llm/metrics/export")
    async def export_metrics(format: str = "json"):
        if format not in ("json", "csv"):
            raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")
        data = factory.metrics.export_metrics(format)
        if format == "csv":
            filename = f"llm-metrics-{int(time.time() * 1000)}.csv"
            return Response(
                content=data,
                media_type="text/csv",
                headers={"Content-Disposition": f'attachment; filename="{filename}"'},
            )
        return Response(content=data, media_type="application/json")

    @app.delete("/api/admin/llm/metrics")
    async def clear_metrics():
        factory.metrics.clear()
        return {"message": "Metrics cleared successfully", "timestamp": _timestamp()}

    @app.get("/api/admin/llm/health")
    async def health():
        errors = validate_llm_config(factory.settings)
        summary = factory.metrics.get_summary()
        return {
            "healthy": not errors and summary["status"] != "critical",
            "status": summary["status"],
            "config_errors": errors,
            "alerts": summary["alerts"],
            "timestamp": _timestamp(),
        }

    @app.post("/api/admin/llm/test")
    async def test_provider(request: ProviderTestRequest):
        try:
            adapter = (
                factory.create_adapter(request.provider)
                if request.provider
                else factory.get_default_adapter()
            )
        except ConfigError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        result = await adapter.generate_text(
            request.prompt or DEFAULT_TEST_PROMPT,
            RequestConfig(temperature=0.1, max_tokens=50, cache_ttl_seconds=0),
        )
        return {
            "success": result.success,
            "response": result.data,
            "error": result.error,
            "metadata": {
                "provider": result.provider,
                "model": result.model,
                "latency": result.latency_ms,
                "confidence": result.confidence,
            },
            "timestamp": _timestamp(),
        }

    @app.post("/api/llm/generate")
    async def generate(request: GenerateRequest):
        request_id = generate_request_id()
        try:
            if request.provider:
                adapter = factory.create_adapter(request.provider)
            elif request.task:
                adapter = factory.get_task_adapter(request.task)
            else:
                adapter = factory.get_default_adapter()
        except ConfigError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        config = RequestConfig(
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            cache_ttl_seconds=request.cache_ttl_seconds,
            task=request.task,
        )
        logger.info("generate_request", request_id=request_id, provider=adapter.provider, task=request.task)
        try:
            if request.output_schema is not None:
                result = await adapter.generate_structured(request.prompt, request.output_schema, config)
            else:
                result = await adapter.generate_text(request.prompt, config)
        except Exception as exc:
            logger.exception("generate_request_failed", request_id=request_id)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return JSONResponse({"request_id": request_id, **result.to_dict()})

    return app


app = create_app()
