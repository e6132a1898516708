"""Per-call metrics for the generation layer."""

from __future__ import annotations

import csv
import io
import json
import threading
import time
from collections import Counter, defaultdict, deque
from dataclasses import asdict, dataclass
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional

import numpy as np
import structlog

from config.settings import CostSettings, MonitoringSettings
from core.types import CostRate, TokenUsage

logger = structlog.get_logger(__name__)

DAY_MS = 24 * 60 * 60 * 1000

CSV_HEADERS = [
    "timestamp",
    "provider",
    "model",
    "operation",
    "latency",
    "success",
    "cached",
    "prompt_tokens",
    "completion_tokens",
    "total_tokens",
    "cost",
    "error",
]

AlertCallback = Callable[[Dict[str, Any]], None]


@dataclass
class MetricRecord:
    timestamp: float  # epoch milliseconds
    provider: str
    model: str
    operation: str
    latency_ms: float
    success: bool
    cached: bool
    tokens: Optional[TokenUsage] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class MetricsRecorder:
    """Record generation calls and derive aggregates, costs and health.

    Records live in a bounded deque so memory stays flat under load. All
    reads take a snapshot under the lock and aggregate outside it.
    """

    def __init__(
        self,
        *,
        max_records: int = 10000,
        cost_rates: Optional[Mapping[str, CostRate]] = None,
        monitoring: Optional[MonitoringSettings] = None,
        cost: Optional[CostSettings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.records: Deque[MetricRecord] = deque(maxlen=max_records)
        self.cost_rates: Dict[str, CostRate] = dict(cost_rates or {})
        self.monitoring = monitoring or MonitoringSettings()
        self.cost = cost or CostSettings()
        self._clock = clock
        self._lock = threading.Lock()
        self._callbacks: List[AlertCallback] = []

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def record_request(
        self,
        provider: str,
        model: str,
        operation: str,
        latency_ms: float,
        success: bool,
        cached: bool,
        tokens: Optional[TokenUsage] = None,
        error: Optional[str] = None,
        error_kind: Optional[str] = None,
    ) -> MetricRecord:
        record = MetricRecord(
            timestamp=self._now_ms(),
            provider=provider,
            model=model,
            operation=operation,
            latency_ms=latency_ms,
            success=success,
            cached=cached,
            tokens=tokens,
            error=error,
            error_kind=error_kind,
        )
        with self._lock:
            self.records.append(record)
        if not success:
            logger.debug("llm_failure_recorded", provider=provider, operation=operation, error=error)
        return record

    def _snapshot(self, since_ms: Optional[float] = None) -> List[MetricRecord]:
        with self._lock:
            records = list(self.records)
        if since_ms is None:
            return records
        return [r for r in records if r.timestamp >= since_ms]

    def record_cost(self, record: MetricRecord) -> Dict[str, float]:
        """Input/output cost of one record; zero when tokens are unknown."""
        rate = self.cost_rates.get(record.provider)
        if record.tokens is None or rate is None:
            return {"input_cost": 0.0, "output_cost": 0.0, "total": 0.0}
        input_cost = record.tokens.prompt * rate.input_price_per_token
        output_cost = record.tokens.completion * rate.output_price_per_token
        return {
            "input_cost": input_cost,
            "output_cost": output_cost,
            "total": input_cost + output_cost,
        }

    def _aggregate(self, records: List[MetricRecord]) -> Dict[str, Any]:
        count = len(records)
        if not count:
            return {
                "count": 0,
                "successful": 0,
                "failed": 0,
                "cached": 0,
                "success_rate": 0.0,
                "cache_hit_rate": 0.0,
                "avg_latency": 0.0,
                "min_latency": 0.0,
                "max_latency": 0.0,
                "p50_latency": 0.0,
                "p95_latency": 0.0,
                "p99_latency": 0.0,
                "total_tokens": 0,
                "total_cost": 0.0,
                "error_breakdown": {},
                "requests_per_minute": 0.0,
            }

        successful = sum(1 for r in records if r.success)
        cached = sum(1 for r in records if r.cached)
        latencies = np.array([r.latency_ms for r in records], dtype=float)
        errors = Counter(r.error_kind or "UNKNOWN" for r in records if not r.success)
        timestamps = [r.timestamp for r in records]
        span_ms = max(max(timestamps) - min(timestamps), 60000.0)

        return {
            "count": count,
            "successful": successful,
            "failed": count - successful,
            "cached": cached,
            "success_rate": successful / count,
            "cache_hit_rate": cached / count,
            "avg_latency": float(np.mean(latencies)),
            "min_latency": float(np.min(latencies)),
            "max_latency": float(np.max(latencies)),
            "p50_latency": float(np.percentile(latencies, 50)),
            "p95_latency": float(np.percentile(latencies, 95)),
            "p99_latency": float(np.percentile(latencies, 99)),
            "total_tokens": sum(r.tokens.total for r in records if r.tokens),
            "total_cost": sum(self.record_cost(r)["total"] for r in records),
            "error_breakdown": dict(errors),
            "requests_per_minute": count / span_ms * 60000,
        }

    def _partition(self, records: Iterable[MetricRecord], attr: str) -> Dict[str, List[MetricRecord]]:
        groups: Dict[str, List[MetricRecord]] = defaultdict(list)
        for r in records:
            groups[getattr(r, attr)].append(r)
        return groups

    def get_metrics(self, since_ms: Optional[float] = None) -> Dict[str, Any]:
        return self._aggregate(self._snapshot(since_ms))

    def get_provider_metrics(self, since_ms: Optional[float] = None) -> Dict[str, Dict[str, Any]]:
        """Aggregate per provider, each with a ``models`` sub-breakdown."""
        result = {}
        for provider, records in self._partition(self._snapshot(since_ms), "provider").items():
            agg = self._aggregate(records)
            agg["models"] = {
                model: self._aggregate(group)
                for model, group in self._partition(records, "model").items()
            }
            result[provider] = agg
        return result

    def get_operation_metrics(self, since_ms: Optional[float] = None) -> Dict[str, Dict[str, Any]]:
        return {
            op: self._aggregate(records)
            for op, records in self._partition(self._snapshot(since_ms), "operation").items()
        }

    def get_cost_breakdown(self) -> Dict[str, Any]:
        records = self._snapshot()
        now = self._now_ms()
        by_provider: Dict[str, Dict[str, float]] = defaultdict(
            lambda: {"input_cost": 0.0, "output_cost": 0.0, "total": 0.0}
        )
        by_model: Dict[str, float] = defaultdict(float)
        by_operation: Dict[str, float] = defaultdict(float)
        windows = {"daily": 0.0, "weekly": 0.0, "monthly": 0.0}
        spans = {"daily": DAY_MS, "weekly": 7 * DAY_MS, "monthly": 30 * DAY_MS}
        total = 0.0

        for r in records:
            cost = self.record_cost(r)
            bucket = by_provider[r.provider]
            for k in bucket:
                bucket[k] += cost[k]
            by_model[r.model] += cost["total"]
            by_operation[r.operation] += cost["total"]
            total += cost["total"]
            for name, span in spans.items():
                if now - r.timestamp <= span:
                    windows[name] += cost["total"]

        return {
            "total": total,
            "by_provider": dict(by_provider),
            "by_model": dict(by_model),
            "by_operation": dict(by_operation),
            **windows,
        }

    def get_summary(self, since_ms: Optional[float] = None) -> Dict[str, Any]:
        """Health status plus the thresholds that fired.

        ``degraded`` when the error rate or average latency crosses its alert
        threshold, ``critical`` when either crosses the stricter one. No data
        is ``healthy``.
        """
        records = self._snapshot(since_ms)
        metrics = self._aggregate(records)
        cfg = self.monitoring
        status = "healthy"
        alerts: List[str] = []

        if metrics["count"]:
            error_pct = (1 - metrics["success_rate"]) * 100
            latency = metrics["avg_latency"]

            if error_pct > cfg.critical_error_rate:
                status = "critical"
                alerts.append(f"Critical error rate: {error_pct:.1f}%")
            elif error_pct > cfg.alert_error_rate:
                status = "degraded"
                alerts.append(f"High error rate: {error_pct:.1f}%")

            if latency > cfg.critical_latency_ms:
                status = "critical"
                alerts.append(f"Critical latency: {latency:.0f}ms")
            elif latency > cfg.alert_latency_ms:
                if status == "healthy":
                    status = "degraded"
                alerts.append(f"High latency: {latency:.0f}ms")

        top_errors = Counter(r.error for r in records if not r.success and r.error).most_common(5)

        return {
            "status": status,
            "alerts": alerts,
            "total_requests": metrics["count"],
            "success_rate": metrics["success_rate"],
            "avg_latency": metrics["avg_latency"],
            "cache_hit_rate": metrics["cache_hit_rate"],
            "uptime_ms": self._now_ms() - records[0].timestamp if records else 0.0,
            "top_errors": [{"error": e, "count": c} for e, c in top_errors],
        }

    def on_alert(self, callback: AlertCallback) -> None:
        self._callbacks.append(callback)

    def check_alerts(self) -> List[Dict[str, Any]]:
        """Evaluate alert thresholds and push each alert to the callbacks."""
        metrics = self.get_metrics()
        cfg = self.monitoring
        alerts: List[Dict[str, Any]] = []

        if metrics["count"]:
            error_pct = (1 - metrics["success_rate"]) * 100
            if error_pct > cfg.alert_error_rate:
                alerts.append({
                    "type": "error_rate",
                    "severity": "high",
                    "message": f"Error rate exceeded threshold: {error_pct:.1f}%",
                    "value": error_pct,
                    "threshold": cfg.alert_error_rate,
                })
            if metrics["avg_latency"] > cfg.alert_latency_ms:
                alerts.append({
                    "type": "latency",
                    "severity": "medium",
                    "message": f"Average latency exceeded threshold: {metrics['avg_latency']:.0f}ms",
                    "value": metrics["avg_latency"],
                    "threshold": cfg.alert_latency_ms,
                })
            hit_pct = metrics["cache_hit_rate"] * 100
            if hit_pct < cfg.alert_cache_hit_rate:
                alerts.append({
                    "type": "cache_hit_rate",
                    "severity": "low",
                    "message": f"Cache hit rate below threshold: {hit_pct:.1f}%",
                    "value": hit_pct,
                    "threshold": cfg.alert_cache_hit_rate,
                })

        if self.cost.tracking_enabled:
            costs = self.get_cost_breakdown()
            for window, budget in (
                ("daily", self.cost.budget_daily),
                ("weekly", self.cost.budget_weekly),
                ("monthly", self.cost.budget_monthly),
            ):
                if costs[window] > budget:
                    alerts.append({
                        "type": "cost",
                        "severity": "high" if window == "daily" else "medium",
                        "message": f"{window.capitalize()} cost exceeded budget: ${costs[window]:.2f}",
                        "value": costs[window],
                        "threshold": budget,
                    })

        for alert in alerts:
            logger.warning("llm_alert", **alert)
            for callback in self._callbacks:
                try:
                    callback(alert)
                except Exception:
                    logger.exception("alert_callback_failed", alert_type=alert["type"])
        return alerts

    def export_metrics(self, fmt: str = "json") -> str:
        records = self._snapshot()
        if fmt == "json":
            return json.dumps(
                {
                    "exported_at": self._now_ms(),
                    "aggregate": self._aggregate(records),
                    "records": [asdict(r) for r in records],
                },
                default=str,
            )
        if fmt == "csv":
            buf = io.StringIO()
            writer = csv.writer(buf)
            writer.writerow(CSV_HEADERS)
            for r in records:
                tokens = r.tokens or TokenUsage()
                writer.writerow([
                    int(r.timestamp),
                    r.provider,
                    r.model,
                    r.operation,
                    round(r.latency_ms, 3),
                    r.success,
                    r.cached,
                    tokens.prompt,
                    tokens.completion,
                    tokens.total,
                    self.record_cost(r)["total"],
                    r.error or "",
                ])
            return buf.getvalue()
        raise ValueError(f"Unsupported export format: {fmt}")

    def clear(self) -> None:
        with self._lock:
            self.records.clear()
        logger.info("metrics_cleared")
