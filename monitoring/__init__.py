"""Metrics and logging for the generation layer."""

from .metrics import MetricRecord, MetricsRecorder
from .telemetry import configure_logging, generate_request_id

__all__ = ["MetricRecord", "MetricsRecorder", "configure_logging", "generate_request_id"]
