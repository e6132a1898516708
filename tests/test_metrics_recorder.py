import csv
import io
import json

import pytest

from config.settings import CostSettings, MonitoringSettings
from core.types import CostRate, TokenUsage
from monitoring.metrics import CSV_HEADERS, MetricsRecorder
from tests.mocks import FakeClock


def make_recorder(clock=None, **monitoring):
    return MetricsRecorder(
        cost_rates={"gemini": CostRate(0.00001, 0.00003)},
        monitoring=MonitoringSettings(**monitoring),
        cost=CostSettings(),
        clock=clock or FakeClock(),
    )


def test_empty_recorder_is_healthy():
    recorder = make_recorder()
    assert recorder.get_metrics()["count"] == 0
    summary = recorder.get_summary()
    assert summary["status"] == "healthy"
    assert summary["alerts"] == []


def test_aggregate_counts_and_rates():
    recorder = make_recorder()
    recorder.record_request("gemini", "g", "resumeParsing", 100, True, False)
    recorder.record_request("gemini", "g", "resumeParsing", 200, True, True)
    recorder.record_request("gemini", "g", "jobMatching", 300, False, False, error="boom", error_kind="TIMEOUT")
    recorder.record_request("mock", "m", "jobMatching", 400, True, False)

    agg = recorder.get_metrics()
    assert agg["count"] == 4
    assert agg["successful"] == 3
    assert agg["failed"] == 1
    assert agg["success_rate"] == pytest.approx(0.75)
    assert agg["cache_hit_rate"] == pytest.approx(0.25)
    assert agg["avg_latency"] == pytest.approx(250)
    assert agg["min_latency"] == 100
    assert agg["max_latency"] == 400
    assert agg["p50_latency"] == pytest.approx(250)
    assert agg["error_breakdown"] == {"TIMEOUT": 1}


def test_partitions_by_provider_model_and_operation():
    recorder = make_recorder()
    recorder.record_request("gemini", "g1", "a", 10, True, False)
    recorder.record_request("gemini", "g2", "b", 20, True, False)
    recorder.record_request("mock", "m", "a", 30, False, False)

    by_provider = recorder.get_provider_metrics()
    assert by_provider["gemini"]["count"] == 2
    assert set(by_provider["gemini"]["models"]) == {"g1", "g2"}
    assert by_provider["mock"]["success_rate"] == 0

    by_op = recorder.get_operation_metrics()
    assert by_op["a"]["count"] == 2
    assert by_op["b"]["count"] == 1


def test_since_filters_records():
    clock = FakeClock()
    recorder = make_recorder(clock)
    recorder.record_request("gemini", "g", "op", 10, True, False)
    clock.advance(60)
    cutoff = clock() * 1000
    recorder.record_request("gemini", "g", "op", 20, True, False)

    assert recorder.get_metrics()["count"] == 2
    assert recorder.get_metrics(since_ms=cutoff)["count"] == 1


def test_cost_uses_tokens_and_rates():
    recorder = make_recorder()
    recorder.record_request("gemini", "g", "op", 10, True, False, tokens=TokenUsage(1000, 500, 1500))
    recorder.record_request("gemini", "g", "op", 10, True, False)  # no usage, zero cost
    recorder.record_request("mock", "m", "op", 10, True, False, tokens=TokenUsage(10, 10, 20))

    costs = recorder.get_cost_breakdown()
    gemini = costs["by_provider"]["gemini"]
    assert gemini["input_cost"] == pytest.approx(0.01)
    assert gemini["output_cost"] == pytest.approx(0.015)
    assert gemini["total"] == pytest.approx(0.025)
    assert costs["by_provider"]["mock"]["total"] == 0
    assert costs["total"] == pytest.approx(0.025)
    assert costs["daily"] == pytest.approx(0.025)
    assert costs["by_operation"]["op"] == pytest.approx(0.025)


def test_summary_degraded_then_critical():
    recorder = make_recorder(alert_error_rate=5, critical_error_rate=50)
    for _ in range(9):
        recorder.record_request("gemini", "g", "op", 10, True, False)
    recorder.record_request("gemini", "g", "op", 10, False, False, error="x")

    summary = recorder.get_summary()
    assert summary["status"] == "degraded"
    assert any("error rate" in a for a in summary["alerts"])

    for _ in range(10):
        recorder.record_request("gemini", "g", "op", 10, False, False, error="x")
    summary = recorder.get_summary()
    assert summary["status"] == "critical"
    assert summary["top_errors"] == [{"error": "x", "count": 11}]


def test_summary_latency_threshold():
    recorder = make_recorder(alert_latency_ms=100, critical_latency_ms=1000)
    recorder.record_request("gemini", "g", "op", 500, True, False)
    summary = recorder.get_summary()
    assert summary["status"] == "degraded"
    assert summary["alerts"] == ["High latency: 500ms"]


def test_check_alerts_invokes_callbacks():
    recorder = make_recorder(alert_cache_hit_rate=30)
    received = []
    recorder.on_alert(received.append)
    recorder.record_request("gemini", "g", "op", 10, True, False)

    alerts = recorder.check_alerts()
    assert [a["type"] for a in alerts] == ["cache_hit_rate"]
    assert received == alerts


def test_budget_alert():
    recorder = MetricsRecorder(
        cost_rates={"gemini": CostRate(1.0, 1.0)},
        monitoring=MonitoringSettings(alert_cache_hit_rate=0),
        cost=CostSettings(budget_daily=1, budget_weekly=100, budget_monthly=100),
        clock=FakeClock(),
    )
    recorder.record_request("gemini", "g", "op", 10, True, False, tokens=TokenUsage(2, 0, 2))
    alerts = recorder.check_alerts()
    assert [a["type"] for a in alerts] == ["cost"]
    assert alerts[0]["message"].startswith("Daily cost exceeded budget")


def test_export_json_and_csv():
    recorder = make_recorder()
    recorder.record_request("gemini", "g", "op", 12.5, True, False, tokens=TokenUsage(4, 2, 6))
    recorder.record_request("gemini", "g", "op", 7, False, False, error="bad")

    doc = json.loads(recorder.export_metrics("json"))
    assert doc["aggregate"]["count"] == 2
    assert len(doc["records"]) == 2

    rows = list(csv.reader(io.StringIO(recorder.export_metrics("csv"))))
    assert rows[0] == CSV_HEADERS
    assert len(rows) == 3
    assert rows[2][-1] == "bad"

    with pytest.raises(ValueError):
        recorder.export_metrics("xml")


def test_records_are_bounded_and_clear_resets():
    recorder = MetricsRecorder(max_records=3, clock=FakeClock())
    for i in range(5):
        recorder.record_request("mock", "m", "op", i, True, False)
    assert recorder.get_metrics()["count"] == 3
    recorder.clear()
    assert recorder.get_metrics()["count"] == 0
