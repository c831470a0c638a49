"""Tests for the Prometheus exporter fed by collector events."""
from __future__ import annotations

import sys

import pytest

from visitor_log.metrics import PrometheusMetricsExporter
from visitor_log.observability import CompositeLogger, emit_event


def test_events_update_counters_and_histograms() -> None:
    prometheus_client = pytest.importorskip("prometheus_client")
    registry = prometheus_client.CollectorRegistry()
    exporter = PrometheusMetricsExporter(namespace="test", registry=registry)
    logger = CompositeLogger([exporter])

    emit_event(logger, "provider_outcome", provider="geolocation", status="ok", latency_ms=42)
    emit_event(logger, "provider_outcome", provider="geolocation", status="timed_out", latency_ms=-1)
    emit_event(logger, "store_appended", record_id="r1", size=1, evicted=0)
    emit_event(logger, "sink_failed", record_id="r1", error="boom")
    emit_event(logger, "consent_decided", state="accepted")

    sample = registry.get_sample_value
    assert sample("test_provider_outcome_total", {"provider": "geolocation", "status": "ok"}) == 1.0
    assert sample("test_provider_outcome_total", {"provider": "geolocation", "status": "timed_out"}) == 1.0
    assert sample("test_provider_latency_ms_count", {"provider": "geolocation"}) == 1.0
    assert sample("test_provider_latency_ms_sum", {"provider": "geolocation"}) == 42.0
    assert sample("test_records_appended_total") == 1.0
    assert sample("test_sink_failures_total") == 1.0


def test_missing_dependency_raises_runtime_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "prometheus_client", None)

    with pytest.raises(RuntimeError):
        PrometheusMetricsExporter()
