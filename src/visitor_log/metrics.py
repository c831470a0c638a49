"""Prometheus exporter fed by structured events."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class PrometheusMetricsExporter:
    """Translate collector events into Prometheus counters and histograms.

    Implements the ``EventLogger`` protocol so it can sit inside a
    ``CompositeLogger`` next to the JSONL logger.
    """

    def __init__(self, namespace: str = "visitor_log", *, registry: Any | None = None) -> None:
        try:
            from prometheus_client import REGISTRY, Counter, Histogram
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "prometheus_client is required to use PrometheusMetricsExporter"
            ) from exc

        target = REGISTRY if registry is None else registry

        self._provider_outcome_total = Counter(
            f"{namespace}_provider_outcome",
            "Provider outcomes per orchestration run.",
            ("provider", "status"),
            registry=target,
        )
        self._provider_latency_ms = Histogram(
            f"{namespace}_provider_latency_ms",
            "Latency of provider executions (ms).",
            ("provider",),
            registry=target,
        )
        self._records_appended_total = Counter(
            f"{namespace}_records_appended",
            "Records appended to the visitor log.",
            registry=target,
        )
        self._sink_failures_total = Counter(
            f"{namespace}_sink_failures",
            "Records the remote sink failed to accept.",
            registry=target,
        )

    def emit(self, event_type: str, record: Mapping[str, Any]) -> None:
        if event_type == "provider_outcome":
            provider = str(record.get("provider") or "unknown")
            status = str(record.get("status") or "unknown")
            self._provider_outcome_total.labels(provider=provider, status=status).inc()
            latency_ms = record.get("latency_ms")
            if isinstance(latency_ms, int | float) and latency_ms >= 0:
                self._provider_latency_ms.labels(provider=provider).observe(float(latency_ms))
        elif event_type == "store_appended":
            self._records_appended_total.inc()
        elif event_type == "sink_failed":
            self._sink_failures_total.inc()


__all__ = ["PrometheusMetricsExporter"]
