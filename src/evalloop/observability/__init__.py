"""
Observability module for evalloop.

Pass-scoped spans, metrics, and latency aggregates.
"""

from evalloop.observability.telemetry import (
    MODEL_LATENCY_METRIC,
    TOKENS_METRIC,
    WALL_LATENCY_METRIC,
    TelemetryMetric,
    TelemetrySink,
    TelemetrySnapshot,
    TelemetrySpan,
    percentile,
)

__all__ = [
    "MODEL_LATENCY_METRIC",
    "TOKENS_METRIC",
    "WALL_LATENCY_METRIC",
    "TelemetryMetric",
    "TelemetrySink",
    "TelemetrySnapshot",
    "TelemetrySpan",
    "percentile",
]
