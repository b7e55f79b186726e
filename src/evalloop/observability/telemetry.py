"""
Pass-scoped telemetry: timed spans and scalar metrics.

A TelemetrySink is created fresh for every evaluation pass and thrown away
when the pass ends. It only appends; snapshots are computed on demand from
everything recorded so far.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

import structlog

logger = structlog.get_logger()

# Metric names recorded by the evaluation suite
MODEL_LATENCY_METRIC = "llm.model_latency_ms"
TOKENS_METRIC = "tokens"
WALL_LATENCY_METRIC = "eval.wall_ms"


@dataclass(frozen=True)
class TelemetrySpan:
    """A named, timed, tagged record of one unit of work."""

    name: str
    duration_ms: float
    tags: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "duration_ms": self.duration_ms,
            "tags": dict(self.tags),
        }


@dataclass(frozen=True)
class TelemetryMetric:
    """A named scalar sample."""

    name: str
    value: float


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Aggregates over everything a sink has recorded."""

    total_spans: int = 0
    average_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    average_model_latency_ms: float = 0.0
    average_tokens: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_spans": self.total_spans,
            "average_latency_ms": round(self.average_latency_ms, 2),
            "p95_latency_ms": round(self.p95_latency_ms, 2),
            "average_model_latency_ms": round(self.average_model_latency_ms, 2),
            "average_tokens": round(self.average_tokens, 2),
        }


def percentile(values: Iterable[float], p: int) -> float:
    """
    Nearest-rank percentile.

    Values are sorted ascending and the value at 1-indexed rank
    ceil(p / 100 * n) is returned, with the rank clamped to [1, n].
    Returns 0.0 for an empty input.
    """
    if not 0 < p <= 100:
        raise ValueError(f"Percentile must be in (0, 100], got {p}")

    sorted_values = sorted(values)
    n = len(sorted_values)
    if n == 0:
        return 0.0

    # Integer ceil(p * n / 100) avoids float rounding at exact ranks.
    rank = -(-p * n // 100)
    rank = min(max(rank, 1), n)
    return sorted_values[rank - 1]


def _mean(values: list[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


class TelemetrySink:
    """
    Append-only collector of spans and metrics for one pass.

    Not thread-safe: a pass has a single writer.

    Usage:
        sink = TelemetrySink()
        sink.record_span("llm.generate", 120.5, {"case_id": "EVAL-1"})
        sink.record_metric("tokens", 42)
        print(sink.snapshot().p95_latency_ms)
    """

    def __init__(self, name: str = "pass"):
        self.name = name
        self._spans: list[TelemetrySpan] = []
        self._metrics: list[TelemetryMetric] = []

    @property
    def spans(self) -> tuple[TelemetrySpan, ...]:
        return tuple(self._spans)

    @property
    def metrics(self) -> tuple[TelemetryMetric, ...]:
        return tuple(self._metrics)

    def record_span(
        self,
        name: str,
        latency_ms: float,
        tags: dict[str, str] | None = None,
    ) -> TelemetrySpan:
        """Record a completed span."""
        span = TelemetrySpan(
            name=name,
            duration_ms=float(latency_ms),
            tags={str(k): str(v) for k, v in (tags or {}).items()},
        )
        self._spans.append(span)
        logger.debug("Span recorded", sink=self.name, span=name, duration_ms=span.duration_ms)
        return span

    def record_metric(self, name: str, value: float) -> TelemetryMetric:
        """Record a scalar metric sample."""
        metric = TelemetryMetric(name=name, value=float(value))
        self._metrics.append(metric)
        return metric

    def series(self, name: str) -> list[float]:
        """All samples recorded for a metric, in recording order."""
        return [m.value for m in self._metrics if m.name == name]

    def snapshot(self) -> TelemetrySnapshot:
        """Aggregate everything recorded so far."""
        if not self._spans:
            return TelemetrySnapshot()

        latencies = [s.duration_ms for s in self._spans]

        return TelemetrySnapshot(
            total_spans=len(latencies),
            average_latency_ms=_mean(latencies),
            p95_latency_ms=percentile(latencies, 95),
            average_model_latency_ms=_mean(self.series(MODEL_LATENCY_METRIC)),
            average_tokens=_mean(self.series(TOKENS_METRIC)),
        )
