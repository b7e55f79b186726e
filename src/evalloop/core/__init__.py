"""Core models and cancellation primitives for evalloop."""

from evalloop.core.models import (
    EvaluationCase,
    EvaluationResult,
    FeedbackEvent,
    GateDecision,
    GeneratedResponse,
    RiskLevel,
)
from evalloop.core.cancellation import CancellationToken, EvaluationCancelled

__all__ = [
    "EvaluationCase",
    "EvaluationResult",
    "FeedbackEvent",
    "GateDecision",
    "GeneratedResponse",
    "RiskLevel",
    "CancellationToken",
    "EvaluationCancelled",
]
