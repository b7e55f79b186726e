"""
evalloop - evaluation, telemetry, and prompt feedback loop for LLM backends.

Runs a suite of cases against a backend, scores every response, feeds
failures back into the prompt policy within the same pass, and gates the
result on pass rate, safety, and p95 latency.
"""

from evalloop.core.models import (
    EvaluationCase,
    EvaluationResult,
    FeedbackEvent,
    GateDecision,
    GeneratedResponse,
    RiskLevel,
)
from evalloop.core.cancellation import CancellationToken, EvaluationCancelled
from evalloop.prompts import FeedbackProcessor, PromptPolicy
from evalloop.observability import TelemetrySink, TelemetrySnapshot
from evalloop.evaluation import GateReport, GateThresholds, evaluate_gate
from evalloop.backends import BackendError, BaseBackend, ScriptedBackend
from evalloop.evaluation.suite import EvaluationSuite
from evalloop.core.loop import FeedbackLoop, LoopOutcome, PassOutcome
from evalloop.core.suite_loader import EvaluationSuiteSpec, load_demo_suite, load_suite

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "EvaluationCase",
    "EvaluationResult",
    "FeedbackEvent",
    "GateDecision",
    "GeneratedResponse",
    "RiskLevel",
    "CancellationToken",
    "EvaluationCancelled",
    "FeedbackProcessor",
    "PromptPolicy",
    "TelemetrySink",
    "TelemetrySnapshot",
    "GateReport",
    "GateThresholds",
    "evaluate_gate",
    "BackendError",
    "BaseBackend",
    "ScriptedBackend",
    "EvaluationSuite",
    "FeedbackLoop",
    "LoopOutcome",
    "PassOutcome",
    "EvaluationSuiteSpec",
    "load_demo_suite",
    "load_suite",
]
