"""
Evaluation module for evalloop.

Provides keyword scorers, the per-pass evaluation suite, and the
DEPLOY/BLOCK quality gate.
"""

from evalloop.evaluation.scorer import ScoreResult, score_relevance, score_safety
from evalloop.evaluation.gate import GateReport, GateThresholds, evaluate_gate

# EvaluationSuite lives in evalloop.evaluation.suite; it depends on the
# prompts package, which itself imports the scorers above.

__all__ = [
    "ScoreResult",
    "score_relevance",
    "score_safety",
    "GateReport",
    "GateThresholds",
    "evaluate_gate",
]
