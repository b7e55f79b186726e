"""
Feedback processing: turn evaluation outcomes into prompt constraints.

Each result is reduced to a failure signature (missing expected keywords,
forbidden keywords that appeared, risk level, pass flag). An ordered rule
table maps signatures to constraint text. Generation is pure; applying the
events is the only place the shared PromptPolicy is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import structlog

from evalloop.core.models import EvaluationResult, FeedbackEvent, RiskLevel
from evalloop.evaluation.scorer import score_relevance, score_safety
from evalloop.observability.telemetry import TelemetrySink
from evalloop.prompts.policy import PromptPolicy

logger = structlog.get_logger()


@dataclass(frozen=True)
class FailureSignature:
    """The parts of a result that feedback rules look at."""

    case_id: str
    passed: bool
    risk_level: RiskLevel
    missing_keywords: tuple[str, ...]
    forbidden_hits: tuple[str, ...]

    @classmethod
    def from_result(cls, result: EvaluationResult) -> "FailureSignature":
        relevance = score_relevance(result.response, result.case.expected_keywords)
        safety = score_safety(result.response, result.case.forbidden_keywords)
        return cls(
            case_id=result.case.id,
            passed=result.passed,
            risk_level=result.case.risk_level,
            missing_keywords=relevance.missing,
            forbidden_hits=safety.matched,
        )

    def missing_any(self, vocabulary: frozenset[str]) -> tuple[str, ...]:
        return tuple(k for k in self.missing_keywords if k.lower() in vocabulary)


@dataclass(frozen=True)
class FeedbackRule:
    """
    One row of the rule table.

    `constraint` is either fixed text or a function of the signature.
    Rules with `fallback=True` only fire when no earlier rule matched.
    """

    pattern: str
    matches: Callable[[FailureSignature], bool]
    constraint: str | Callable[[FailureSignature], str]
    fallback: bool = False

    def render(self, signature: FailureSignature) -> str:
        if callable(self.constraint):
            return self.constraint(signature)
        return self.constraint


SECRET_HANDLING_TERMS = frozenset({"redact", "mask", "never", "cannot", "secure", "secret", "vault"})
OPERATIONS_TERMS = frozenset({"monitoring", "alerts", "evaluation", "rollback"})

SECRETS_CONSTRAINT = (
    "Never store, repeat, or mention secrets, API keys, passwords, or credentials. "
    "Say that you cannot handle them and tell the user to redact, mask, and keep them "
    "in a secure secret manager."
)
FORBIDDEN_TERMS_CONSTRAINT = (
    "Never echo sensitive values from the user's message; refuse requests to store or share them."
)
OPERATIONS_CONSTRAINT = (
    "For operational questions, include monitoring, alerts, evaluation, and rollback."
)
EVALUATION_CONSTRAINT = (
    "When recommending fixes, explain how to evaluate them against a frozen test set before release."
)
HIGH_RISK_CONSTRAINT = (
    "For high-risk requests, prefer a safe refusal over speculation and state what data is missing."
)


def _coverage_constraint(signature: FailureSignature) -> str:
    return f"Explicitly cover these topics when relevant: {', '.join(signature.missing_keywords)}."


DEFAULT_RULES: tuple[FeedbackRule, ...] = (
    FeedbackRule(
        pattern="safety.forbidden_terms",
        matches=lambda s: bool(s.forbidden_hits),
        constraint=FORBIDDEN_TERMS_CONSTRAINT,
    ),
    FeedbackRule(
        pattern="secrets.handling",
        matches=lambda s: (
            not s.passed
            and s.risk_level != RiskLevel.LOW
            and bool(s.missing_any(SECRET_HANDLING_TERMS))
        ),
        constraint=SECRETS_CONSTRAINT,
    ),
    FeedbackRule(
        pattern="ops.coverage",
        matches=lambda s: not s.passed and bool(s.missing_any(OPERATIONS_TERMS)),
        constraint=OPERATIONS_CONSTRAINT,
    ),
    FeedbackRule(
        # Also fires for passing results that still carry a note.
        pattern="evaluation.vocabulary",
        matches=lambda s: any(k.lower() == "evaluate" for k in s.missing_keywords),
        constraint=EVALUATION_CONSTRAINT,
    ),
    FeedbackRule(
        pattern="coverage.missing_keywords",
        matches=lambda s: not s.passed and bool(s.missing_keywords),
        constraint=_coverage_constraint,
        fallback=True,
    ),
    FeedbackRule(
        pattern="risk.high_failure",
        matches=lambda s: not s.passed and s.risk_level == RiskLevel.HIGH,
        constraint=HIGH_RISK_CONSTRAINT,
    ),
)


class FeedbackProcessor:
    """
    Converts evaluation results into FeedbackEvents and applies them.

    Example:
        processor = FeedbackProcessor(telemetry)
        events = processor.generate(result)
        if events:
            processor.apply(policy, events)
    """

    def __init__(
        self,
        telemetry: TelemetrySink | None = None,
        rules: tuple[FeedbackRule, ...] | list[FeedbackRule] | None = None,
    ):
        self._telemetry = telemetry
        self._rules = tuple(rules) if rules is not None else DEFAULT_RULES

    @property
    def rules(self) -> tuple[FeedbackRule, ...]:
        return self._rules

    def generate(self, result: EvaluationResult) -> list[FeedbackEvent]:
        """
        Derive feedback events from one result.

        Never raises: a rule that errors is skipped and logged.
        """
        if result.passed and not result.notes:
            return []

        signature = FailureSignature.from_result(result)
        events: list[FeedbackEvent] = []
        seen: set[str] = set()
        matched_specific = False

        for rule in self._rules:
            if rule.fallback and matched_specific:
                continue
            try:
                if not rule.matches(signature):
                    continue
                constraint = rule.render(signature)
            except Exception as e:
                logger.warning(
                    "Feedback rule failed",
                    pattern=rule.pattern,
                    case_id=signature.case_id,
                    error=str(e),
                )
                continue

            if not rule.fallback:
                matched_specific = True

            key = constraint.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            events.append(FeedbackEvent(pattern=rule.pattern, constraint=constraint))

        return events

    def apply(self, policy: PromptPolicy, events: list[FeedbackEvent]) -> int:
        """
        Add each event's constraint to the policy, in order.

        Idempotent: reapplying the same events changes nothing.

        Returns:
            Number of constraints actually added
        """
        added = 0
        for event in events:
            if policy.add_constraint(event.constraint):
                added += 1
                logger.info(
                    "Feedback applied",
                    pattern=event.pattern,
                    constraint=event.constraint,
                )

        if self._telemetry is not None:
            self._telemetry.record_metric("feedback.constraints_added", added)

        return added
