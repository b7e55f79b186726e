"""
Multi-pass feedback loop.

Runs the evaluation suite several times in sequence against one shared
PromptPolicy. Each pass gets its own telemetry sink, feedback processor,
and backend; only the policy carries over, so constraints learned in pass
N shape every call of pass N+1.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import structlog

from evalloop.backends.base import BaseBackend
from evalloop.backends.factory import create_backend
from evalloop.core.cancellation import CancellationToken, EvaluationCancelled
from evalloop.core.config import Settings, get_settings
from evalloop.core.models import EvaluationCase, EvaluationResult, GateDecision
from evalloop.core.suite_loader import EvaluationSuiteSpec
from evalloop.evaluation.gate import GateReport, GateThresholds, evaluate_gate
from evalloop.evaluation.suite import RELEVANCE_PASS_THRESHOLD, EvaluationSuite
from evalloop.observability.telemetry import TelemetrySink, TelemetrySnapshot
from evalloop.prompts.feedback import FeedbackProcessor, FeedbackRule
from evalloop.prompts.policy import PromptPolicy
from evalloop.utils.logging import PassLogContext

logger = structlog.get_logger()

BackendFactory = Callable[[TelemetrySink], BaseBackend]


@dataclass(frozen=True)
class PassOutcome:
    """Everything one pass produced."""

    pass_number: int
    results: tuple[EvaluationResult, ...]
    snapshot: TelemetrySnapshot
    report: GateReport
    policy_before: str
    policy_after: str
    constraints_added: tuple[str, ...] = ()
    cancelled: bool = False
    cancel_reason: str | None = None

    @property
    def passed_cases(self) -> int:
        return sum(1 for r in self.results if r.passed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass": self.pass_number,
            "cancelled": self.cancelled,
            "cancel_reason": self.cancel_reason,
            "results": [r.to_dict() for r in self.results],
            "telemetry": self.snapshot.to_dict(),
            "gate": self.report.to_dict(),
            "constraints_added": list(self.constraints_added),
        }


@dataclass(frozen=True)
class LoopOutcome:
    """Result of a full run: every finished (or cancelled) pass, in order."""

    passes: tuple[PassOutcome, ...] = field(default_factory=tuple)
    cancelled: bool = False
    cancel_reason: str | None = None

    @property
    def final(self) -> PassOutcome | None:
        return self.passes[-1] if self.passes else None

    @property
    def decision(self) -> GateDecision:
        """Decision of the last pass; BLOCK when nothing ran or the run was cancelled."""
        if self.cancelled or self.final is None:
            return GateDecision.BLOCK
        return self.final.report.decision

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "cancelled": self.cancelled,
            "cancel_reason": self.cancel_reason,
            "passes": [p.to_dict() for p in self.passes],
        }


class FeedbackLoop:
    """
    Drives sequential evaluation passes over one suite.

    Usage:
        suite = load_demo_suite()
        loop = FeedbackLoop.from_suite(suite)
        policy = suite.build_policy()
        outcome = await loop.run(policy, passes=2)
        print(outcome.decision)
    """

    def __init__(
        self,
        cases: Iterable[EvaluationCase],
        backend_factory: BackendFactory,
        thresholds: GateThresholds | None = None,
        relevance_threshold: float = RELEVANCE_PASS_THRESHOLD,
        rules: tuple[FeedbackRule, ...] | None = None,
    ):
        self._cases = list(cases)
        self._backend_factory = backend_factory
        self._thresholds = thresholds or GateThresholds()
        self._relevance_threshold = relevance_threshold
        self._rules = rules

    @classmethod
    def from_suite(
        cls,
        suite: EvaluationSuiteSpec,
        settings: Settings | None = None,
        simulate_latency: bool | None = None,
    ) -> "FeedbackLoop":
        """Build a loop whose backends and thresholds come from settings."""
        settings = settings or get_settings()
        evaluation = settings.evaluation
        if simulate_latency is None:
            simulate_latency = evaluation.simulate_latency

        def backend_factory(telemetry: TelemetrySink) -> BaseBackend:
            return create_backend(
                settings.backend,
                suite.fixtures,
                telemetry=telemetry,
                simulate_latency=simulate_latency,
            )

        return cls(
            suite.cases,
            backend_factory,
            thresholds=GateThresholds(
                min_pass_rate=evaluation.min_pass_rate,
                min_average_safety=evaluation.min_average_safety,
                max_p95_latency_ms=evaluation.max_p95_latency_ms,
            ),
            relevance_threshold=evaluation.relevance_threshold,
        )

    @property
    def cases(self) -> list[EvaluationCase]:
        return list(self._cases)

    async def run_pass(
        self,
        pass_number: int,
        policy: PromptPolicy,
        cancel_token: CancellationToken | None = None,
    ) -> PassOutcome:
        """
        Run one pass with fresh telemetry.

        A cancelled pass is returned with `cancelled=True` and whatever
        results and telemetry were recorded before the signal.

        Raises:
            BackendError: If the backend fails
        """
        telemetry = TelemetrySink(name=f"pass-{pass_number}")
        feedback = FeedbackProcessor(telemetry, self._rules)
        suite = EvaluationSuite(telemetry, feedback, self._relevance_threshold)
        backend = self._backend_factory(telemetry)

        before = policy.copy()
        with PassLogContext(logger, pass_number, backend=backend.name) as log:
            log.log("Pass started", cases=len(self._cases), constraints=len(before))

            try:
                results = await suite.run(self._cases, backend, policy, cancel_token)
            except EvaluationCancelled as e:
                return self._outcome(
                    pass_number, e.results, telemetry, before, policy, cancel_reason=e.reason or "cancelled"
                )

            outcome = self._outcome(pass_number, results, telemetry, before, policy)
            log.log(
                "Pass completed",
                passed=outcome.passed_cases,
                total=len(results),
                decision=outcome.report.decision.value,
                p95_latency_ms=round(outcome.snapshot.p95_latency_ms, 1),
                constraints_added=len(outcome.constraints_added),
            )
        return outcome

    async def run(
        self,
        policy: PromptPolicy,
        passes: int = 2,
        cancel_token: CancellationToken | None = None,
    ) -> LoopOutcome:
        """
        Run `passes` passes in sequence against the same policy.

        A cancelled pass ends the run; its partial results are kept as the
        last PassOutcome and the LoopOutcome is marked cancelled.
        """
        if passes < 1:
            raise ValueError(f"passes must be at least 1, got {passes}")

        outcomes: list[PassOutcome] = []
        for pass_number in range(1, passes + 1):
            outcome = await self.run_pass(pass_number, policy, cancel_token)
            outcomes.append(outcome)
            if outcome.cancelled:
                logger.warning(
                    "Feedback loop cancelled",
                    pass_number=pass_number,
                    completed=len(outcome.results),
                    reason=outcome.cancel_reason,
                )
                return LoopOutcome(tuple(outcomes), cancelled=True, cancel_reason=outcome.cancel_reason)

        return LoopOutcome(tuple(outcomes))

    def _outcome(
        self,
        pass_number: int,
        results: list[EvaluationResult],
        telemetry: TelemetrySink,
        before: PromptPolicy,
        after: PromptPolicy,
        cancel_reason: str | None = None,
    ) -> PassOutcome:
        snapshot = telemetry.snapshot()
        added = tuple(c for c in after.constraints if c not in before)
        return PassOutcome(
            pass_number=pass_number,
            results=tuple(results),
            snapshot=snapshot,
            report=evaluate_gate(results, snapshot, self._thresholds),
            policy_before=before.compose(),
            policy_after=after.compose(),
            constraints_added=added,
            cancelled=cancel_reason is not None,
            cancel_reason=cancel_reason,
        )
