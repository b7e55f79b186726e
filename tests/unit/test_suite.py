"""Tests for EvaluationSuite."""

import asyncio

import pytest

from evalloop.backends.base import BackendUnavailableError, BaseBackend
from evalloop.backends.scripted import ResponseFixture, ResponseVariant, ScriptedBackend
from evalloop.core.cancellation import CancellationToken, EvaluationCancelled
from evalloop.core.models import EvaluationCase, GeneratedResponse, RiskLevel
from evalloop.evaluation.suite import GATE_FAILED_NOTE, EvaluationSuite
from evalloop.observability.telemetry import TelemetrySink
from evalloop.prompts.feedback import OPERATIONS_CONSTRAINT, FeedbackProcessor
from evalloop.prompts.policy import PromptPolicy


class RecordingBackend(BaseBackend):
    """Returns fixed text and remembers every system prompt it saw."""

    name = "recording"

    def __init__(self, text: str = "", telemetry=None):
        super().__init__(telemetry)
        self.text = text
        self.system_prompts: list[str] = []

    async def generate(self, system_prompt, user_prompt, cancel_token=None):
        self.system_prompts.append(system_prompt)
        return GeneratedResponse(text=self.text, tokens=3, latency_ms=12.0, model="recording")


def make_suite(telemetry: TelemetrySink | None = None) -> EvaluationSuite:
    telemetry = telemetry or TelemetrySink()
    return EvaluationSuite(telemetry, FeedbackProcessor(telemetry))


def case(case_id: str, expected, forbidden=(), risk=RiskLevel.LOW, prompt=None) -> EvaluationCase:
    return EvaluationCase(
        id=case_id,
        prompt=prompt or f"prompt for {case_id}",
        expected_keywords=list(expected),
        forbidden_keywords=list(forbidden),
        risk_level=risk,
    )


class TestEvaluationSuite:
    """Tests for EvaluationSuite.run()."""

    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        backend = RecordingBackend("alpha beta")
        cases = [case("A", ["alpha"]), case("B", ["beta"]), case("C", ["gamma"])]

        results = await make_suite().run(cases, backend, PromptPolicy("base"))

        assert [r.case.id for r in results] == ["A", "B", "C"]
        assert [r.passed for r in results] == [True, True, False]

    @pytest.mark.asyncio
    async def test_relevance_threshold_boundary(self):
        # 7 of 10 keywords is exactly 0.70 and passes; 6 of 10 fails
        keywords = [f"kw{i}x" for i in range(10)]
        seven = " ".join(keywords[:7])
        six = " ".join(keywords[:6])

        passing = await make_suite().run([case("P", keywords)], RecordingBackend(seven), PromptPolicy("b"))
        failing = await make_suite().run([case("F", keywords)], RecordingBackend(six), PromptPolicy("b"))

        assert passing[0].relevance_score == pytest.approx(0.7)
        assert passing[0].passed
        assert not failing[0].passed
        assert failing[0].notes[-1] == GATE_FAILED_NOTE

    @pytest.mark.asyncio
    async def test_safety_failure_overrides_relevance(self):
        backend = RecordingBackend("trace and the password")
        results = await make_suite().run(
            [case("S", ["trace"], ["password"])], backend, PromptPolicy("b")
        )

        result = results[0]
        assert result.relevance_score == 1.0
        assert result.safety_score == 0.0
        assert not result.passed
        assert result.notes == (
            "Contains forbidden keywords: password",
            GATE_FAILED_NOTE,
        )

    @pytest.mark.asyncio
    async def test_feedback_visible_to_next_case(self):
        backend = RecordingBackend("nothing useful")
        policy = PromptPolicy("base")
        cases = [
            case("OPS", ["monitoring", "alerts", "evaluation", "rollback"], risk=RiskLevel.MEDIUM),
            case("NEXT", []),
        ]

        await make_suite().run(cases, backend, policy)

        assert backend.system_prompts[0] == "base"
        assert OPERATIONS_CONSTRAINT in backend.system_prompts[1]

    @pytest.mark.asyncio
    async def test_scripted_backend_reacts_within_pass(self):
        fixtures = [
            ResponseFixture(prompt="first", default="hope"),
            ResponseFixture(
                prompt="second",
                default="hope",
                variants=[ResponseVariant(
                    when_system_contains=["include monitoring, alerts, evaluation, and rollback"],
                    text="monitoring alerts evaluation rollback",
                )],
            ),
        ]
        backend = ScriptedBackend(fixtures, simulate_latency=False)
        expected = ["monitoring", "alerts", "evaluation", "rollback"]
        cases = [case("1", expected, prompt="first"), case("2", expected, prompt="second")]

        results = await make_suite().run(cases, backend, PromptPolicy("base"))

        assert [r.passed for r in results] == [False, True]

    @pytest.mark.asyncio
    async def test_records_telemetry(self):
        telemetry = TelemetrySink()
        backend = RecordingBackend("x")
        await make_suite(telemetry).run([case("A", ["x"], risk=RiskLevel.HIGH)], backend, PromptPolicy("b"))

        span = telemetry.spans[0]
        assert span.name == "llm.generate"
        assert span.tags == {"case_id": "A", "risk": "high", "model": "recording"}
        assert telemetry.series("llm.model_latency_ms") == [12.0]
        assert telemetry.series("tokens") == [3.0]
        assert len(telemetry.series("eval.wall_ms")) == 1

    @pytest.mark.asyncio
    async def test_empty_cases(self):
        results = await make_suite().run([], RecordingBackend(), PromptPolicy("b"))
        assert results == []

    @pytest.mark.asyncio
    async def test_backend_error_propagates(self):
        class DownBackend(BaseBackend):
            name = "down"

            async def generate(self, system_prompt, user_prompt, cancel_token=None):
                raise BackendUnavailableError("connection refused", backend="down")

        with pytest.raises(BackendUnavailableError):
            await make_suite().run([case("A", ["x"])], DownBackend(), PromptPolicy("b"))


class TestCancellation:
    """Cancellation during a pass."""

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        token = CancellationToken()
        token.cancel("stop")

        with pytest.raises(EvaluationCancelled) as exc_info:
            await make_suite().run([case("A", ["x"])], RecordingBackend("x"), PromptPolicy("b"), token)

        assert exc_info.value.results == []
        assert exc_info.value.reason == "stop"

    @pytest.mark.asyncio
    async def test_partial_results_and_mutations_kept(self):
        token = CancellationToken()

        class CancelAfterFirst(RecordingBackend):
            async def generate(self, system_prompt, user_prompt, cancel_token=None):
                response = await super().generate(system_prompt, user_prompt, cancel_token)
                if len(self.system_prompts) == 1:
                    token.cancel("operator")
                return response

        policy = PromptPolicy("base")
        cases = [
            case("OPS", ["monitoring"], risk=RiskLevel.MEDIUM),
            case("B", ["x"]),
            case("C", ["x"]),
        ]

        with pytest.raises(EvaluationCancelled) as exc_info:
            await make_suite().run(cases, CancelAfterFirst("nothing"), policy, token)

        assert [r.case.id for r in exc_info.value.results] == ["OPS"]
        assert OPERATIONS_CONSTRAINT in policy

    @pytest.mark.asyncio
    async def test_in_flight_call_is_interrupted(self):
        fixtures = [ResponseFixture(prompt="slow", default="x")]
        backend = ScriptedBackend(fixtures, simulate_latency=True)
        token = CancellationToken()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel("deadline")

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(EvaluationCancelled) as exc_info:
            await make_suite().run([case("A", ["x"], prompt="slow")], backend, PromptPolicy("b"), token)
        await canceller

        assert exc_info.value.results == []
        assert exc_info.value.reason == "deadline"
