#!/usr/bin/env python3
"""
Basic usage examples for evalloop.

Runs the bundled suite through the feedback loop, then shows how to drive a
single pass by hand with your own cases and backend.
"""

import asyncio

from evalloop import (
    EvaluationCase,
    EvaluationSuite,
    FeedbackLoop,
    FeedbackProcessor,
    PromptPolicy,
    ScriptedBackend,
    TelemetrySink,
    evaluate_gate,
    load_demo_suite,
)
from evalloop.backends import ResponseFixture, ResponseVariant
from evalloop.utils import setup_logging


async def demo_loop():
    """Two passes over the bundled suite."""
    print("\n=== Feedback Loop ===\n")

    suite = load_demo_suite()
    policy = suite.build_policy()
    loop = FeedbackLoop.from_suite(suite, simulate_latency=False)

    outcome = await loop.run(policy, passes=2)

    for p in outcome.passes:
        print(f"Pass {p.pass_number}: {p.passed_cases}/{len(p.results)} passed -> {p.report.decision.value}")
        for constraint in p.constraints_added:
            print(f"  learned: {constraint}")

    print(f"\nFinal system prompt:\n{policy.compose()}")


async def single_pass():
    """One pass with hand-written cases and fixtures."""
    print("\n=== Single Pass ===\n")

    cases = [
        EvaluationCase(
            id="OPS-1",
            prompt="How do we roll out a new model?",
            expected_keywords=["canary", "rollback"],
            risk_level="medium",
        ),
    ]
    fixtures = [
        ResponseFixture(
            prompt="How do we roll out a new model?",
            default="Ship it on Friday.",
            variants=[
                ResponseVariant(
                    when_system_contains=["rollback"],
                    text="Start with a canary and keep a rollback ready.",
                ),
            ],
        ),
    ]

    telemetry = TelemetrySink()
    backend = ScriptedBackend(fixtures, telemetry=telemetry, simulate_latency=False)
    suite = EvaluationSuite(telemetry, FeedbackProcessor(telemetry))
    policy = PromptPolicy("You are a release engineer.")

    for attempt in (1, 2):
        results = await suite.run(cases, backend, policy)
        report = evaluate_gate(results, telemetry.snapshot())
        print(f"Attempt {attempt}: relevance={results[0].relevance_score:.2f} gate={report.decision.value}")


async def main():
    setup_logging(level="WARNING")
    await demo_loop()
    await single_pass()


if __name__ == "__main__":
    asyncio.run(main())
