"""
Deterministic scripted backend.

Responses come from a caller-supplied fixture table keyed by a normalized
prompt fingerprint, so the same suite always produces the same answers.
A fixture can carry variants that are chosen when the composed system
prompt contains one of their trigger phrases; this is how a suite models a
backend that reacts to constraints added by feedback.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

from evalloop.backends.base import BaseBackend, estimate_tokens
from evalloop.core.cancellation import CancellationToken
from evalloop.core.models import GeneratedResponse
from evalloop.observability.telemetry import TelemetrySink

DEFAULT_FALLBACK_TEXT = "Provide concise, measurable guidance and ask for missing data if needed."


def fingerprint(prompt: str) -> str:
    """Normalize a prompt (case, whitespace) and hash it."""
    normalized = " ".join(prompt.lower().split())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


def stable_hash(text: str) -> int:
    """
    Process-independent string hash used for simulated latency.

    Accumulates in a signed 32-bit integer that wraps on overflow and
    returns its absolute value.
    """
    value = 23
    for ch in text:
        value = (value * 31 + ord(ch)) & 0xFFFFFFFF
    if value >= 2**31:
        value -= 2**32
    return abs(value)


class ResponseVariant(BaseModel):
    """Alternative response used when the system prompt contains a trigger."""

    model_config = ConfigDict(frozen=True)

    when_system_contains: tuple[str, ...]
    text: str

    def applies_to(self, system_prompt_lower: str) -> bool:
        return any(t.lower() in system_prompt_lower for t in self.when_system_contains)


class ResponseFixture(BaseModel):
    """Scripted responses for one prompt."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    default: str
    variants: tuple[ResponseVariant, ...] = Field(default_factory=tuple)

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.prompt)

    def select(self, system_prompt: str) -> str:
        """First matching variant wins, otherwise the default text."""
        system_lower = system_prompt.lower()
        for variant in self.variants:
            if variant.applies_to(system_lower):
                return variant.text
        return self.default


class ScriptedBackend(BaseBackend):
    """
    Fixture-driven stand-in for a live model.

    Latency is simulated as 40 + stable_hash(prompt) % 120 ms. With
    `simulate_latency=False` the sleep is skipped but the same latency is
    reported, which keeps tests fast without changing the telemetry shape.
    """

    name = "scripted"

    def __init__(
        self,
        fixtures: Iterable[ResponseFixture] = (),
        telemetry: TelemetrySink | None = None,
        simulate_latency: bool = True,
        fallback_text: str = DEFAULT_FALLBACK_TEXT,
    ):
        super().__init__(telemetry)
        self._fixtures = {f.fingerprint: f for f in fixtures}
        self._simulate_latency = simulate_latency
        self._fallback_text = fallback_text

    def __len__(self) -> int:
        return len(self._fixtures)

    def fixture_for(self, user_prompt: str) -> ResponseFixture | None:
        return self._fixtures.get(fingerprint(user_prompt))

    def simulated_latency_ms(self, user_prompt: str) -> int:
        return 40 + stable_hash(user_prompt) % 120

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        cancel_token: CancellationToken | None = None,
    ) -> GeneratedResponse:
        simulated_ms = self.simulated_latency_ms(user_prompt)
        if self._simulate_latency:
            if cancel_token is not None:
                await cancel_token.sleep(simulated_ms / 1000)
            else:
                await asyncio.sleep(simulated_ms / 1000)
        elif cancel_token is not None:
            cancel_token.raise_if_cancelled()

        start = time.perf_counter()
        fixture = self.fixture_for(user_prompt)
        text = fixture.select(system_prompt) if fixture else self._fallback_text
        latency_ms = simulated_ms + (time.perf_counter() - start) * 1000

        self._record_span("llm.scripted", latency_ms, {"model": self.name})

        return GeneratedResponse(
            text=text,
            tokens=estimate_tokens(text),
            latency_ms=latency_ms,
            model=self.name,
        )
