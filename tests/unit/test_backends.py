"""Tests for response backends."""

import httpx
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from openai import APIConnectionError, APIResponseValidationError, APIStatusError

from evalloop.backends import (
    BackendError,
    BackendResponseError,
    BackendUnavailableError,
    BaseBackend,
    FallbackBackend,
    OpenAICompatibleBackend,
    ResponseFixture,
    ResponseVariant,
    ScriptedBackend,
    create_backend,
    estimate_tokens,
    fingerprint,
)
from evalloop.backends.scripted import stable_hash
from evalloop.core.cancellation import CancellationToken, EvaluationCancelled
from evalloop.core.config import BackendSettings
from evalloop.core.models import GeneratedResponse
from evalloop.observability.telemetry import TelemetrySink

PROMPT = "Give me an ops checklist for production AI."


@pytest.fixture
def ops_fixture():
    return ResponseFixture(
        prompt=PROMPT,
        default="Just monitor it.",
        variants=[
            ResponseVariant(when_system_contains=["rollback"], text="Monitoring, alerts, rollback."),
            ResponseVariant(when_system_contains=["alerts"], text="Alerts only."),
        ],
    )


class FailingBackend(BaseBackend):
    name = "failing"

    def __init__(self, error: Exception):
        super().__init__()
        self.error = error
        self.calls = 0

    async def generate(self, system_prompt, user_prompt, cancel_token=None):
        self.calls += 1
        raise self.error


class TestFingerprint:
    def test_normalizes_case_and_whitespace(self):
        assert fingerprint("Hello   World") == fingerprint(" hello world ")

    def test_differs_for_different_prompts(self):
        assert fingerprint("a") != fingerprint("b")

    def test_stable_hash_small_values(self):
        assert stable_hash("") == 23
        assert stable_hash("a") == 810
        assert stable_hash("ab") == 25208

    def test_stable_hash_wraps_as_signed_int32(self):
        # Accumulator passes 2**31 on the last char and wraps negative
        assert stable_hash("\uffff" * 5) == 1225660792

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 1
        assert estimate_tokens("abcdefgh") == 2


class TestScriptedBackend:
    """Tests for ScriptedBackend."""

    @pytest.mark.asyncio
    async def test_default_response(self, ops_fixture):
        backend = ScriptedBackend([ops_fixture], simulate_latency=False)
        response = await backend.generate("Be helpful.", PROMPT)

        assert response.text == "Just monitor it."
        assert response.model == "scripted"
        assert response.tokens == estimate_tokens("Just monitor it.")

    @pytest.mark.asyncio
    async def test_first_matching_variant_wins(self, ops_fixture):
        backend = ScriptedBackend([ops_fixture], simulate_latency=False)
        response = await backend.generate("Include ALERTS and ROLLBACK.", PROMPT)
        assert response.text == "Monitoring, alerts, rollback."

    @pytest.mark.asyncio
    async def test_prompt_lookup_is_normalized(self, ops_fixture):
        backend = ScriptedBackend([ops_fixture], simulate_latency=False)
        response = await backend.generate("", "  give me an OPS checklist   for production AI. ")
        assert response.text == "Just monitor it."

    @pytest.mark.asyncio
    async def test_unknown_prompt_gets_fallback_text(self):
        backend = ScriptedBackend(simulate_latency=False, fallback_text="generic")
        response = await backend.generate("", "Unknown prompt")
        assert response.text == "generic"

    @pytest.mark.asyncio
    async def test_latency_is_deterministic(self, ops_fixture):
        backend = ScriptedBackend([ops_fixture], simulate_latency=False)
        first = await backend.generate("", PROMPT)
        second = await backend.generate("", PROMPT)

        expected = backend.simulated_latency_ms(PROMPT)
        assert 40 <= expected < 160
        assert first.latency_ms >= expected
        assert second.latency_ms >= expected

    @pytest.mark.asyncio
    async def test_records_span(self, ops_fixture):
        telemetry = TelemetrySink()
        backend = ScriptedBackend([ops_fixture], telemetry=telemetry, simulate_latency=False)
        await backend.generate("", PROMPT)

        assert [s.name for s in telemetry.spans] == ["llm.scripted"]

    @pytest.mark.asyncio
    async def test_cancelled_token_raises(self, ops_fixture):
        token = CancellationToken()
        token.cancel("stop")
        backend = ScriptedBackend([ops_fixture], simulate_latency=True)

        with pytest.raises(EvaluationCancelled):
            await backend.generate("", PROMPT, token)


class TestFallbackBackend:
    """Tests for FallbackBackend."""

    @pytest.mark.asyncio
    async def test_uses_primary_when_healthy(self, ops_fixture):
        primary = ScriptedBackend([ops_fixture], simulate_latency=False)
        fallback = ScriptedBackend(simulate_latency=False, fallback_text="fallback")
        backend = FallbackBackend(primary, fallback)

        response = await backend.generate("", PROMPT)
        assert response.text == "Just monitor it."
        assert not backend.engaged

    @pytest.mark.asyncio
    async def test_switches_after_failure(self):
        telemetry = TelemetrySink()
        primary = FailingBackend(BackendUnavailableError("down", backend="failing"))
        fallback = ScriptedBackend(simulate_latency=False, fallback_text="fallback")
        backend = FallbackBackend(primary, fallback, telemetry=telemetry)

        first = await backend.generate("", "a")
        second = await backend.generate("", "b")

        assert first.text == "fallback"
        assert second.text == "fallback"
        assert primary.calls == 1
        assert backend.engaged
        assert backend.active is fallback
        assert telemetry.series("backend.fallback") == [1.0]

    @pytest.mark.asyncio
    async def test_non_backend_errors_propagate(self):
        primary = FailingBackend(RuntimeError("bug"))
        backend = FallbackBackend(primary, ScriptedBackend(simulate_latency=False))

        with pytest.raises(RuntimeError):
            await backend.generate("", "a")
        assert not backend.engaged


def make_completion(content: str, completion_tokens: int | None = None):
    usage = SimpleNamespace(completion_tokens=completion_tokens) if completion_tokens else None
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


def make_backend(create: AsyncMock, telemetry: TelemetrySink | None = None) -> OpenAICompatibleBackend:
    client = MagicMock()
    client.chat.completions.create = create
    return OpenAICompatibleBackend(
        base_url="http://localhost:11434/v1",
        model="llama3.2:3b",
        telemetry=telemetry,
        client=client,
    )


class TestOpenAICompatibleBackend:
    """Tests for OpenAICompatibleBackend with a mocked client."""

    @pytest.mark.asyncio
    async def test_generate(self):
        telemetry = TelemetrySink()
        create = AsyncMock(return_value=make_completion("Use traces.", completion_tokens=7))
        backend = make_backend(create, telemetry)

        response = await backend.generate("system", "user")

        assert isinstance(response, GeneratedResponse)
        assert response.text == "Use traces."
        assert response.tokens == 7
        assert response.model == "llama3.2:3b"
        assert [s.name for s in telemetry.spans] == ["llm.ollama"]

        kwargs = create.call_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "system"},
            {"role": "user", "content": "user"},
        ]

    @pytest.mark.asyncio
    async def test_token_count_without_usage(self):
        backend = make_backend(AsyncMock(return_value=make_completion("hello world")))
        response = await backend.generate("s", "u")
        assert response.tokens >= 1

    @pytest.mark.asyncio
    async def test_generate_with_token(self):
        backend = make_backend(AsyncMock(return_value=make_completion("ok", completion_tokens=1)))
        response = await backend.generate("s", "u", CancellationToken())
        assert response.text == "ok"

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_unavailable(self):
        request = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")
        backend = make_backend(AsyncMock(side_effect=APIConnectionError(request=request)))

        with pytest.raises(BackendUnavailableError) as exc_info:
            await backend.generate("s", "u")
        assert exc_info.value.retryable
        assert exc_info.value.backend == "ollama"

    @pytest.mark.asyncio
    async def test_status_error_maps_to_response_error(self):
        request = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")
        response = httpx.Response(404, request=request)
        error = APIStatusError("model not found", response=response, body=None)
        backend = make_backend(AsyncMock(side_effect=error))

        with pytest.raises(BackendResponseError) as exc_info:
            await backend.generate("s", "u")
        assert exc_info.value.status_code == 404
        assert not exc_info.value.retryable
        assert isinstance(exc_info.value, BackendError)

    @pytest.mark.asyncio
    async def test_other_sdk_errors_map_to_backend_error(self):
        request = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")
        response = httpx.Response(200, request=request)
        error = APIResponseValidationError(response=response, body=None)
        backend = make_backend(AsyncMock(side_effect=error))

        with pytest.raises(BackendError) as exc_info:
            await backend.generate("s", "u")
        assert exc_info.value.backend == "ollama"
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_fallback_engages_on_malformed_response(self):
        request = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")
        response = httpx.Response(200, request=request)
        error = APIResponseValidationError(response=response, body=None)
        live = make_backend(AsyncMock(side_effect=error))
        backend = FallbackBackend(live, ScriptedBackend(simulate_latency=False, fallback_text="fallback"))

        result = await backend.generate("s", "u")

        assert result.text == "fallback"
        assert backend.engaged


class TestCreateBackend:
    """Tests for create_backend()."""

    def test_scripted_by_default(self):
        backend = create_backend(BackendSettings(use_ollama=False))
        assert isinstance(backend, ScriptedBackend)

    def test_live_wrapped_in_fallback(self):
        backend = create_backend(BackendSettings(use_ollama=True, fallback_to_scripted=True))
        assert isinstance(backend, FallbackBackend)
        assert isinstance(backend.primary, OpenAICompatibleBackend)
        assert backend.primary.base_url == "http://localhost:11434/v1"

    def test_live_without_fallback(self):
        settings = BackendSettings(
            use_ollama=True,
            fallback_to_scripted=False,
            ollama_url="http://ollama:11434/",
            ollama_model="qwen2.5:7b",
        )
        backend = create_backend(settings)
        assert isinstance(backend, OpenAICompatibleBackend)
        assert backend.base_url == "http://ollama:11434/v1"
        assert backend.model == "qwen2.5:7b"
