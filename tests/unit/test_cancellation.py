"""Tests for CancellationToken."""

import asyncio

import pytest

from evalloop.core.cancellation import CancellationToken, EvaluationCancelled


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken.none()
        assert not token.is_cancelled
        assert token.reason is None
        token.raise_if_cancelled()

    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")

        assert token.is_cancelled
        assert token.reason == "first"
        with pytest.raises(EvaluationCancelled) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "first"

    @pytest.mark.asyncio
    async def test_with_timeout_fires(self):
        token = CancellationToken.with_timeout(0.01)
        await asyncio.sleep(0.05)

        assert token.is_cancelled
        assert "deadline" in token.reason

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        async def work():
            return 42

        assert await CancellationToken().guard(work()) == 42

    @pytest.mark.asyncio
    async def test_guard_propagates_errors(self):
        async def work():
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await CancellationToken().guard(work())

    @pytest.mark.asyncio
    async def test_guard_on_cancelled_token_does_not_start_work(self):
        started = False

        async def work():
            nonlocal started
            started = True

        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(EvaluationCancelled):
            await token.guard(work())
        assert not started

    @pytest.mark.asyncio
    async def test_sleep_interrupted(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")

        with pytest.raises(EvaluationCancelled):
            await token.sleep(5)

    def test_cancelled_exception_keeps_results(self):
        error = EvaluationCancelled("partial", results=["r1"], reason="deadline")
        assert error.results == ["r1"]
        assert str(error) == "partial"
