"""
Cooperative cancellation for evaluation passes.

A pass checks its token before every backend call and races in-flight
backend awaits against it. Cancelling aborts the remaining cases; work
already recorded is kept.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, TypeVar

import structlog

from evalloop.core.models import EvaluationResult

logger = structlog.get_logger()

T = TypeVar("T")


class EvaluationCancelled(Exception):
    """Raised when a pass is aborted by its cancellation token."""

    def __init__(
        self,
        message: str = "Evaluation cancelled",
        results: list[EvaluationResult] | None = None,
        reason: str | None = None,
    ):
        super().__init__(message)
        self.results: list[EvaluationResult] = list(results or [])
        self.reason = reason


class CancellationToken:
    """
    A single cancellation signal shared by one evaluation pass.

    Usage:
        token = CancellationToken.with_timeout(30.0)
        results = await suite.run(cases, backend, policy, token)
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._timer: asyncio.TimerHandle | None = None

    @classmethod
    def none(cls) -> "CancellationToken":
        """A token that is never cancelled unless asked to."""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        """Create a token that cancels itself after a deadline.

        Must be called from inside a running event loop.
        """
        token = cls()
        loop = asyncio.get_running_loop()
        token._timer = loop.call_later(seconds, token.cancel, f"deadline of {seconds}s exceeded")
        return token

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Signal cancellation. Later calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.info("Cancellation requested", reason=reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise EvaluationCancelled(reason=self._reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the token fires first.

        The pending work is cancelled and EvaluationCancelled is raised
        if the token wins the race.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise EvaluationCancelled(reason=self._reason)

        work: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        raise EvaluationCancelled(reason=self._reason)

    async def sleep(self, seconds: float) -> None:
        """Sleep for `seconds`, raising EvaluationCancelled if cancelled meanwhile."""
        await self.guard(asyncio.sleep(seconds))
