"""
Fallback wrapper used at bootstrap.

Not part of the evaluation loop itself: the loop propagates backend
failures, and this wrapper is how a caller chooses to substitute a
deterministic backend instead of letting the pass abort.
"""

from __future__ import annotations

import structlog

from evalloop.backends.base import BackendError, BaseBackend
from evalloop.core.cancellation import CancellationToken
from evalloop.core.models import GeneratedResponse
from evalloop.observability.telemetry import TelemetrySink

logger = structlog.get_logger()


class FallbackBackend(BaseBackend):
    """
    Delegates to `primary` until it raises BackendError, then switches to
    `fallback` for the failed call and every call after it.
    """

    name = "fallback"

    def __init__(
        self,
        primary: BaseBackend,
        fallback: BaseBackend,
        telemetry: TelemetrySink | None = None,
    ):
        super().__init__(telemetry)
        self.primary = primary
        self.fallback = fallback
        self._engaged = False

    @property
    def engaged(self) -> bool:
        """True once the fallback has taken over."""
        return self._engaged

    @property
    def active(self) -> BaseBackend:
        return self.fallback if self._engaged else self.primary

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        cancel_token: CancellationToken | None = None,
    ) -> GeneratedResponse:
        if not self._engaged:
            try:
                return await self.primary.generate(system_prompt, user_prompt, cancel_token)
            except BackendError as e:
                self._engaged = True
                logger.warning(
                    "Backend failed, switching to fallback",
                    primary=self.primary.name,
                    fallback=self.fallback.name,
                    error=str(e),
                )
                if self._telemetry is not None:
                    self._telemetry.record_metric("backend.fallback", 1)

        return await self.fallback.generate(system_prompt, user_prompt, cancel_token)
