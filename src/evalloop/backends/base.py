"""
Base backend interface for response generation.

All backend implementations must inherit from BaseBackend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from evalloop.core.cancellation import CancellationToken
from evalloop.core.models import GeneratedResponse
from evalloop.observability.telemetry import TelemetrySink


class BackendError(Exception):
    """Base exception for backend failures."""

    def __init__(
        self,
        message: str,
        backend: str | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.backend = backend
        self.status_code = status_code
        self.retryable = retryable


class BackendUnavailableError(BackendError):
    """Raised when the backend cannot be reached."""

    def __init__(self, message: str, backend: str | None = None):
        super().__init__(message, backend, status_code=None, retryable=True)


class BackendResponseError(BackendError):
    """Raised when the backend answers with an error status."""


class BaseBackend(ABC):
    """
    Abstract base class for response backends.

    Implementations produce one GeneratedResponse per call and may record
    their own spans into the telemetry sink they were created with.
    """

    name: str = "backend"

    def __init__(self, telemetry: TelemetrySink | None = None, **kwargs: Any):
        self._telemetry = telemetry

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        cancel_token: CancellationToken | None = None,
    ) -> GeneratedResponse:
        """
        Generate a response.

        Args:
            system_prompt: Composed instruction text
            user_prompt: The case prompt
            cancel_token: Cancellation signal checked during the call

        Returns:
            GeneratedResponse with text, token estimate, latency, and model

        Raises:
            BackendError: If no response could be produced
        """
        ...

    def _record_span(self, name: str, latency_ms: float, tags: dict[str, str]) -> None:
        if self._telemetry is not None:
            self._telemetry.record_span(name, latency_ms, tags)


def estimate_tokens(text: str) -> int:
    """Rough token estimate: four characters per token, at least one."""
    return max(1, len(text) // 4)
