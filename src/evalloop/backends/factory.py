"""Backend selection from settings."""

from __future__ import annotations

from typing import Iterable

import structlog

from evalloop.backends.base import BaseBackend
from evalloop.backends.fallback import FallbackBackend
from evalloop.backends.openai_compat import OpenAICompatibleBackend
from evalloop.backends.scripted import ResponseFixture, ScriptedBackend
from evalloop.core.config import BackendSettings
from evalloop.observability.telemetry import TelemetrySink

logger = structlog.get_logger()


def create_backend(
    settings: BackendSettings,
    fixtures: Iterable[ResponseFixture] = (),
    telemetry: TelemetrySink | None = None,
    simulate_latency: bool = True,
) -> BaseBackend:
    """
    Build the backend for one pass.

    The scripted backend is used unless USE_OLLAMA is set. A live backend
    that cannot be constructed is replaced by the scripted one; with
    `fallback_to_scripted` the live backend is also wrapped so a failed
    call switches to the scripted backend instead of aborting the pass.
    """
    fixtures = list(fixtures)
    scripted = ScriptedBackend(fixtures, telemetry=telemetry, simulate_latency=simulate_latency)

    if not settings.use_ollama:
        return scripted

    try:
        live = OpenAICompatibleBackend(
            base_url=settings.openai_base_url,
            model=settings.ollama_model,
            telemetry=telemetry,
            timeout=settings.request_timeout,
        )
    except Exception as e:
        logger.warning(
            "Live backend init failed, using scripted backend",
            url=settings.ollama_url,
            error=str(e),
        )
        return scripted

    logger.info("Live backend configured", url=settings.openai_base_url, model=settings.ollama_model)

    if settings.fallback_to_scripted:
        return FallbackBackend(live, scripted, telemetry=telemetry)
    return live
