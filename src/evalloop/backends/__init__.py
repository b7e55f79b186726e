"""Response backends: scripted stand-in, live OpenAI-compatible, fallback."""

from evalloop.backends.base import (
    BackendError,
    BackendResponseError,
    BackendUnavailableError,
    BaseBackend,
    estimate_tokens,
)
from evalloop.backends.fallback import FallbackBackend
from evalloop.backends.openai_compat import OpenAICompatibleBackend
from evalloop.backends.scripted import (
    ResponseFixture,
    ResponseVariant,
    ScriptedBackend,
    fingerprint,
)
from evalloop.backends.factory import create_backend

__all__ = [
    "BackendError",
    "BackendResponseError",
    "BackendUnavailableError",
    "BaseBackend",
    "estimate_tokens",
    "FallbackBackend",
    "OpenAICompatibleBackend",
    "ResponseFixture",
    "ResponseVariant",
    "ScriptedBackend",
    "fingerprint",
    "create_backend",
]
