"""
Live backend for OpenAI-compatible chat endpoints.

Used with Ollama's `/v1` API by default, but any server speaking the
OpenAI chat completions protocol works.
"""

from __future__ import annotations

import time
from typing import Any

import structlog
import tiktoken
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI

from evalloop.backends.base import (
    BackendError,
    BackendResponseError,
    BackendUnavailableError,
    BaseBackend,
    estimate_tokens,
)
from evalloop.core.cancellation import CancellationToken
from evalloop.core.models import GeneratedResponse
from evalloop.observability.telemetry import TelemetrySink

logger = structlog.get_logger()


class OpenAICompatibleBackend(BaseBackend):
    """
    Chat backend built on the openai SDK.

    Example:
        backend = OpenAICompatibleBackend(
            base_url="http://localhost:11434/v1",
            model="llama3.2:3b",
        )
        response = await backend.generate(policy.compose(), "Hello")
    """

    name = "ollama"

    def __init__(
        self,
        base_url: str,
        model: str,
        telemetry: TelemetrySink | None = None,
        api_key: str = "ollama",
        timeout: float = 120.0,
        client: AsyncOpenAI | None = None,
        **kwargs: Any,
    ):
        super().__init__(telemetry, **kwargs)
        self.model = model
        self.base_url = base_url
        self.client = client or AsyncOpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
        )
        self._tokenizer: tiktoken.Encoding | None = None

    def count_tokens(self, text: str) -> int:
        """Count tokens with cl100k_base, falling back to the length heuristic."""
        try:
            if self._tokenizer is None:
                self._tokenizer = tiktoken.get_encoding("cl100k_base")
            return max(1, len(self._tokenizer.encode(text)))
        except Exception as e:
            logger.debug("Tokenizer unavailable", error=str(e))
            return estimate_tokens(text)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        cancel_token: CancellationToken | None = None,
    ) -> GeneratedResponse:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        start = time.perf_counter()
        request = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            stream=False,
        )

        try:
            if cancel_token is not None:
                response = await cancel_token.guard(request)
            else:
                response = await request
        except APIConnectionError as e:
            raise BackendUnavailableError(
                f"Cannot reach {self.base_url}: {e}", backend=self.name
            ) from e
        except APIStatusError as e:
            raise BackendResponseError(
                str(e),
                backend=self.name,
                status_code=e.status_code,
                retryable=e.status_code >= 500,
            ) from e
        except APIError as e:
            raise BackendError(str(e), backend=self.name) from e

        latency_ms = (time.perf_counter() - start) * 1000

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""

        if response.usage and response.usage.completion_tokens:
            tokens = response.usage.completion_tokens
        else:
            tokens = self.count_tokens(text)

        self._record_span("llm.ollama", latency_ms, {"model": self.model})

        return GeneratedResponse(
            text=text,
            tokens=tokens,
            latency_ms=latency_ms,
            model=self.model,
        )
