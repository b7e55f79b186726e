"""
Suite files: cases, base instruction, seed constraints, and scripted
response fixtures in one YAML document.

Example:
    name: observability-demo
    base_system_prompt: You are a production AI assistant.
    constraints:
      - Keep responses under 6 sentences.
    cases:
      - id: EVAL-OBS-001
        prompt: How do I instrument an AI service for observability?
        expected_keywords: [trace, metrics, logs, latency]
        forbidden_keywords: [password, api key]
        risk_level: low
    fixtures:
      - prompt: How do I instrument an AI service for observability?
        default: Use traces, metrics, and logs...
        variants:
          - when_system_contains: [evaluation]
            text: ...
"""

from __future__ import annotations

from importlib import resources
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from evalloop.backends.scripted import ResponseFixture
from evalloop.core.models import EvaluationCase
from evalloop.prompts.policy import PromptPolicy

logger = structlog.get_logger()

DEMO_SUITE_RESOURCE = "demo_suite.yaml"


class SuiteLoadError(Exception):
    """Raised when a suite file is missing or invalid."""


class EvaluationSuiteSpec(BaseModel):
    """Parsed contents of a suite file."""

    model_config = ConfigDict(frozen=True)

    name: str = "suite"
    description: str | None = None
    base_system_prompt: str
    constraints: tuple[str, ...] = Field(default_factory=tuple)
    cases: tuple[EvaluationCase, ...]
    fixtures: tuple[ResponseFixture, ...] = Field(default_factory=tuple)

    def build_policy(self) -> PromptPolicy:
        """Fresh policy seeded with the suite's constraints."""
        return PromptPolicy(self.base_system_prompt, list(self.constraints))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EvaluationSuiteSpec":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SuiteLoadError(f"Invalid suite: {e}") from e


def load_suite(path: str | Path) -> EvaluationSuiteSpec:
    """Load a suite from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise SuiteLoadError(f"Suite file not found: {path}")

    with open(path, encoding="utf-8") as f:
        text = f.read()

    suite = _parse(text, source=str(path))
    logger.debug("Suite loaded", path=str(path), cases=len(suite.cases))
    return suite


def load_demo_suite() -> EvaluationSuiteSpec:
    """Load the suite bundled with the package."""
    text = resources.files("evalloop.data").joinpath(DEMO_SUITE_RESOURCE).read_text(encoding="utf-8")
    return _parse(text, source=DEMO_SUITE_RESOURCE)


def _parse(text: str, source: str) -> EvaluationSuiteSpec:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SuiteLoadError(f"Cannot parse {source}: {e}") from e

    if not isinstance(data, dict):
        raise SuiteLoadError(f"{source} must contain a mapping at the top level")

    return EvaluationSuiteSpec.from_dict(data)
