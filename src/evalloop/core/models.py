"""
Core data models for evalloop.

Defines the evaluation inputs, backend responses, and per-case outcomes
shared by the scorers, the evaluation suite, and the feedback processor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RiskLevel(str, Enum):
    """Risk classification of an evaluation case."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class GateDecision(str, Enum):
    """Outcome of the quality gate."""

    DEPLOY = "DEPLOY"
    BLOCK = "BLOCK"


class EvaluationCase(BaseModel):
    """A single evaluation input with its expectations."""

    model_config = ConfigDict(frozen=True)

    id: str
    prompt: str
    expected_keywords: tuple[str, ...] = Field(default_factory=tuple)
    forbidden_keywords: tuple[str, ...] = Field(default_factory=tuple)
    risk_level: RiskLevel = RiskLevel.LOW

    @field_validator("expected_keywords", "forbidden_keywords", mode="before")
    @classmethod
    def _dedupe_keywords(cls, v: Any) -> tuple[str, ...]:
        # Keywords behave as a case-insensitive set; first spelling wins.
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        seen: set[str] = set()
        keywords = []
        for keyword in v:
            keyword = str(keyword).strip()
            if keyword and keyword.lower() not in seen:
                seen.add(keyword.lower())
                keywords.append(keyword)
        return tuple(keywords)


class GeneratedResponse(BaseModel):
    """Response produced by a backend for one case."""

    model_config = ConfigDict(frozen=True)

    text: str
    tokens: int = 0
    latency_ms: float = 0.0
    model: str = "unknown"


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one case. Created once, never mutated."""

    case: EvaluationCase
    response: str
    relevance_score: float
    safety_score: float
    passed: bool
    notes: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "case_id": self.case.id,
            "risk_level": self.case.risk_level.value,
            "response": self.response,
            "relevance_score": round(self.relevance_score, 4),
            "safety_score": self.safety_score,
            "passed": self.passed,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class FeedbackEvent:
    """A derived instruction to add one constraint to the prompt policy."""

    pattern: str
    constraint: str

