"""
Prompt policy: a base instruction plus an ordered, deduplicated set of
behavioral constraints composed into the outgoing system prompt.
"""

from __future__ import annotations

from typing import Any

import structlog

logger = structlog.get_logger()


class PromptPolicy:
    """
    Base system prompt with accumulated constraints.

    Constraints are unique under case-insensitive comparison and keep
    insertion order. The policy is shared across evaluation passes, so
    feedback applied in one pass is visible to every later call.

    Example:
        policy = PromptPolicy("You are a production AI assistant.")
        policy.add_constraint("Keep responses under 6 sentences.")
        print(policy.compose())
    """

    CONSTRAINTS_HEADER = "Constraints:"

    def __init__(self, base_system_prompt: str, constraints: list[str] | None = None):
        self._base_system_prompt = base_system_prompt
        self._constraints: list[str] = []
        for constraint in constraints or []:
            self.add_constraint(constraint)

    @property
    def base_system_prompt(self) -> str:
        return self._base_system_prompt

    @property
    def constraints(self) -> tuple[str, ...]:
        return tuple(self._constraints)

    def __len__(self) -> int:
        return len(self._constraints)

    def __contains__(self, constraint: object) -> bool:
        if not isinstance(constraint, str):
            return False
        key = constraint.strip().lower()
        return any(c.lower() == key for c in self._constraints)

    def add_constraint(self, constraint: str) -> bool:
        """
        Add a constraint unless it is blank or already present.

        Returns:
            True if the constraint was appended
        """
        if constraint is None or not constraint.strip():
            return False

        constraint = constraint.strip()
        if constraint in self:
            return False

        self._constraints.append(constraint)
        logger.debug("Constraint added", constraint=constraint, total=len(self._constraints))
        return True

    def compose(self) -> str:
        """Render the system prompt sent with every backend call."""
        if not self._constraints:
            return self._base_system_prompt

        lines = "\n".join(f"- {c}" for c in self._constraints)
        return f"{self._base_system_prompt}\n\n{self.CONSTRAINTS_HEADER}\n{lines}"

    def copy(self) -> "PromptPolicy":
        """Independent copy, e.g. to keep a before/after snapshot."""
        return PromptPolicy(self._base_system_prompt, list(self._constraints))

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_system_prompt": self._base_system_prompt,
            "constraints": list(self._constraints),
        }
