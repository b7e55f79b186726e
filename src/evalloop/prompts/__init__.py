"""Prompt policy and feedback processing."""

from evalloop.prompts.policy import PromptPolicy
from evalloop.prompts.feedback import (
    DEFAULT_RULES,
    FailureSignature,
    FeedbackProcessor,
    FeedbackRule,
)

__all__ = [
    "PromptPolicy",
    "DEFAULT_RULES",
    "FailureSignature",
    "FeedbackProcessor",
    "FeedbackRule",
]
