"""Utility modules for evalloop."""

from evalloop.utils.logging import PassLogContext, get_logger, setup_logging

__all__ = [
    "PassLogContext",
    "get_logger",
    "setup_logging",
]
