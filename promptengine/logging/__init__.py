"""Logging utilities."""

from .utils import redact, setup_file_logger, truncate

__all__ = [
    "redact",
    "setup_file_logger",
    "truncate",
]
