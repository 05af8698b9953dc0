# Copyright (c) Meta Platforms, Inc. and affiliates.
# Modifications copyright (c) 2025 Logan Martel.
# Adapted from https://github.com/meta-pytorch/KernelAgent (Apache-2.0).

"""Logging helpers (redaction, truncation, rotating logs)."""

from __future__ import annotations

import logging

from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable

_REDACT_KEYS = {
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "RELAY_API_KEY",
}

DEFAULT_TRUNCATE = 2000


def redact(text: str, secrets: Iterable[str] = ()) -> str:
    """Scrub key names and known secret values from ``text``."""

    if not text:
        return ""
    cleaned = text
    for key in _REDACT_KEYS:
        if key in cleaned:
            cleaned = cleaned.replace(key, "<REDACTED_KEY>")
    for secret in secrets:
        if secret and secret in cleaned:
            cleaned = cleaned.replace(secret, "<REDACTED>")
    return cleaned


def truncate(text: str, limit: int = DEFAULT_TRUNCATE) -> str:
    """Clip ``text`` to ``limit`` characters, marking the cut."""

    if len(text) <= limit:
        return text
    return f"{text[:limit]}... [truncated {len(text) - limit} chars]"


def setup_file_logger(
    log_file: Path, name: str = "promptengine", level: int = logging.INFO
) -> logging.Logger:
    """Configure a rotating file logger (idempotent per file)."""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    marker = str(log_file)
    if not any(
        isinstance(handler, RotatingFileHandler)
        and getattr(handler, "_tap_tag", None) == marker
        for handler in logger.handlers
    ):
        handler = RotatingFileHandler(
            log_file, maxBytes=2_000_000, backupCount=3
        )
        handler.setLevel(level)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        handler._tap_tag = marker  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
