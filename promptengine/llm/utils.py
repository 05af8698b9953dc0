# Copyright (c) Meta Platforms, Inc. and affiliates.
# Modifications copyright (c) 2025 Logan Martel.
# Adapted from https://github.com/meta-pytorch/KernelAgent (Apache-2.0).

"""Utility helpers shared by provider adapters."""

from __future__ import annotations

import json
import logging

from typing import Any, Dict, Optional

import httpx

_LOGGER = logging.getLogger(__name__)


def decode_tool_arguments(arguments: Any) -> Dict[str, Any]:
    """Return tool-call arguments as a mapping.

    OpenAI-style replies carry arguments as a JSON string; others already
    send an object. Undecodable strings are kept under ``"arguments"``.
    """

    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, dict):
        return dict(arguments)
    if isinstance(arguments, str):
        try:
            decoded = json.loads(arguments)
        except json.JSONDecodeError:
            _LOGGER.warning("Tool call arguments are not valid JSON")
            return {"arguments": arguments}
        if isinstance(decoded, dict):
            return decoded
        return {"arguments": decoded}
    return {"arguments": arguments}


def build_timeout(timeout_s: Optional[float]) -> Optional[httpx.Timeout]:
    """Map a seconds value onto an ``httpx.Timeout`` (None disables it)."""

    if timeout_s is None:
        return None
    return httpx.Timeout(float(timeout_s), connect=min(float(timeout_s), 10.0))
