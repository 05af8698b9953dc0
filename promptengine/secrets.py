"""Secrets stores consumed by provider adapters for auth material."""

from __future__ import annotations

import os

from typing import Mapping, Optional, Protocol

from dotenv import load_dotenv

_DOTENV_LOADED = False


class SecretsStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...


class EnvSecretsStore:
    """Reads secrets from the environment, loading ``.env`` once."""

    def __init__(self, *, load_env_file: bool = True) -> None:
        if load_env_file:
            _ensure_dotenv()

    def get(self, key: str) -> Optional[str]:
        return os.getenv(key)


class StaticSecretsStore:
    """Fixed in-memory mapping; handy for tests and embedding callers."""

    def __init__(self, values: Optional[Mapping[str, str]] = None) -> None:
        self._values = dict(values or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)


def _ensure_dotenv() -> None:
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    load_dotenv()
    _DOTENV_LOADED = True
