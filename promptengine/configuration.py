"""Typed helpers for parsing prompt engine configuration dictionaries."""

from __future__ import annotations

import logging

from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from promptengine.exceptions import ConfigurationError
from promptengine.prompting.builder import SafetyLevel
from promptengine.prompting.chains import template_from_dict, tool_from_dict
from promptengine.types import PromptTemplate, ToolDefinition

DEFAULT_CONFIG_PATH = Path("configs/default_config.yaml")


def _ensure_path(value: str | Path, *, config_root: Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (config_root / path).resolve()
    return path


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


@dataclass(frozen=True)
class ProviderSettings:
    name: str
    kind: Optional[str] = None
    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key_env: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout_s: float = 120.0
    max_retries: int = 0
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    reply: Optional[str] = None

    @property
    def default_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        if self.temperature is not None:
            options["temperature"] = self.temperature
        if self.max_tokens is not None:
            options["max_tokens"] = self.max_tokens
        return options


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    file: Optional[Path] = None

    @property
    def level_value(self) -> int:
        value = logging.getLevelName(self.level.upper())
        if not isinstance(value, int):
            raise ConfigurationError(f"Unknown log level '{self.level}'")
        return value


@dataclass(frozen=True)
class EngineSettings:
    providers: Tuple[ProviderSettings, ...]
    default_provider: Optional[str] = None
    prompts: Tuple[PromptTemplate, ...] = field(default_factory=tuple)
    tools: Tuple[ToolDefinition, ...] = field(default_factory=tuple)
    prompt_chains: Tuple[Path, ...] = field(default_factory=tuple)
    response_format_hint: bool = True
    safety_level: Optional[SafetyLevel] = None
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def build_provider_settings(entry: Dict[str, Any]) -> ProviderSettings:
    name = entry.get("name") or entry.get("kind")
    if not name:
        raise ConfigurationError("Provider entry needs a 'name' or 'kind'")
    headers = entry.get("headers") or {}
    if not isinstance(headers, dict):
        raise ConfigurationError(f"Provider '{name}': headers must be a map")
    return ProviderSettings(
        name=str(name),
        kind=entry.get("kind"),
        model=entry.get("model"),
        base_url=entry.get("base_url"),
        api_key_env=entry.get("api_key_env"),
        headers={str(k): str(v) for k, v in headers.items()},
        timeout_s=float(entry.get("timeout_s", 120)),
        max_retries=int(entry.get("max_retries", 0)),
        temperature=_optional_float(entry.get("temperature")),
        max_tokens=_optional_int(entry.get("max_tokens")),
        reply=entry.get("reply"),
    )


def build_engine_settings(
    config: Dict[str, Any], *, config_root: Path
) -> EngineSettings:
    engine_cfg = deepcopy(config.get("engine") or {})

    providers = tuple(
        build_provider_settings(entry)
        for entry in engine_cfg.get("providers") or []
    )
    if not providers:
        raise ConfigurationError("engine.providers must list at least one")
    names = [provider.name for provider in providers]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate provider names: {duplicates}")

    default_provider = engine_cfg.get("default_provider")
    if default_provider and default_provider not in names:
        raise ConfigurationError(
            f"default_provider '{default_provider}' is not configured"
        )

    chains_value = engine_cfg.get("prompt_chains") or []
    if isinstance(chains_value, (str, Path)):
        chains_value = [chains_value]
    prompt_chains = tuple(
        _ensure_path(item, config_root=config_root) for item in chains_value
    )

    logging_cfg = engine_cfg.get("logging") or {}
    log_file = logging_cfg.get("file")
    logging_settings = LoggingSettings(
        level=str(logging_cfg.get("level", "INFO")),
        file=_ensure_path(log_file, config_root=config_root)
        if log_file
        else None,
    )

    safety_level = engine_cfg.get("safety_level")
    if safety_level not in (None, "strict", "flexible"):
        raise ConfigurationError(
            "safety_level must be 'strict' or 'flexible', "
            f"got {safety_level!r}"
        )

    return EngineSettings(
        providers=providers,
        default_provider=default_provider,
        prompts=tuple(
            template_from_dict(item)
            for item in engine_cfg.get("prompts") or []
        ),
        tools=tuple(
            tool_from_dict(item) for item in engine_cfg.get("tools") or []
        ),
        prompt_chains=prompt_chains,
        response_format_hint=bool(
            engine_cfg.get("response_format_hint", True)
        ),
        safety_level=safety_level,
        logging=logging_settings,
    )


def load_config(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(f"Config file '{config_path}' not found.")
    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Config file '{config_path}' is not valid YAML: {exc}"
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file '{config_path}' is not a map")
    return data


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "LoggingSettings",
    "ProviderSettings",
    "build_engine_settings",
    "build_provider_settings",
    "load_config",
]
