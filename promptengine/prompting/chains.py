"""Loading of prompt chain files (JSON or YAML) into templates and tools.

A chain file holds optional ``_id`` / ``_name`` / ``_description`` metadata,
a ``prompts`` list and a ``tools`` list. Keys may use either snake_case or
the camelCase spelling of exported chains (``requestFormat``,
``responseFormat``). Tool scripts embedded as strings are not executable and
are dropped; handlers are attached in code.
"""

from __future__ import annotations

import logging

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from promptengine.exceptions import ConfigurationError
from promptengine.prompting.registry import PromptRegistry
from promptengine.types import TEXT_FORMAT, PromptTemplate, ToolDefinition

_LOGGER = logging.getLogger(__name__)

ENTRY_PROMPT_NAMES = ("main", "start")


@dataclass(frozen=True)
class ChainMeta:
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class PromptChain:
    meta: ChainMeta
    prompts: Tuple[PromptTemplate, ...]
    tools: Tuple[ToolDefinition, ...] = field(default_factory=tuple)

    @property
    def entry_prompt(self) -> PromptTemplate:
        """The prompt named ``main`` or ``start``, else the first one."""

        by_name = {prompt.name: prompt for prompt in self.prompts}
        for candidate in ENTRY_PROMPT_NAMES:
            if candidate in by_name:
                return by_name[candidate]
        return self.prompts[0]


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def template_from_dict(data: Mapping[str, Any]) -> PromptTemplate:
    """Build a ``PromptTemplate`` from a chain or config entry."""

    name = data.get("name")
    if not name:
        raise ConfigurationError("Prompt entry is missing 'name'")
    response_format = _pick(data, "response_format", "responseFormat")
    if isinstance(response_format, str) and response_format != TEXT_FORMAT:
        raise ConfigurationError(
            f"Prompt '{name}': response_format must be a mapping or 'text'"
        )
    tools = data.get("tools")
    tool_refs: Optional[Tuple[str, ...]] = None
    if tools is not None:
        # Chains may reference tools by name or inline the whole definition.
        tool_refs = tuple(
            item if isinstance(item, str) else tool_from_dict(item).name
            for item in tools
        )
    return PromptTemplate(
        name=str(name),
        system=_pick(data, "system") or None,
        user=str(_pick(data, "user", default="")),
        request_format=dict(
            _pick(data, "request_format", "requestFormat", default={})
        ),
        response_format=response_format,
        tools=tool_refs,
        description=str(_pick(data, "description", default="")),
    )


def tool_from_dict(data: Mapping[str, Any]) -> ToolDefinition:
    """Build a ``ToolDefinition`` from either the flat or wrapped layout.

    Accepts ``{"name": ..., "parameters": ...}`` as well as the
    ``{"type": "function", "function": {...}}`` wrapper.
    """

    function = data.get("function")
    spec: Mapping[str, Any] = (
        function if isinstance(function, Mapping) else data
    )
    name = spec.get("name")
    if not name:
        raise ConfigurationError("Tool entry is missing 'name'")
    parameters = dict(
        spec.get("parameters") or {"type": "object", "properties": {}}
    )
    parameters.setdefault("properties", {})
    if spec.get("script"):
        _LOGGER.debug("Dropping embedded script for tool '%s'", name)
    return ToolDefinition(
        name=str(name),
        description=str(spec.get("description") or ""),
        parameters=parameters,
    )


def parse_prompt_chain(raw: Mapping[str, Any]) -> PromptChain:
    prompts = tuple(
        template_from_dict(item) for item in raw.get("prompts") or []
    )
    if not prompts:
        raise ConfigurationError("Prompt chain defines no prompts")
    tools = tuple(tool_from_dict(item) for item in raw.get("tools") or [])
    inline_tools: Dict[str, ToolDefinition] = {}
    for item in raw.get("prompts") or []:
        for tool in item.get("tools") or []:
            if isinstance(tool, Mapping):
                definition = tool_from_dict(tool)
                inline_tools.setdefault(definition.name, definition)
    known = {tool.name for tool in tools}
    tools += tuple(t for n, t in inline_tools.items() if n not in known)
    meta = ChainMeta(
        id=raw.get("_id"),
        name=raw.get("_name"),
        description=raw.get("_description"),
        source=raw.get("_source"),
    )
    return PromptChain(meta=meta, prompts=prompts, tools=tools)


def load_prompt_chain(path: Path) -> PromptChain:
    """Read and parse a chain file; JSON is accepted as a YAML subset."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Prompt chain file '{path}' not found.")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Failed to parse prompt chain '{path}': {exc}"
        ) from exc
    if not isinstance(raw, Mapping):
        raise ConfigurationError(
            f"Prompt chain '{path}' must contain a mapping"
        )
    chain = parse_prompt_chain(raw)
    _LOGGER.info(
        "Loaded prompt chain %s (%d prompts, %d tools)",
        chain.meta.name or path.name,
        len(chain.prompts),
        len(chain.tools),
    )
    return chain


def register_chain(
    registry: PromptRegistry, chain: PromptChain, *, replace: bool = True
) -> None:
    for template in chain.prompts:
        registry.register(template, replace=replace)
