"""Assembles the system prompt from prioritized sections."""

from __future__ import annotations

import json
import logging

from dataclasses import dataclass
from typing import Any, Callable, List, Literal, Sequence, Union

from promptengine.types import ResponseFormat, ToolDefinition

_LOGGER = logging.getLogger(__name__)

SafetyLevel = Literal["strict", "flexible"]

SECTION_SAFETY = "safety"
SECTION_TOOLING = "tooling"
SECTION_TEMPLATE = "template-system"
SECTION_RESPONSE_FORMAT = "response-format"

_STRICT_SAFETY = """## Safety
1. Prioritize human oversight and safety.
2. Do not attempt to bypass safety constraints.
3. Do not generate harmful or malicious content.
4. If a request is ambiguous, ask for clarification."""

_FLEXIBLE_SAFETY = """## Safety
Operate with standard safety protocols. Prioritize user intent while \
maintaining system integrity."""


@dataclass(frozen=True)
class PromptSection:
    id: str
    priority: int
    content: Union[str, Callable[[], str]]


class PromptBuilder:
    """Collects sections and joins them highest priority first.

    A builder is created per execution; it is not shared between calls.
    """

    def __init__(self) -> None:
        self._sections: List[PromptSection] = []

    def add_section(self, section: PromptSection) -> "PromptBuilder":
        """Add ``section``, replacing an existing one with the same id."""

        for index, existing in enumerate(self._sections):
            if existing.id == section.id:
                self._sections[index] = section
                return self
        self._sections.append(section)
        return self

    def add_text(self, section_id: str, priority: int, content: str):
        return self.add_section(PromptSection(section_id, priority, content))

    def add_tool_definitions(
        self, tools: Sequence[ToolDefinition], priority: int = 80
    ) -> "PromptBuilder":
        if tools:
            self.add_text(SECTION_TOOLING, priority, tooling_section(tools))
        return self

    def add_response_format(
        self, response_format: ResponseFormat, priority: int = 10
    ) -> "PromptBuilder":
        if isinstance(response_format, dict):
            self.add_text(
                SECTION_RESPONSE_FORMAT,
                priority,
                response_format_section(response_format),
            )
        return self

    def set_safety_level(
        self, level: SafetyLevel, priority: int = 90
    ) -> "PromptBuilder":
        content = _STRICT_SAFETY if level == "strict" else _FLEXIBLE_SAFETY
        return self.add_text(SECTION_SAFETY, priority, content)

    @property
    def section_ids(self) -> List[str]:
        return [section.id for section in self._ordered()]

    def build(self) -> str:
        parts: List[str] = []
        for section in self._ordered():
            content = section.content
            if callable(content):
                try:
                    content = content()
                except Exception as exc:
                    _LOGGER.warning(
                        "Failed to build section %s: %s", section.id, exc
                    )
                    continue
            if content and content.strip():
                parts.append(content)
        return "\n\n".join(parts)

    def _ordered(self) -> List[PromptSection]:
        # Stable sort keeps insertion order among equal priorities.
        return sorted(self._sections, key=lambda s: -s.priority)


def tooling_section(tools: Sequence[ToolDefinition]) -> str:
    lines = [
        "## Tooling",
        "You have access to the following tools. Call them exactly as listed.",
        "",
    ]
    for tool in tools:
        params = ", ".join(tool.parameter_names)
        description = tool.description or "No description"
        lines.append(f"- **{tool.name}**({params}): {description}")
    return "\n".join(lines)


def response_format_section(response_format: dict[str, Any]) -> str:
    shape = json.dumps(response_format, ensure_ascii=False)
    return (
        "RESPONSE FORMAT: Respond using a raw JSON object with format "
        f"{shape}. Do NOT surround your JSON with codeblocks."
    )
