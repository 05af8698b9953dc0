"""Deterministic offline provider for dry runs and tests."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from promptengine.llm.providers.base import COMMON_OPTION_KEYS, BaseProvider
from promptengine.types import RequestPayload, ToolCall, ToolDefinition


class EchoProvider(BaseProvider):
    """Replies with a canned text, or mirrors the last user message.

    Replies use the {"text": ...} envelope. Tool calling is not
    supported: format_tools always yields an empty list.
    """

    def __init__(
        self,
        *,
        name: str = "echo",
        reply: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("model", "echo")
        super().__init__(**kwargs)
        self._name = name
        self.reply = reply

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return "echo://local"

    def is_available(self) -> bool:
        return True

    def get_message(self, role: str, content: str) -> Dict[str, Any]:
        return {"role": role, "content": content}

    def get_options(self, options: Mapping[str, Any]) -> Dict[str, Any]:
        resolved = self.resolve_options(options)
        return {k: v for k, v in resolved.items() if k in COMMON_OPTION_KEYS}

    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {}

    def format_tools(
        self, tools: Sequence[ToolDefinition]
    ) -> List[Dict[str, Any]]:
        return []

    def get_content(self, raw: Any) -> str:
        if isinstance(raw, Mapping):
            return str(raw.get("text", ""))
        return str(raw or "")

    def get_tool_call(self, raw: Any) -> Optional[ToolCall]:
        return None

    async def request(self, payload: RequestPayload) -> Any:
        if self.reply is not None:
            return {"text": self.reply}
        for message in reversed(payload.messages):
            if message.get("role") == "user":
                return {"text": str(message.get("content", ""))}
        return {"text": ""}
