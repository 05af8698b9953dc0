"""Shared fixtures: a scripted provider and a fresh registry per test."""

from __future__ import annotations

import asyncio
import sys

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from promptengine.llm.providers.base import BaseProvider  # noqa: E402
from promptengine.prompting.registry import PromptRegistry  # noqa: E402
from promptengine.secrets import StaticSecretsStore  # noqa: E402
from promptengine.types import (  # noqa: E402
    RequestPayload,
    ToolCall,
    ToolDefinition,
)


class ScriptedProvider(BaseProvider):
    """Records payloads and answers from a script instead of the network.

    ``replies`` items are returned in order (the last one repeats); an
    exception instance is raised instead of returned. Replies use the
    {"text": ..., "tool_call": {...}} envelope.
    """

    def __init__(
        self,
        name: str = "mock",
        replies: Optional[List[Any]] = None,
        *,
        delay: float = 0.0,
        responder: Optional[Callable[[RequestPayload], Any]] = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("model", "mock-1")
        kwargs.setdefault("secrets", StaticSecretsStore())
        super().__init__(**kwargs)
        self._name = name
        self.replies = list(replies or ["ok"])
        self.delay = delay
        self.responder = responder
        self.payloads: List[RequestPayload] = []
        self.started = asyncio.Event()

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return "mock://local"

    def is_available(self) -> bool:
        return True

    def get_message(self, role: str, content: str) -> Dict[str, Any]:
        return {"role": role, "content": content}

    def get_options(self, options: Mapping[str, Any]) -> Dict[str, Any]:
        return self.resolve_options(options)

    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {"name": tool.name, "schema": tool.parameters}

    def get_content(self, raw: Any) -> str:
        return str(raw.get("text", ""))

    def get_tool_call(self, raw: Any) -> Optional[ToolCall]:
        call = raw.get("tool_call")
        if not call:
            return None
        return ToolCall(name=call["name"], arguments=call.get("arguments", {}))

    async def request(self, payload: RequestPayload) -> Any:
        self.payloads.append(payload)
        self.started.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.responder is not None:
            return {"text": self.responder(payload)}
        index = min(len(self.payloads) - 1, len(self.replies) - 1)
        reply = self.replies[index]
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            return reply
        return {"text": reply}


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def registry() -> PromptRegistry:
    """Return an empty registry so tests never share templates."""

    return PromptRegistry()


@pytest.fixture()
def make_provider() -> Callable[..., ScriptedProvider]:
    return ScriptedProvider
