"""Custom exceptions for the prompt engine."""

from __future__ import annotations

import asyncio

from typing import Any, Optional

# Caller-initiated abandonment of an in-flight ``execute``. Kept as the
# asyncio class so ``task.cancel()`` semantics are preserved end to end.
CancelledError = asyncio.CancelledError


class PromptEngineError(RuntimeError):
    """Base exception for prompt engine failures."""


class ConfigurationError(PromptEngineError):
    """Raised when engine configuration is invalid."""


class NotFoundError(PromptEngineError, LookupError):
    """Raised for an unknown prompt name or provider name."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.kind = kind
        self.name = name


class DuplicatePromptError(PromptEngineError):
    """Raised when registering a prompt name that exists and replace=False."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Prompt template '{name}' is already registered")
        self.name = name


class ProviderError(PromptEngineError):
    """Non-success or failed transport call made by a provider adapter."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status: Optional[int] = None,
        body: str = "",
    ) -> None:
        detail = f"[{provider}] {message}"
        if status is not None:
            detail += f" (status {status})"
        if body:
            detail += f": {body}"
        super().__init__(detail)
        self.provider = provider
        self.status = status
        self.body = body


class SchemaValidationError(PromptEngineError):
    """Parsed content does not match the declared response format."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        content: Any = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.expected = expected
        self.actual = actual
        self.content = content


class ToolExecutionError(PromptEngineError):
    """Raised when a tool handler fails while serving a tool call."""

    def __init__(self, tool_name: str, cause: BaseException) -> None:
        super().__init__(f"Tool execution failed: {tool_name}: {cause}")
        self.tool_name = tool_name
