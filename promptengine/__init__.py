"""promptengine package entry point."""

from .engine import PromptEngine, build_engine
from .exceptions import (
    CancelledError,
    NotFoundError,
    PromptEngineError,
    ProviderError,
    SchemaValidationError,
)
from .prompting.registry import PromptRegistry
from .types import PromptTemplate, ToolDefinition, ToolInvocation

__all__ = [
    "CancelledError",
    "NotFoundError",
    "PromptEngine",
    "PromptEngineError",
    "PromptRegistry",
    "PromptTemplate",
    "ProviderError",
    "SchemaValidationError",
    "ToolDefinition",
    "ToolInvocation",
    "build_engine",
]
