"""Shared dataclasses for prompt templates, tools and executions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Tuple,
    Union,
)

Role = Literal["system", "user", "assistant", "tool"]

# A template-level response format is either a field -> kind mapping or
# ``None`` / ``"text"`` for raw text replies.
ResponseFormat = Union[Mapping[str, Any], str, None]

ToolHandler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]

TEXT_FORMAT = "text"


def is_structured_format(response_format: ResponseFormat) -> bool:
    """Return True when ``response_format`` declares a JSON object shape."""

    return isinstance(response_format, Mapping)


@dataclass(frozen=True)
class PromptTemplate:
    """Immutable, named pair of system/user text patterns."""

    name: str
    user: str
    system: Optional[str] = None
    request_format: Dict[str, Any] = field(default_factory=dict)
    response_format: ResponseFormat = None
    tools: Optional[Tuple[str, ...]] = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("PromptTemplate.name is required")
        if self.user is None:
            raise ValueError(f"PromptTemplate '{self.name}' requires user text")
        # Own copies so later edits to the caller's dicts never leak in.
        object.__setattr__(self, "request_format", dict(self.request_format))
        if isinstance(self.response_format, Mapping):
            object.__setattr__(
                self, "response_format", dict(self.response_format)
            )
        if self.tools is not None:
            object.__setattr__(self, "tools", tuple(self.tools))

    @property
    def is_structured(self) -> bool:
        return is_structured_format(self.response_format)


@dataclass(frozen=True)
class ToolDefinition:
    """Provider-neutral description of a callable tool."""

    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    handler: Optional[ToolHandler] = field(
        default=None, compare=False, repr=False
    )

    @property
    def parameter_names(self) -> List[str]:
        properties = self.parameters.get("properties") or {}
        return list(properties.keys())


@dataclass(slots=True)
class ChatMessage:
    """Single rendered message before adapter conversion."""

    role: Role
    content: str


@dataclass(slots=True)
class RequestPayload:
    """Everything an adapter needs to issue one request."""

    messages: List[Dict[str, Any]]
    options: Dict[str, Any] = field(default_factory=dict)
    tools: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ToolCall:
    """Tool call extracted from a provider reply."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None


@dataclass
class ToolInvocation:
    """Result of ``execute`` when the provider answered with a tool call."""

    name: str
    arguments: Dict[str, Any]
    output: Any = None
    text: str = ""
    handled: bool = False
    raw: Any = None


@dataclass
class ExecutionContext:
    """Per-call scratch record; lives only inside one ``execute`` call."""

    prompt_name: str
    variables: Dict[str, Any]
    provider_name: str = ""
    messages: List[ChatMessage] = field(default_factory=list)
    payload: Optional[RequestPayload] = None
    raw_reply: Any = None
    result: Any = None
    unresolved: List[str] = field(default_factory=list)
