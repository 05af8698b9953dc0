"""Prompt engine: binds registered templates to provider adapters."""

from __future__ import annotations

import asyncio
import inspect
import logging

from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from promptengine.configuration import EngineSettings
from promptengine.exceptions import (
    NotFoundError,
    ProviderError,
    ToolExecutionError,
)
from promptengine.llm.providers import load_provider
from promptengine.llm.providers.base import BaseProvider
from promptengine.prompting.builder import (
    SECTION_TEMPLATE,
    PromptBuilder,
    SafetyLevel,
)
from promptengine.prompting.chains import load_prompt_chain, register_chain
from promptengine.prompting.registry import PromptRegistry
from promptengine.prompting.renderer import STATE_KEY, render_template
from promptengine.secrets import SecretsStore
from promptengine.types import (
    ChatMessage,
    ExecutionContext,
    PromptTemplate,
    RequestPayload,
    ToolDefinition,
    ToolInvocation,
)
from promptengine.validation import ResponseValidator

LOGGER = logging.getLogger(__name__)

# Option keys consumed by the engine; everything else is a transport option
# forwarded to the adapter's ``get_options``.
ENGINE_OPTION_KEYS = ("provider", "default_provider", "state")

EVENTS = ("request_start", "request_error", "tool_call", "response")

Listener = Callable[[Dict[str, Any]], None]


class PromptEngine:
    """Executes named prompts against interchangeable provider adapters.

    The engine keeps no per-call state: adapters, tools and the registry
    reference are fixed at construction, and each ``execute`` call works on
    its own ``ExecutionContext``. Concurrent calls are therefore safe.
    """

    def __init__(
        self,
        providers: Sequence[BaseProvider],
        tools: Iterable[ToolDefinition] = (),
        prompts: Iterable[PromptTemplate] = (),
        *,
        registry: Optional[PromptRegistry] = None,
        default_provider: Optional[str] = None,
        response_format_hint: bool = True,
        safety_level: Optional[SafetyLevel] = None,
        validator: Optional[ResponseValidator] = None,
    ) -> None:
        if not providers:
            raise ValueError("PromptEngine requires at least one provider")
        by_name: Dict[str, BaseProvider] = {}
        for provider in providers:
            if not isinstance(provider, BaseProvider):
                raise TypeError(
                    f"{type(provider).__name__} does not implement BaseProvider"
                )
            if provider.name in by_name:
                raise ValueError(f"Duplicate provider name '{provider.name}'")
            by_name[provider.name] = provider
        if default_provider is not None and default_provider not in by_name:
            raise NotFoundError("Provider", default_provider)

        self._providers: Tuple[BaseProvider, ...] = tuple(providers)
        self._providers_by_name = by_name
        self._tools: Tuple[ToolDefinition, ...] = tuple(tools)
        self._default_provider = default_provider
        self._response_format_hint = response_format_hint
        self._safety_level = safety_level
        self._validator = validator or ResponseValidator()
        self._listeners: Dict[str, List[Listener]] = {}
        self.registry = registry if registry is not None else PromptRegistry()
        for template in prompts:
            self.registry.register(template)

    @property
    def providers(self) -> Tuple[BaseProvider, ...]:
        return self._providers

    @property
    def tools(self) -> Tuple[ToolDefinition, ...]:
        return self._tools

    def add_listener(self, event: str, callback: Listener) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event '{event}'. Known: {EVENTS}")
        self._listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback: Listener) -> None:
        callbacks = self._listeners.get(event) or []
        if callback in callbacks:
            callbacks.remove(callback)

    def get_provider(self, name: str) -> BaseProvider:
        provider = self._providers_by_name.get(name)
        if provider is None:
            raise NotFoundError("Provider", name)
        return provider

    def select_provider(self, options: Mapping[str, Any]) -> BaseProvider:
        name = (
            options.get("provider")
            or options.get("default_provider")
            or self._default_provider
        )
        if name is None:
            return self._providers[0]
        return self.get_provider(name)

    async def execute(
        self,
        prompt_name: str,
        variables: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Run ``prompt_name`` and return the validated result.

        Returns the raw text for text prompts, a dict for structured
        prompts, or a ``ToolInvocation`` when the provider answers with a
        tool call.
        """

        options = dict(options or {})
        template = self.registry.get(prompt_name)
        provider = self.select_provider(options)
        ctx = ExecutionContext(
            prompt_name=prompt_name,
            variables=merge_variables(variables or {}, options.get("state")),
            provider_name=provider.name,
        )

        tools = self._offered_tools(template)
        ctx.messages = self._render_messages(template, tools, ctx)
        transport_options = {
            key: value
            for key, value in options.items()
            if key not in ENGINE_OPTION_KEYS
        }
        ctx.payload = RequestPayload(
            messages=[
                provider.get_message(message.role, message.content)
                for message in ctx.messages
            ],
            options=provider.get_options(transport_options),
            tools=provider.format_tools(tools),
        )

        self._emit(
            "request_start",
            {
                "prompt": prompt_name,
                "provider": provider.name,
                "messages": ctx.payload.messages,
                "tools": ctx.payload.tools,
            },
        )
        ctx.raw_reply = await self._request(provider, ctx.payload, prompt_name)

        tool_call = provider.get_tool_call(ctx.raw_reply)
        if tool_call is not None:
            ctx.result = await self._invoke_tool(
                tool_call.name,
                tool_call.arguments,
                text=provider.get_content(ctx.raw_reply),
                raw=ctx.raw_reply,
                tools=tools,
            )
            return ctx.result

        content = provider.get_content(ctx.raw_reply)
        LOGGER.debug(
            "Prompt '%s' content from %s: %.200s",
            prompt_name,
            provider.name,
            content,
        )
        ctx.result = self._validator.parse(content, template.response_format)
        self._emit(
            "response",
            {
                "prompt": prompt_name,
                "provider": provider.name,
                "result": ctx.result,
            },
        )
        return ctx.result

    def _render_messages(
        self,
        template: PromptTemplate,
        tools: Sequence[ToolDefinition],
        ctx: ExecutionContext,
    ) -> List[ChatMessage]:
        missing = [
            key for key in template.request_format if key not in ctx.variables
        ]
        if missing:
            LOGGER.warning(
                "Prompt '%s' called without declared variables: %s",
                template.name,
                ", ".join(missing),
            )

        system = render_template(template.system, ctx.variables)
        user = render_template(template.user, ctx.variables)
        for placeholder in system.unresolved + user.unresolved:
            ctx.unresolved.append(placeholder)
            LOGGER.warning(
                "Unresolved placeholder {%s} in prompt '%s'",
                placeholder,
                template.name,
            )

        builder = PromptBuilder()
        if self._safety_level:
            builder.set_safety_level(self._safety_level)
        builder.add_tool_definitions(tools)
        builder.add_text(SECTION_TEMPLATE, 50, system.text)
        if self._response_format_hint:
            builder.add_response_format(template.response_format)
        system_text = builder.build()

        messages: List[ChatMessage] = []
        if system_text:
            messages.append(ChatMessage(role="system", content=system_text))
        messages.append(ChatMessage(role="user", content=user.text))
        return messages

    def _offered_tools(
        self, template: PromptTemplate
    ) -> Tuple[ToolDefinition, ...]:
        if template.tools is None:
            return self._tools
        wanted = set(template.tools)
        unknown = wanted - {tool.name for tool in self._tools}
        if unknown:
            LOGGER.warning(
                "Prompt '%s' references unknown tools: %s",
                template.name,
                ", ".join(sorted(unknown)),
            )
        return tuple(tool for tool in self._tools if tool.name in wanted)

    async def _request(
        self, provider: BaseProvider, payload: RequestPayload, prompt_name: str
    ) -> Any:
        try:
            return await provider.request(payload)
        except asyncio.CancelledError:
            LOGGER.info(
                "Prompt '%s' cancelled while waiting on %s",
                prompt_name,
                provider.name,
            )
            raise
        except ProviderError as exc:
            LOGGER.warning("Provider request failed: %s", exc)
            self._emit(
                "request_error",
                {
                    "prompt": prompt_name,
                    "provider": provider.name,
                    "error": exc,
                },
            )
            raise
        except Exception as exc:
            LOGGER.warning(
                "Provider '%s' raised %s", provider.name, type(exc).__name__
            )
            error = ProviderError(provider.name, f"request failed: {exc}")
            self._emit(
                "request_error",
                {
                    "prompt": prompt_name,
                    "provider": provider.name,
                    "error": error,
                },
            )
            raise error from exc

    async def _invoke_tool(
        self,
        name: str,
        arguments: Dict[str, Any],
        *,
        text: str,
        raw: Any,
        tools: Sequence[ToolDefinition],
    ) -> ToolInvocation:
        self._emit("tool_call", {"tool": name, "arguments": arguments})
        tool = next((t for t in tools if t.name == name), None)
        if tool is None or tool.handler is None:
            LOGGER.warning("Tool '%s' not found or has no handler", name)
            return ToolInvocation(
                name=name, arguments=arguments, text=text, raw=raw
            )
        try:
            output = tool.handler(arguments)
            if inspect.isawaitable(output):
                output = await output
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise ToolExecutionError(name, exc) from exc
        return ToolInvocation(
            name=name,
            arguments=arguments,
            output=output,
            text=text,
            handled=True,
            raw=raw,
        )

    def _emit(self, event: str, data: Dict[str, Any]) -> None:
        for callback in list(self._listeners.get(event) or []):
            callback(data)


def merge_variables(
    variables: Mapping[str, Any], state: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Combine call variables with caller-supplied state.

    ``options["state"]`` and ``variables["state"]`` merge into a single
    ``state`` mapping (call variables win); flat variables are untouched.
    """

    merged = dict(variables)
    inner = variables.get(STATE_KEY)
    if state is None and not isinstance(inner, Mapping):
        return merged
    combined: Dict[str, Any] = dict(state or {})
    if isinstance(inner, Mapping):
        combined.update(inner)
    merged[STATE_KEY] = combined
    return merged


def build_engine(
    settings: EngineSettings,
    *,
    secrets: Optional[SecretsStore] = None,
    tool_handlers: Optional[Mapping[str, Callable[..., Any]]] = None,
    registry: Optional[PromptRegistry] = None,
) -> PromptEngine:
    """Construct an engine (providers, chains, prompts) from settings."""

    providers = [load_provider(entry, secrets) for entry in settings.providers]
    registry = registry if registry is not None else PromptRegistry()
    tools: Dict[str, ToolDefinition] = {}
    for path in settings.prompt_chains:
        chain = load_prompt_chain(path)
        register_chain(registry, chain)
        for tool in chain.tools:
            tools.setdefault(tool.name, tool)
    for tool in settings.tools:
        tools[tool.name] = tool
    handlers = dict(tool_handlers or {})
    attached = []
    for tool in tools.values():
        handler = handlers.get(tool.name, tool.handler)
        attached.append(
            ToolDefinition(
                name=tool.name,
                description=tool.description,
                parameters=tool.parameters,
                handler=handler,
            )
        )
    return PromptEngine(
        providers=providers,
        tools=attached,
        prompts=settings.prompts,
        registry=registry,
        default_provider=settings.default_provider,
        response_format_hint=settings.response_format_hint,
        safety_level=settings.safety_level,
    )
