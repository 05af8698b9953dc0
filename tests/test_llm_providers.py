from __future__ import annotations

import json
import logging

from typing import Any, Dict, List

import httpx
import pytest

from promptengine.configuration import ProviderSettings
from promptengine.exceptions import ConfigurationError, ProviderError
from promptengine.llm.providers import (
    PROVIDER_ALIASES,
    AnthropicProvider,
    BaseProvider,
    EchoProvider,
    GeminiProvider,
    OpenAIProvider,
    RelayProvider,
    load_provider,
    models as model_mod,
)
from promptengine.llm.providers.gemini_provider import sanitize_parameters
from promptengine.llm.utils import decode_tool_arguments
from promptengine.secrets import StaticSecretsStore
from promptengine.types import RequestPayload, ToolDefinition

pytestmark = pytest.mark.anyio

SECRETS = StaticSecretsStore(
    {
        "OPENAI_API_KEY": "sk-test-openai",
        "ANTHROPIC_API_KEY": "sk-ant-test",
        "GEMINI_API_KEY": "g-test",
        "RELAY_API_KEY": "relay-test",
    }
)

LOOKUP = ToolDefinition(
    name="lookup_order",
    description="Fetch an order",
    parameters={
        "type": "object",
        "properties": {"order_id": {"type": "string"}},
        "required": ["order_id"],
    },
)


class _Recorder:
    """httpx mock handler that records requests and replays one answer."""

    def __init__(self, status: int = 200, body: Any = None) -> None:
        self.status = status
        self.body = body
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.body, str):
            return httpx.Response(self.status, text=self.body)
        return httpx.Response(self.status, json=self.body)

    @property
    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


def _client(recorder: _Recorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(recorder))


def _payload(provider: BaseProvider, tools=(), **options: Any):
    return RequestPayload(
        messages=[
            provider.get_message("system", "You are concise."),
            provider.get_message("user", "Say hi to Ada."),
        ],
        options=provider.get_options(options),
        tools=provider.format_tools(list(tools)),
    )


def _openai_reply(message: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1,
        "model": "gpt-4o",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", **message},
                "finish_reason": "stop",
            }
        ],
    }


def _anthropic_reply(content: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "id": "msg_1",
        "type": "message",
        "role": "assistant",
        "model": "claude-sonnet-4-20250514",
        "content": content,
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {"input_tokens": 3, "output_tokens": 2},
    }


# --- OpenAI ---------------------------------------------------------------


async def test_openai_request_shape_and_content() -> None:
    recorder = _Recorder(body=_openai_reply({"content": "Hi Ada!"}))
    provider = OpenAIProvider(
        model="gpt-4o", secrets=SECRETS, http_client=_client(recorder)
    )
    payload = _payload(provider, tools=[LOOKUP], temperature=0.1)
    raw = await provider.request(payload)

    assert provider.get_content(raw) == "Hi Ada!"
    assert provider.get_tool_call(raw) is None
    sent = recorder.last_json
    assert recorder.requests[-1].url.path.endswith("/chat/completions")
    assert recorder.requests[-1].headers["authorization"] == (
        "Bearer sk-test-openai"
    )
    assert sent["model"] == "gpt-4o"
    assert sent["temperature"] == 0.1
    assert sent["messages"][0] == {
        "role": "system",
        "content": "You are concise.",
    }
    assert sent["tools"][0]["function"]["name"] == "lookup_order"


async def test_openai_tool_call_arguments_are_decoded() -> None:
    recorder = _Recorder(
        body=_openai_reply(
            {
                "content": None,
                "tool_calls": [
                    {
                        "id": "call_1",
                        "type": "function",
                        "function": {
                            "name": "lookup_order",
                            "arguments": '{"order_id": "A1"}',
                        },
                    }
                ],
            }
        )
    )
    provider = OpenAIProvider(
        model="gpt-4o", secrets=SECRETS, http_client=_client(recorder)
    )
    raw = await provider.request(_payload(provider, tools=[LOOKUP]))
    call = provider.get_tool_call(raw)
    assert call is not None
    assert call.name == "lookup_order"
    assert call.arguments == {"order_id": "A1"}
    assert call.call_id == "call_1"
    assert provider.get_content(raw) == ""


async def test_openai_status_error_becomes_provider_error() -> None:
    recorder = _Recorder(
        status=500, body={"error": {"message": "boom sk-test-openai"}}
    )
    provider = OpenAIProvider(
        model="gpt-4o", secrets=SECRETS, http_client=_client(recorder)
    )
    with pytest.raises(ProviderError) as excinfo:
        await provider.request(_payload(provider))
    error = excinfo.value
    assert error.provider == "openai"
    assert error.status == 500
    assert "boom" in error.body
    assert "sk-test-openai" not in error.body
    assert len(recorder.requests) == 1


async def test_openai_missing_key_raises_before_network() -> None:
    recorder = _Recorder(body=_openai_reply({"content": "x"}))
    provider = OpenAIProvider(
        model="gpt-4o",
        secrets=StaticSecretsStore(),
        http_client=_client(recorder),
    )
    assert not provider.is_available()
    with pytest.raises(ProviderError, match="OPENAI_API_KEY"):
        await provider.request(_payload(provider))
    assert recorder.requests == []


def test_openai_options_for_reasoning_models() -> None:
    provider = OpenAIProvider(
        model="o4-mini",
        secrets=SECRETS,
        default_options={"temperature": 0.3},
    )
    options = provider.get_options(
        {"max_tokens": 100000, "json_mode": True, "seed": 7}
    )
    assert "temperature" not in options
    assert options["max_completion_tokens"] == 8192
    assert options["response_format"] == {"type": "json_object"}
    assert options["seed"] == 7
    assert options["timeout"] == provider.timeout_s


@pytest.mark.parametrize(
    "model", ["openai/gpt-4o-mini", "openrouter/auto", "olmo-7b-instruct"]
)
def test_relay_models_keep_temperature_and_max_tokens(model: str) -> None:
    provider = RelayProvider(model=model, secrets=SECRETS)
    options = provider.get_options({"temperature": 0.1, "max_tokens": 100})
    assert options["temperature"] == 0.1
    assert options["max_tokens"] == 100
    assert "max_completion_tokens" not in options


def test_reasoning_model_check_is_overridable() -> None:
    class HostedReasoning(RelayProvider):
        def is_reasoning_model(self, model_name: str) -> bool:
            return model_name.startswith("openai/o")

    provider = HostedReasoning(model="openai/o3", secrets=SECRETS)
    options = provider.get_options({"temperature": 0.1, "max_tokens": 100})
    assert "temperature" not in options
    assert options["max_completion_tokens"] == 100


def test_openai_options_require_model() -> None:
    provider = OpenAIProvider(secrets=SECRETS)
    with pytest.raises(ConfigurationError):
        provider.get_options({})


async def test_relay_uses_custom_name_and_url() -> None:
    recorder = _Recorder(body=_openai_reply({"content": "relayed"}))
    provider = RelayProvider(
        name="internal",
        base_url="http://relay.local/v1",
        model="gpt-4o",
        secrets=SECRETS,
        http_client=_client(recorder),
    )
    raw = await provider.request(_payload(provider))
    assert provider.name == "internal"
    assert provider.get_content(raw) == "relayed"
    assert str(recorder.requests[-1].url) == (
        "http://relay.local/v1/chat/completions"
    )


# --- Anthropic ------------------------------------------------------------


async def test_anthropic_moves_system_prompt_out_of_messages() -> None:
    recorder = _Recorder(
        body=_anthropic_reply([{"type": "text", "text": "Hi Ada!"}])
    )
    provider = AnthropicProvider(
        model="claude-sonnet-4-20250514",
        secrets=SECRETS,
        http_client=_client(recorder),
    )
    raw = await provider.request(_payload(provider, tools=[LOOKUP]))

    assert provider.get_content(raw) == "Hi Ada!"
    sent = recorder.last_json
    assert recorder.requests[-1].url.path == "/v1/messages"
    assert recorder.requests[-1].headers["x-api-key"] == "sk-ant-test"
    assert sent["system"] == "You are concise."
    assert sent["messages"] == [{"role": "user", "content": "Say hi to Ada."}]
    assert sent["tools"][0]["input_schema"]["required"] == ["order_id"]
    assert sent["max_tokens"] == 4096


async def test_anthropic_tool_use_block() -> None:
    recorder = _Recorder(
        body=_anthropic_reply(
            [
                {"type": "text", "text": "Checking."},
                {
                    "type": "tool_use",
                    "id": "toolu_1",
                    "name": "lookup_order",
                    "input": {"order_id": "A1"},
                },
            ]
        )
    )
    provider = AnthropicProvider(
        model="claude-sonnet-4-20250514",
        secrets=SECRETS,
        http_client=_client(recorder),
    )
    raw = await provider.request(_payload(provider, tools=[LOOKUP]))
    call = provider.get_tool_call(raw)
    assert call is not None
    assert (call.name, call.arguments) == ("lookup_order", {"order_id": "A1"})
    assert provider.get_content(raw) == "Checking."


async def test_anthropic_status_error() -> None:
    recorder = _Recorder(
        status=400,
        body={"type": "error", "error": {"message": "bad request"}},
    )
    provider = AnthropicProvider(
        model="claude-sonnet-4-20250514",
        secrets=SECRETS,
        http_client=_client(recorder),
    )
    with pytest.raises(ProviderError) as excinfo:
        await provider.request(_payload(provider))
    assert excinfo.value.status == 400
    assert "bad request" in excinfo.value.body


# --- Gemini ---------------------------------------------------------------


async def test_gemini_request_shape() -> None:
    recorder = _Recorder(
        body={
            "candidates": [
                {"content": {"role": "model", "parts": [{"text": "Hi Ada!"}]}}
            ]
        }
    )
    provider = GeminiProvider(
        model="gemini-2.5-flash",
        secrets=SECRETS,
        transport=httpx.MockTransport(recorder),
    )
    raw = await provider.request(
        _payload(provider, tools=[LOOKUP], json_mode=True)
    )

    assert provider.get_content(raw) == "Hi Ada!"
    request = recorder.requests[-1]
    assert request.url.path == (
        "/v1beta/models/gemini-2.5-flash:generateContent"
    )
    assert request.headers["x-goog-api-key"] == "g-test"
    sent = recorder.last_json
    assert sent["systemInstruction"] == {
        "parts": [{"text": "You are concise."}]
    }
    assert sent["contents"] == [
        {"role": "user", "parts": [{"text": "Say hi to Ada."}]}
    ]
    assert sent["generationConfig"]["responseMimeType"] == "application/json"
    declarations = sent["tools"][0]["functionDeclarations"]
    assert declarations[0]["name"] == "lookup_order"
    assert "model" not in sent and "timeout" not in sent


async def test_gemini_function_call() -> None:
    recorder = _Recorder(
        body={
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {
                                "functionCall": {
                                    "name": "lookup_order",
                                    "args": {"order_id": "A1"},
                                }
                            }
                        ]
                    }
                }
            ]
        }
    )
    provider = GeminiProvider(
        model="gemini-2.5-flash",
        secrets=SECRETS,
        transport=httpx.MockTransport(recorder),
    )
    raw = await provider.request(_payload(provider, tools=[LOOKUP]))
    call = provider.get_tool_call(raw)
    assert call is not None
    assert call.arguments == {"order_id": "A1"}


async def test_gemini_http_error_is_redacted() -> None:
    recorder = _Recorder(status=403, body="denied for key g-test")
    provider = GeminiProvider(
        model="gemini-2.5-flash",
        secrets=SECRETS,
        transport=httpx.MockTransport(recorder),
    )
    with pytest.raises(ProviderError) as excinfo:
        await provider.request(_payload(provider))
    assert excinfo.value.status == 403
    assert excinfo.value.body == "denied for key <REDACTED>"


async def test_gemini_transport_failure() -> None:
    def explode(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    provider = GeminiProvider(
        model="gemini-2.5-flash",
        secrets=SECRETS,
        transport=httpx.MockTransport(explode),
    )
    with pytest.raises(ProviderError, match="transport error"):
        await provider.request(_payload(provider))


def test_gemini_sanitizes_unsupported_types(caplog) -> None:
    schema = {
        "type": "object",
        "properties": {
            "payload": {"type": "any"},
            "items": {"type": "array", "items": {"type": "json"}},
        },
    }
    with caplog.at_level(logging.WARNING):
        cleaned = sanitize_parameters(schema)
    assert cleaned["properties"]["payload"]["type"] == "string"
    assert cleaned["properties"]["items"]["items"]["type"] == "string"
    assert schema["properties"]["payload"]["type"] == "any"
    assert "Sanitizing" in caplog.text


def test_gemini_role_mapping_and_empty_tools() -> None:
    provider = GeminiProvider(model="gemini-2.5-flash", secrets=SECRETS)
    assert provider.get_message("assistant", "x")["role"] == "model"
    assert provider.format_tools([]) == []


# --- Echo / loading -------------------------------------------------------


async def test_echo_mirrors_last_user_message() -> None:
    provider = EchoProvider()
    raw = await provider.request(_payload(provider, tools=[LOOKUP]))
    assert provider.get_content(raw) == "Say hi to Ada."
    assert provider.format_tools([LOOKUP]) == []
    canned = EchoProvider(reply='{"a": 1}')
    assert canned.get_content(await canned.request(_payload(canned))) == (
        '{"a": 1}'
    )


def test_echo_options_keep_common_keys() -> None:
    provider = EchoProvider()
    options = provider.get_options({"temperature": 0.5, "top_k": 3})
    assert options == {"model": "echo", "temperature": 0.5, "timeout": 120.0}


def test_load_provider_by_name_alias() -> None:
    provider = load_provider(
        ProviderSettings(name="openai", model="gpt-4o", temperature=0.2),
        SECRETS,
    )
    assert isinstance(provider, OpenAIProvider)
    assert provider.default_options == {"temperature": 0.2}
    assert provider.is_available()


def test_load_provider_anthropic_token_limit() -> None:
    provider = load_provider(
        ProviderSettings(name="anthropic", model="claude-opus-4-1-20250805"),
        SECRETS,
    )
    assert isinstance(provider, AnthropicProvider)
    assert provider.get_max_tokens_limit(provider.model) == 32000


def test_load_provider_named_relay_and_echo() -> None:
    relay = load_provider(
        ProviderSettings(
            name="internal",
            kind="relay",
            model="gpt-4o",
            base_url="http://relay.local/v1",
            headers={"X-Team": "search"},
        ),
        SECRETS,
    )
    assert relay.name == "internal"
    assert relay.headers["X-Team"] == "search"
    echo = load_provider(
        ProviderSettings(name="dry-run", kind="echo", reply="canned")
    )
    assert echo.name == "dry-run"


def test_load_provider_rejects_mismatched_name() -> None:
    with pytest.raises(ConfigurationError, match="relay"):
        load_provider(
            ProviderSettings(name="primary", kind="openai", model="gpt-4o"),
            SECRETS,
        )


def test_load_provider_unknown_kind_and_model() -> None:
    with pytest.raises(ConfigurationError, match="Unknown provider kind"):
        load_provider(ProviderSettings(name="x", kind="carrier-pigeon"))
    with pytest.raises(ConfigurationError):
        load_provider(ProviderSettings(name="x", model="mystery-model"))


def test_load_provider_warns_without_key(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        provider = load_provider(
            ProviderSettings(name="openai", model="gpt-4o"),
            StaticSecretsStore(),
        )
    assert not provider.is_available()
    assert "no API key" in caplog.text


def test_provider_class_for_model_uses_catalog_then_prefix() -> None:
    lookup = model_mod.provider_class_for_model
    assert lookup("gpt-5") is OpenAIProvider
    assert lookup("o3-mini") is OpenAIProvider
    assert lookup("claude-3-haiku") is AnthropicProvider
    assert lookup("gemini-2.0-pro") is GeminiProvider
    assert lookup("olmo-7b") is None
    assert lookup("mystery-model") is None


def test_provider_aliases_cover_builtin_adapters() -> None:
    assert set(PROVIDER_ALIASES) == {
        "openai",
        "anthropic",
        "gemini",
        "relay",
        "echo",
    }


def test_incomplete_adapter_cannot_be_constructed() -> None:
    class Partial(BaseProvider):
        @property
        def name(self) -> str:
            return "partial"

    with pytest.raises(TypeError):
        Partial()


def test_decode_tool_arguments_variants() -> None:
    assert decode_tool_arguments('{"a": 1}') == {"a": 1}
    assert decode_tool_arguments({"a": 1}) == {"a": 1}
    assert decode_tool_arguments("") == {}
    assert decode_tool_arguments("not json") == {"arguments": "not json"}
    assert decode_tool_arguments("[1]") == {"arguments": [1]}
