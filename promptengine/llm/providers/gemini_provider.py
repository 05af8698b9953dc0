"""Google Gemini (generativelanguage) adapter over plain HTTP."""

from __future__ import annotations

import logging

from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from promptengine.exceptions import ConfigurationError
from promptengine.llm.providers.base import BaseProvider
from promptengine.llm.utils import build_timeout, decode_tool_arguments
from promptengine.types import RequestPayload, ToolCall, ToolDefinition

_LOGGER = logging.getLogger(__name__)

DEFAULT_GEMINI_URL = "https://generativelanguage.googleapis.com"

_VALID_TYPES = {"string", "number", "integer", "boolean", "array", "object"}

_ROLE_MAP = {"assistant": "model", "tool": "user"}


def sanitize_parameters(schema: Any) -> Any:
    """Coerce a parameter schema into the subset Gemini accepts.

    Unsupported type values (e.g. "any") become "string";
    properties and items are sanitized recursively.
    """

    if not isinstance(schema, Mapping):
        return schema
    sanitized = dict(schema)
    kind = sanitized.get("type")
    if isinstance(kind, str) and kind.lower() not in _VALID_TYPES:
        _LOGGER.warning(
            "Sanitizing unsupported parameter type %r -> 'string'", kind
        )
        sanitized["type"] = "string"
    properties = sanitized.get("properties")
    if isinstance(properties, Mapping):
        sanitized["properties"] = {
            key: sanitize_parameters(value)
            for key, value in properties.items()
        }
    if "items" in sanitized:
        sanitized["items"] = sanitize_parameters(sanitized["items"])
    return sanitized


class GeminiProvider(BaseProvider):
    def __init__(
        self,
        *,
        api_key_env: str = "GEMINI_API_KEY",
        base_url: Optional[str] = None,
        api_version: str = "v1beta",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key_env=api_key_env, **kwargs)
        self.base_url = base_url
        self.api_version = api_version
        self._transport = transport

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def url(self) -> str:
        return self.base_url or DEFAULT_GEMINI_URL

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        api_key = self._get_api_key()
        if api_key:
            headers["x-goog-api-key"] = api_key
        return headers

    def get_message(self, role: str, content: str) -> Dict[str, Any]:
        return {
            "role": _ROLE_MAP.get(role, role),
            "parts": [{"text": content}],
        }

    def get_options(self, options: Mapping[str, Any]) -> Dict[str, Any]:
        merged = self.resolve_options(options)
        model_name = merged.get("model")
        if not model_name:
            raise ConfigurationError(f"Provider '{self.name}' has no model")
        generation: Dict[str, Any] = {
            "temperature": merged.get("temperature", 0.7),
            "maxOutputTokens": min(
                int(merged.get("max_tokens", 8192)),
                self.get_max_tokens_limit(model_name),
            ),
        }
        if merged.get("json_mode"):
            generation["responseMimeType"] = "application/json"
        if "top_p" in merged:
            generation["topP"] = merged["top_p"]
        return {
            "model": model_name,
            "generationConfig": generation,
            "timeout": merged.get("timeout"),
        }

    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "name": tool.name,
            "description": tool.description,
            "parameters": sanitize_parameters(tool.parameters),
        }

    def format_tools(
        self, tools: Sequence[ToolDefinition]
    ) -> List[Dict[str, Any]]:
        if not tools:
            return []
        return [
            {"functionDeclarations": [self.format_tool(t) for t in tools]}
        ]

    def get_content(self, raw: Any) -> str:
        return "".join(
            part["text"]
            for part in _first_candidate_parts(raw)
            if isinstance(part.get("text"), str)
        )

    def get_tool_call(self, raw: Any) -> Optional[ToolCall]:
        for part in _first_candidate_parts(raw):
            call = part.get("functionCall")
            if isinstance(call, Mapping):
                return ToolCall(
                    name=str(call.get("name", "")),
                    arguments=decode_tool_arguments(call.get("args")),
                    call_id=call.get("id"),
                )
        return None

    async def request(self, payload: RequestPayload) -> Any:
        self._require_api_key()
        options = dict(payload.options)
        model_name = options.pop("model")
        timeout = build_timeout(options.pop("timeout", None))

        system_parts: List[Dict[str, Any]] = []
        contents: List[Dict[str, Any]] = []
        for message in payload.messages:
            if message.get("role") == "system":
                system_parts.extend(message.get("parts") or [])
                continue
            contents.append(message)
        body: Dict[str, Any] = {"contents": contents, **options}
        if system_parts:
            body["systemInstruction"] = {"parts": system_parts}
        if payload.tools:
            body["tools"] = payload.tools

        path = f"/{self.api_version}/models/{model_name}:generateContent"
        try:
            async with httpx.AsyncClient(
                base_url=self.url,
                timeout=timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    path, json=body, headers=self.headers
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            _LOGGER.warning(
                "%s returned HTTP %s", self.name, exc.response.status_code
            )
            raise self.provider_error(
                "request failed",
                status=exc.response.status_code,
                body=exc.response.text,
            ) from exc
        except httpx.TimeoutException as exc:
            raise self.provider_error(f"timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            raise self.provider_error(f"transport error: {exc}") from exc
        except ValueError as exc:
            raise self.provider_error("invalid JSON body") from exc

    def get_max_tokens_limit(self, model_name: str) -> int:
        return 8192


def _first_candidate_parts(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, Mapping):
        return []
    candidates = raw.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    parts = content.get("parts") or []
    return [part for part in parts if isinstance(part, Mapping)]
