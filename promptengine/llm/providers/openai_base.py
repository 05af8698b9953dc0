# Copyright (c) Meta Platforms, Inc. and affiliates.
# Modifications copyright (c) 2025 Logan Martel.
# Adapted from https://github.com/meta-pytorch/KernelAgent (Apache-2.0).
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""OpenAI-compatible chat completions adapter."""

from __future__ import annotations

import logging

from typing import Any, Dict, Mapping, Optional

import httpx

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from promptengine.exceptions import ConfigurationError
from promptengine.llm.providers.base import BaseProvider
from promptengine.llm.utils import build_timeout, decode_tool_arguments
from promptengine.types import RequestPayload, ToolCall, ToolDefinition

_LOGGER = logging.getLogger(__name__)

DEFAULT_OPENAI_URL = "https://api.openai.com/v1"

_PASSTHROUGH_OPTIONS = (
    "top_p",
    "stop",
    "seed",
    "n",
    "presence_penalty",
    "frequency_penalty",
    "user",
)

_REASONING_PREFIXES = ("gpt-5", "o1", "o3", "o4")


class OpenAICompatibleProvider(BaseProvider):
    """Base adapter for OpenAI-compatible chat APIs."""

    def __init__(
        self,
        api_key_env: str,
        base_url: Optional[str] = None,
        *,
        max_retries: int = 0,
        extra_headers: Optional[Mapping[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key_env=api_key_env, **kwargs)
        self.base_url = base_url
        self.max_retries = max_retries
        self.extra_headers = dict(extra_headers or {})
        self._http_client = http_client
        self._client: Optional[AsyncOpenAI] = None

    @property
    def url(self) -> str:
        return self.base_url or DEFAULT_OPENAI_URL

    @property
    def headers(self) -> Dict[str, str]:
        headers = dict(self.extra_headers)
        api_key = self._get_api_key()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def get_message(self, role: str, content: str) -> Dict[str, Any]:
        return {"role": role, "content": content}

    def is_reasoning_model(self, model_name: str) -> bool:
        """Reasoning models take max_completion_tokens and no temperature."""

        return model_name.startswith(_REASONING_PREFIXES)

    def get_options(self, options: Mapping[str, Any]) -> Dict[str, Any]:
        merged = self.resolve_options(options)
        model_name = merged.get("model")
        if not model_name:
            raise ConfigurationError(f"Provider '{self.name}' has no model")
        params: Dict[str, Any] = {"model": model_name}
        reasoning_model = self.is_reasoning_model(model_name)
        if not reasoning_model:
            params["temperature"] = merged.get("temperature", 0.7)
        max_tokens_value = min(
            int(merged.get("max_tokens", 8192)),
            self.get_max_tokens_limit(model_name),
        )
        if reasoning_model:
            params["max_completion_tokens"] = max_tokens_value
        else:
            params["max_tokens"] = max_tokens_value
        if merged.get("high_reasoning_effort") and reasoning_model:
            params["reasoning_effort"] = "high"
        if merged.get("json_mode"):
            params["response_format"] = {"type": "json_object"}
        for key in _PASSTHROUGH_OPTIONS:
            if key in merged:
                params[key] = merged[key]
        params["timeout"] = merged.get("timeout")
        return params

    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }

    def get_content(self, raw: Any) -> str:
        message = _first_message(raw)
        content = message.get("content")
        return content if isinstance(content, str) else ""

    def get_tool_call(self, raw: Any) -> Optional[ToolCall]:
        calls = _first_message(raw).get("tool_calls") or []
        if not calls:
            return None
        call = calls[0]
        function = call.get("function") or {}
        return ToolCall(
            name=str(function.get("name", "")),
            arguments=decode_tool_arguments(function.get("arguments")),
            call_id=call.get("id"),
        )

    async def request(self, payload: RequestPayload) -> Any:
        client = self._get_client()
        params = dict(payload.options)
        timeout = build_timeout(params.pop("timeout", None))
        params["messages"] = payload.messages
        if payload.tools:
            params["tools"] = payload.tools
        try:
            response = await client.chat.completions.create(
                **params, timeout=timeout
            )
        except APIStatusError as exc:
            raise self.provider_error(
                "request failed",
                status=exc.status_code,
                body=exc.response.text,
            ) from exc
        except APIConnectionError as exc:
            raise self.provider_error(f"transport error: {exc}") from exc
        _LOGGER.debug("%s response: %s", self.name, response)
        return response.model_dump()

    def get_max_tokens_limit(self, model_name: str) -> int:
        return 8192

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._require_api_key(),
                base_url=self.url,
                default_headers=self.extra_headers or None,
                max_retries=self.max_retries,
                timeout=build_timeout(self.timeout_s),
                http_client=self._http_client,
            )
        return self._client


def _first_message(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, Mapping):
        return {}
    choices = raw.get("choices") or []
    if not choices:
        return {}
    return choices[0].get("message") or {}
