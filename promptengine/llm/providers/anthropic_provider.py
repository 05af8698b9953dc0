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

"""Anthropic Messages API adapter."""

from __future__ import annotations

import logging

from typing import Any, Dict, List, Mapping, Optional

import httpx

from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic

from promptengine.exceptions import ConfigurationError
from promptengine.llm.providers.base import BaseProvider
from promptengine.llm.utils import build_timeout, decode_tool_arguments
from promptengine.types import RequestPayload, ToolCall, ToolDefinition

_LOGGER = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"

_PASSTHROUGH_OPTIONS = ("top_p", "top_k", "stop_sequences")


class AnthropicProvider(BaseProvider):
    def __init__(
        self,
        *,
        api_key_env: str = "ANTHROPIC_API_KEY",
        base_url: Optional[str] = None,
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
        self._client: Optional[AsyncAnthropic] = None

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def url(self) -> str:
        return self.base_url or DEFAULT_ANTHROPIC_URL

    @property
    def headers(self) -> Dict[str, str]:
        headers = dict(self.extra_headers)
        headers["anthropic-version"] = ANTHROPIC_VERSION
        api_key = self._get_api_key()
        if api_key:
            headers["x-api-key"] = api_key
        return headers

    def get_message(self, role: str, content: str) -> Dict[str, Any]:
        return {"role": role, "content": content}

    def get_options(self, options: Mapping[str, Any]) -> Dict[str, Any]:
        merged = self.resolve_options(options)
        model_name = merged.get("model")
        if not model_name:
            raise ConfigurationError(f"Provider '{self.name}' has no model")
        if merged.get("json_mode"):
            # No native JSON mode; the response-format system section and
            # the validator carry the contract instead.
            _LOGGER.debug("json_mode ignored by %s", self.name)
        params: Dict[str, Any] = {
            "model": model_name,
            "temperature": merged.get("temperature", 0.7),
            "max_tokens": min(
                int(merged.get("max_tokens", 4096)),
                self.get_max_tokens_limit(model_name),
            ),
            "timeout": merged.get("timeout"),
        }
        for key in _PASSTHROUGH_OPTIONS:
            if key in merged:
                params[key] = merged[key]
        return params

    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.parameters,
        }

    def get_content(self, raw: Any) -> str:
        texts = [
            block.get("text", "")
            for block in _content_blocks(raw)
            if block.get("type") == "text"
        ]
        return "".join(text for text in texts if isinstance(text, str))

    def get_tool_call(self, raw: Any) -> Optional[ToolCall]:
        for block in _content_blocks(raw):
            if block.get("type") == "tool_use":
                return ToolCall(
                    name=str(block.get("name", "")),
                    arguments=decode_tool_arguments(block.get("input")),
                    call_id=block.get("id"),
                )
        return None

    async def request(self, payload: RequestPayload) -> Any:
        client = self._get_client()
        params = dict(payload.options)
        timeout = build_timeout(params.pop("timeout", None))

        # Anthropic expects the system prompt outside the conversation.
        system_parts: List[str] = []
        conversation: List[Dict[str, Any]] = []
        for message in payload.messages:
            if message.get("role") == "system":
                system_parts.append(str(message.get("content", "")))
                continue
            conversation.append(message)
        params["messages"] = conversation
        system_prompt = "\n\n".join(part for part in system_parts if part)
        if system_prompt:
            params["system"] = system_prompt
        if payload.tools:
            params["tools"] = payload.tools
        try:
            response = await client.messages.create(**params, timeout=timeout)
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
        if model_name.startswith(("claude-opus-4", "claude-sonnet-4")):
            return 32000
        return 8192

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self._require_api_key(),
                base_url=self.url,
                default_headers=self.extra_headers or None,
                max_retries=self.max_retries,
                timeout=build_timeout(self.timeout_s),
                http_client=self._http_client,
            )
        return self._client


def _content_blocks(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, Mapping):
        return []
    blocks = raw.get("content") or []
    return [block for block in blocks if isinstance(block, Mapping)]
