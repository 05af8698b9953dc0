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

"""Base provider adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from promptengine.exceptions import ProviderError
from promptengine.logging.utils import redact, truncate
from promptengine.secrets import EnvSecretsStore, SecretsStore
from promptengine.types import RequestPayload, ToolCall, ToolDefinition

# Transport options every adapter understands; anything else is passed
# through untouched by ``get_options`` implementations that allow it.
COMMON_OPTION_KEYS = (
    "model",
    "temperature",
    "max_tokens",
    "json_mode",
    "timeout",
)


class BaseProvider(ABC):
    """Normalized integration point for one AI backend.

    Every capability is abstract so an incomplete adapter fails when it is
    constructed rather than in the middle of a call. Adapters hold only
    configuration; per-call data arrives through ``request``.
    """

    def __init__(
        self,
        *,
        model: Optional[str] = None,
        api_key_env: Optional[str] = None,
        secrets: Optional[SecretsStore] = None,
        default_options: Optional[Mapping[str, Any]] = None,
        timeout_s: float = 120.0,
    ) -> None:
        self.model = model
        self.api_key_env = api_key_env
        self.secrets: SecretsStore = secrets or EnvSecretsStore()
        self.default_options: Dict[str, Any] = dict(default_options or {})
        self.timeout_s = timeout_s

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""

    @property
    @abstractmethod
    def url(self) -> str:
        """Endpoint base URL."""

    @property
    def headers(self) -> Dict[str, str]:
        """Static or computed auth headers."""
        return {}

    # request object -----------------------------------------------------

    @abstractmethod
    def get_message(self, role: str, content: str) -> Dict[str, Any]:
        """Return the wire message for one rendered text."""

    @abstractmethod
    def get_options(self, options: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate call options into wire request options."""

    # tool format --------------------------------------------------------

    @abstractmethod
    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        """Return the wire shape of a single tool."""

    def format_tools(
        self, tools: Sequence[ToolDefinition]
    ) -> List[Dict[str, Any]]:
        return [self.format_tool(tool) for tool in tools]

    # response format ----------------------------------------------------

    @abstractmethod
    def get_content(self, raw: Any) -> str:
        """Extract the textual content of a raw reply."""

    @abstractmethod
    def get_tool_call(self, raw: Any) -> Optional[ToolCall]:
        """Extract the first tool call of a raw reply, if any."""

    # transport ----------------------------------------------------------

    @abstractmethod
    async def request(self, payload: RequestPayload) -> Any:
        """Issue one request and return the raw reply."""

    def is_available(self) -> bool:
        """Whether the provider can be used (API key present, etc.)."""
        return self._get_api_key() is not None

    def resolve_options(self, options: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge adapter defaults, then call options, over the model."""

        merged: Dict[str, Any] = {}
        if self.model:
            merged["model"] = self.model
        merged.update(self.default_options)
        merged.update({k: v for k, v in options.items() if v is not None})
        merged.setdefault("timeout", self.timeout_s)
        return merged

    def provider_error(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Any = "",
    ) -> ProviderError:
        text = body if isinstance(body, str) else str(body)
        secret = self._get_api_key()
        cleaned = redact(text, [secret] if secret else ())
        return ProviderError(
            self.name, message, status=status, body=truncate(cleaned)
        )

    def _get_api_key(self) -> Optional[str]:
        if not self.api_key_env:
            return None
        api_key = self.secrets.get(self.api_key_env)
        if api_key and api_key != "your-api-key-here":
            return api_key
        return None

    def _require_api_key(self) -> str:
        api_key = self._get_api_key()
        if api_key is None:
            raise self.provider_error(
                f"missing API key (set {self.api_key_env})"
            )
        return api_key
