# Copyright (c) Meta Platforms, Inc. and affiliates.
# Modifications copyright (c) 2025 Logan Martel.
# Adapted from https://github.com/meta-pytorch/KernelAgent (Apache-2.0).

"""LLM provider registry."""

from __future__ import annotations

import logging

from typing import Any, Dict, Optional, Type

from promptengine.configuration import ProviderSettings
from promptengine.exceptions import ConfigurationError
from promptengine.llm.providers.anthropic_provider import AnthropicProvider
from promptengine.llm.providers.base import BaseProvider
from promptengine.llm.providers.echo_provider import EchoProvider
from promptengine.llm.providers.gemini_provider import GeminiProvider
from promptengine.llm.providers.models import provider_class_for_model
from promptengine.llm.providers.openai_provider import OpenAIProvider
from promptengine.llm.providers.relay_provider import RelayProvider
from promptengine.secrets import SecretsStore

PROVIDER_ALIASES: Dict[str, Type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "relay": RelayProvider,
    "echo": EchoProvider,
}

# Adapters whose constructor accepts a ``name`` override.
_NAMED_KINDS = (RelayProvider, EchoProvider)

_LOGGER = logging.getLogger(__name__)


def load_provider(
    settings: ProviderSettings, secrets: Optional[SecretsStore] = None
) -> BaseProvider:
    """Build an adapter from ``settings``.

    ``kind`` selects the adapter class; without it the settings name is
    tried as an alias, then the model catalog picks a class by model name.
    """

    provider_cls = _resolve_class(settings)

    kwargs: Dict[str, Any] = {
        "secrets": secrets,
        "default_options": settings.default_options,
        "timeout_s": settings.timeout_s,
    }
    if settings.model:
        kwargs["model"] = settings.model
    if settings.api_key_env:
        kwargs["api_key_env"] = settings.api_key_env
    if provider_cls is EchoProvider:
        kwargs["reply"] = settings.reply
    else:
        if settings.base_url:
            kwargs["base_url"] = settings.base_url
        if provider_cls is not GeminiProvider:
            kwargs["max_retries"] = settings.max_retries
            kwargs["extra_headers"] = settings.headers
    if issubclass(provider_cls, _NAMED_KINDS):
        kwargs["name"] = settings.name

    provider = provider_cls(**kwargs)
    if provider.name != settings.name:
        raise ConfigurationError(
            f"Provider '{settings.name}' resolves to adapter "
            f"'{provider.name}'; use kind 'relay' for a custom name"
        )
    if not provider.is_available():
        _LOGGER.warning(
            "Provider '%s' has no API key yet (%s)",
            settings.name,
            settings.api_key_env or provider.api_key_env,
        )
    _LOGGER.info(
        "Configured LLM provider '%s' (%s) with model '%s'",
        settings.name,
        provider_cls.__name__,
        provider.model,
    )
    return provider


def _resolve_class(settings: ProviderSettings) -> Type[BaseProvider]:
    if settings.kind:
        provider_cls = PROVIDER_ALIASES.get(settings.kind)
        if provider_cls is None:
            raise ConfigurationError(
                f"Unknown provider kind '{settings.kind}'. "
                f"Available: {sorted(PROVIDER_ALIASES)}"
            )
        return provider_cls
    if settings.name in PROVIDER_ALIASES:
        return PROVIDER_ALIASES[settings.name]
    if settings.model:
        provider_cls = provider_class_for_model(settings.model)
        if provider_cls is not None:
            return provider_cls
    raise ConfigurationError(
        f"Provider '{settings.name}' needs a 'kind' or a known 'model'"
    )


__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "EchoProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "PROVIDER_ALIASES",
    "RelayProvider",
    "load_provider",
]
