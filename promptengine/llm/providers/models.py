# Copyright (c) Meta Platforms, Inc. and affiliates.
# Modifications copyright (c) 2025 Logan Martel.
# Adapted from https://github.com/meta-pytorch/KernelAgent (Apache-2.0).

"""Model catalog mapping model names to provider adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type

from promptengine.llm.providers.anthropic_provider import AnthropicProvider
from promptengine.llm.providers.base import BaseProvider
from promptengine.llm.providers.gemini_provider import GeminiProvider
from promptengine.llm.providers.openai_provider import OpenAIProvider


@dataclass
class ModelConfig:
    name: str
    provider_class: Type[BaseProvider]
    description: str = ""


AVAILABLE_MODELS = [
    ModelConfig(
        name="o4-mini",
        provider_class=OpenAIProvider,
        description="OpenAI o-series",
    ),
    ModelConfig(
        name="gpt-4o", provider_class=OpenAIProvider, description="OpenAI GPT-4o"
    ),
    ModelConfig(
        name="gpt-5", provider_class=OpenAIProvider, description="OpenAI GPT-5"
    ),
    ModelConfig(
        name="claude-sonnet-4-20250514",
        provider_class=AnthropicProvider,
        description="Claude 4 Sonnet",
    ),
    ModelConfig(
        name="claude-opus-4-1-20250805",
        provider_class=AnthropicProvider,
        description="Claude 4 Opus",
    ),
    ModelConfig(
        name="gemini-2.5-flash",
        provider_class=GeminiProvider,
        description="Gemini 2.5 Flash",
    ),
]

MODEL_NAME_TO_CONFIG: Dict[str, ModelConfig] = {
    cfg.name: cfg for cfg in AVAILABLE_MODELS
}

# Fallback for model names that are not catalogued explicitly.
_PREFIX_TO_PROVIDER: Tuple[Tuple[str, Type[BaseProvider]], ...] = (
    ("gpt-", OpenAIProvider),
    ("o1", OpenAIProvider),
    ("o3", OpenAIProvider),
    ("o4", OpenAIProvider),
    ("claude-", AnthropicProvider),
    ("gemini-", GeminiProvider),
)


def provider_class_for_model(model_name: str) -> Optional[Type[BaseProvider]]:
    config = MODEL_NAME_TO_CONFIG.get(model_name)
    if config is not None:
        return config.provider_class
    for prefix, provider_cls in _PREFIX_TO_PROVIDER:
        if model_name.startswith(prefix):
            return provider_cls
    return None

