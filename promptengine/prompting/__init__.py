"""Prompt templates: registry, rendering, system prompt assembly, chains."""

from promptengine.prompting.builder import PromptBuilder, PromptSection
from promptengine.prompting.chains import (
    PromptChain,
    load_prompt_chain,
    register_chain,
)
from promptengine.prompting.registry import PromptRegistry
from promptengine.prompting.renderer import (
    RenderResult,
    render,
    render_template,
)

__all__ = [
    "PromptBuilder",
    "PromptChain",
    "PromptRegistry",
    "PromptSection",
    "RenderResult",
    "load_prompt_chain",
    "register_chain",
    "render",
    "render_template",
]
