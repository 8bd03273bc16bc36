from typing import Optional

from chatdesk.config import Settings, settings
from chatdesk.services.llm.anthropic_provider import AnthropicProvider
from chatdesk.services.llm.base import LLMError, LLMProvider, LLMResponse
from chatdesk.services.llm.openai_provider import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "LLMError",
    "LLMProvider",
    "LLMResponse",
    "OpenAIProvider",
    "build_llm_provider",
]


def build_llm_provider(config: Settings = settings) -> Optional[LLMProvider]:
    """Provider selected by AI_PROVIDER, or None when model calls are disabled."""
    name = (config.ai_provider or "none").strip().lower()
    if name == "openai" and config.openai_api_key:
        return OpenAIProvider(api_key=config.openai_api_key, default_model=config.ai_model or "gpt-4o-mini")
    if name == "anthropic" and config.anthropic_api_key:
        return AnthropicProvider(
            api_key=config.anthropic_api_key, default_model=config.ai_model or "claude-3-5-haiku-latest"
        )
    return None
