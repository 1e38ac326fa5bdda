from .base import ProviderAdapter, ProviderError, ProviderReply, TokenUsage
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider
from .gemini_provider import GeminiProvider

# Orden de prioridad cuando no hay primario explícito
PROVIDER_CLASSES = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}

# "claude" se acepta como alias histórico de "anthropic"
PROVIDER_ALIASES = {"claude": "anthropic"}

__all__ = [
    "ProviderAdapter", "ProviderError", "ProviderReply", "TokenUsage",
    "OpenAIProvider", "AnthropicProvider", "GeminiProvider",
    "PROVIDER_CLASSES", "PROVIDER_ALIASES",
]
