"""Generation and embedding provider implementations."""

from .base import BaseProvider, LLMProviderConfig
from .anthropic import AnthropicProvider
from .openai import OpenAIProvider
from .voyageai import VoyageAIProvider
from .factory import create_embedding_provider, create_generation_provider

__all__ = [
    "BaseProvider",
    "LLMProviderConfig",
    "AnthropicProvider",
    "OpenAIProvider",
    "VoyageAIProvider",
    "create_embedding_provider",
    "create_generation_provider",
]
