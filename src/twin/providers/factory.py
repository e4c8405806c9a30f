"""
Provider selection.

Builds the generation and embedding providers from TwinConfig. The
composition root calls these once at startup and injects the results.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import TwinConfig
from ..domain.ports import IEmbeddingProvider, IGenerationProvider
from ..exceptions import ConfigurationError
from .anthropic import AnthropicProvider
from .base import LLMProviderConfig
from .openai import OpenAIProvider
from .voyageai import VoyageAIProvider

logger = logging.getLogger(__name__)


def create_generation_provider(config: TwinConfig) -> IGenerationProvider:
    """Create the reply/analysis provider.

    Anthropic is preferred when selected and keyed; OpenAI is the fallback.

    Raises:
        ConfigurationError: If no provider could be initialized
    """
    if config.llm_provider == "anthropic" and config.anthropic_api_key:
        try:
            provider = AnthropicProvider(
                LLMProviderConfig(
                    api_key=config.anthropic_api_key,
                    model=config.anthropic_model,
                    timeout=config.llm_timeout,
                )
            )
            logger.info(f"Using Anthropic provider with model: {provider.model_name}")
            return provider
        except ImportError as e:
            logger.warning(f"Failed to initialize Anthropic provider: {e}")

    if config.openai_api_key:
        provider = OpenAIProvider(
            LLMProviderConfig(
                api_key=config.openai_api_key,
                model=config.openai_model,
                timeout=config.llm_timeout,
            )
        )
        logger.info(f"Using OpenAI provider with model: {provider.model_name}")
        return provider

    raise ConfigurationError(
        "No generation provider could be initialized",
        missing_keys=["ANTHROPIC_API_KEY", "OPENAI_API_KEY"],
    )


def _create_openai_embedding(config: TwinConfig) -> Optional[IEmbeddingProvider]:
    if not config.openai_api_key:
        return None
    provider = OpenAIProvider(
        LLMProviderConfig(
            api_key=config.openai_api_key,
            model=config.openai_model,
            embedding_model=config.openai_embedding_model,
            embedding_dimension=config.embedding_dimension,
            timeout=config.embedding_timeout,
        )
    )
    logger.info(f"Embedding provider configured: openai/{provider.embedding_model}")
    return provider


def create_embedding_provider(config: TwinConfig) -> Optional[IEmbeddingProvider]:
    """Create the embedding provider.

    Voyage AI is used when selected and keyed, falling back to OpenAI.
    Returns None when neither is available; the core then runs in
    degraded mode (memories stored without vectors, recency retrieval).
    """
    if config.embedding_provider == "voyageai":
        if config.voyage_api_key:
            try:
                provider = VoyageAIProvider(
                    LLMProviderConfig(
                        api_key=config.voyage_api_key,
                        model=config.voyage_embedding_model,
                        embedding_model=config.voyage_embedding_model,
                        embedding_dimension=config.embedding_dimension,
                        timeout=config.embedding_timeout,
                    )
                )
                logger.info(
                    f"Embedding provider configured: voyageai/{provider.embedding_model}"
                )
                return provider
            except ImportError as e:
                logger.warning(f"Voyage AI unavailable, falling back to OpenAI: {e}")
        else:
            logger.warning("VOYAGE_API_KEY not set, falling back to OpenAI embeddings")

    provider = _create_openai_embedding(config)
    if provider is None:
        logger.warning(
            "No embedding provider configured - memories will be stored without vectors"
        )
    return provider
