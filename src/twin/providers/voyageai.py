"""
Voyage AI Embedding Provider.

Implements the embedding port for Voyage AI's models.
This provider is specialized for embeddings only (no generation).
"""

from __future__ import annotations

import logging

from ..domain.ports import IEmbeddingProvider
from ..exceptions import EmbeddingError
from .base import BaseProvider, LLMProviderConfig

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring voyageai if not used
try:
    import voyageai

    VOYAGEAI_AVAILABLE = True
except ImportError:
    VOYAGEAI_AVAILABLE = False
    voyageai = None


class VoyageAIProvider(BaseProvider, IEmbeddingProvider):
    """Voyage AI embedding provider implementation.

    Usage:
        config = LLMProviderConfig(
            api_key="pa-...",
            model="voyage-3.5",
            embedding_model="voyage-3.5",
        )
        provider = VoyageAIProvider(config)

        embedding = await provider.embed("Hello world")
    """

    provider_name = "voyageai"

    DEFAULT_EMBEDDING_MODEL = "voyage-3.5"

    # Models that accept output_dimension
    RESIZABLE_MODELS = {"voyage-3.5", "voyage-3.5-lite", "voyage-3-large"}

    def __init__(self, config: LLMProviderConfig):
        """Initialize the Voyage AI provider.

        Args:
            config: Provider configuration

        Raises:
            ImportError: If voyageai package is not installed
        """
        if not VOYAGEAI_AVAILABLE:
            raise ImportError(
                "voyageai package is required for VoyageAIProvider. "
                "Install with: pip install voyageai"
            )

        super().__init__(config)

        self.embedding_model = (
            config.embedding_model or self.DEFAULT_EMBEDDING_MODEL
        )

        self.client = voyageai.AsyncClient(
            api_key=config.api_key,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    async def _embed(self, texts: list[str], input_type: str) -> list[list[float]]:
        kwargs = {"model": self.embedding_model, "input_type": input_type}
        if self.config.embedding_dimension and self.embedding_model in self.RESIZABLE_MODELS:
            kwargs["output_dimension"] = self.config.embedding_dimension

        try:
            response = await self.client.embed(texts, **kwargs)
        except Exception as e:
            # Voyage AI doesn't have specific error types, catch all
            logger.error(f"Voyage AI embedding error: {e}")
            error_str = str(e).lower()
            if "rate limit" in error_str or "429" in error_str:
                raise EmbeddingError(
                    f"Rate limited: {e}", provider=self.provider_name, cause=e
                )
            raise EmbeddingError(
                f"Embedding failed: {e}", provider=self.provider_name, cause=e
            )

        return [list(embedding) for embedding in response.embeddings]

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding for text.

        Raises:
            EmbeddingError: On API errors
        """
        embeddings = await self._embed([text], input_type="document")
        return embeddings[0]

    async def embed_query(self, text: str) -> list[float]:
        """Embed a search query with the query-side input type."""
        embeddings = await self._embed([text], input_type="query")
        return embeddings[0]
