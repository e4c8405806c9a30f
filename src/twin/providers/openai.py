"""
OpenAI Provider.

Implements both the generation and the embedding port for OpenAI models.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..domain.entities import ConversationTurn
from ..domain.ports import IEmbeddingProvider, IGenerationProvider
from ..exceptions import EmbeddingError, ReplyGenerationError
from .base import BaseProvider, LLMProviderConfig

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring openai if not used
try:
    import openai
    from openai import AsyncOpenAI

    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False
    openai = None
    AsyncOpenAI = None


class OpenAIProvider(BaseProvider, IGenerationProvider, IEmbeddingProvider):
    """OpenAI provider implementation.

    Supports:
    - Chat completions for replies and analysis prompts
    - Embeddings (text-embedding-3-small/large), with optional
      dimension reduction

    Usage:
        config = LLMProviderConfig(
            api_key="sk-...",
            model="gpt-4o-mini",
            embedding_model="text-embedding-3-small",
            embedding_dimension=768,
        )
        provider = OpenAIProvider(config)
        reply = await provider.generate_reply(context, history, "Hi!")
    """

    provider_name = "openai"

    # Default models
    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

    # Only the v3 models accept the `dimensions` parameter
    RESIZABLE_MODELS = {"text-embedding-3-small", "text-embedding-3-large"}

    def __init__(self, config: LLMProviderConfig):
        """Initialize the OpenAI provider.

        Args:
            config: Provider configuration

        Raises:
            ImportError: If openai package is not installed
        """
        if not OPENAI_AVAILABLE:
            raise ImportError(
                "openai package is required for OpenAIProvider. "
                "Install with: pip install openai"
            )

        super().__init__(config)

        self.embedding_model = (
            config.embedding_model or self.DEFAULT_EMBEDDING_MODEL
        )

        self.client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    # ============================================
    # Generation
    # ============================================

    async def _chat(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: Optional[int],
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited by OpenAI: {e}")
            raise ReplyGenerationError(
                f"Rate limited: {e}", provider=self.provider_name, cause=e
            )
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            raise ReplyGenerationError(
                f"Request timed out: {e}", provider=self.provider_name, cause=e
            )
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise ReplyGenerationError(
                f"API error: {e}", provider=self.provider_name, cause=e
            )

        choice = response.choices[0] if response.choices else None
        content = choice.message.content if choice else None
        if not content:
            raise ReplyGenerationError(
                "OpenAI returned an empty completion",
                provider=self.provider_name,
            )
        return content.strip()

    async def generate_reply(
        self,
        context: str,
        history: list[ConversationTurn],
        utterance: str,
    ) -> str:
        """Generate a reply in the twin's voice.

        Raises:
            ReplyGenerationError: On API errors or an empty completion
        """
        messages = [{"role": "system", "content": context}]
        messages.extend(self._format_history(history))
        messages.append({"role": "user", "content": utterance})
        return await self._chat(
            messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        """Generate a single completion for an analysis prompt."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return await self._chat(messages, temperature=temperature, max_tokens=max_tokens)

    # ============================================
    # Embeddings
    # ============================================

    def _embedding_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self.embedding_model}
        if (
            self.config.embedding_dimension
            and self.embedding_model in self.RESIZABLE_MODELS
        ):
            kwargs["dimensions"] = self.config.embedding_dimension
        return kwargs

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding for text.

        Raises:
            EmbeddingError: On API errors
        """
        try:
            response = await self.client.embeddings.create(
                input=text,
                **self._embedding_kwargs(),
            )
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited during embedding: {e}")
            raise EmbeddingError(
                f"Rate limited: {e}", provider=self.provider_name, cause=e
            )
        except openai.APIError as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise EmbeddingError(
                f"Embedding failed: {e}", provider=self.provider_name, cause=e
            )

        return list(response.data[0].embedding)

    async def close(self) -> None:
        """Close the client."""
        await self.client.close()
