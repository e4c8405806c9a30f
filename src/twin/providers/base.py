"""
Base Provider Implementation.

Provides common configuration and message formatting for all providers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain.entities import ConversationTurn

logger = logging.getLogger(__name__)


@dataclass
class LLMProviderConfig:
    """Configuration for LLM and embedding providers.

    Attributes:
        api_key: API key for the provider
        model: Model name to use for generation
        embedding_model: Model for embeddings (if different)
        embedding_dimension: Requested vector size, None for the model default
        base_url: Optional custom base URL
        timeout: Request timeout in seconds
        max_retries: Maximum retry attempts inside the client library
        temperature: Default temperature
        max_tokens: Default max tokens
    """

    api_key: str
    model: str
    embedding_model: Optional[str] = None
    embedding_dimension: Optional[int] = None
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_retries: int = 3
    temperature: float = 0.7
    max_tokens: int = 1024
    extra: dict[str, Any] = field(default_factory=dict)


class BaseProvider:
    """Common functionality shared by provider implementations."""

    provider_name = "base"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the provider.

        Args:
            config: Provider configuration
        """
        self.config = config

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self.config.model

    def _format_history(self, history: list[ConversationTurn]) -> list[dict[str, str]]:
        """Convert conversation turns to the role/content message format."""
        return [
            {"role": turn.role.value, "content": turn.content}
            for turn in history
            if turn.content
        ]

    async def close(self) -> None:
        """Release the underlying client. Subclasses override when needed."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
