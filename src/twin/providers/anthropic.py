"""
Anthropic Claude Provider.

Implements the generation port for Anthropic's Claude models.
Anthropic has no embedding endpoint; pair it with OpenAI or Voyage AI.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..domain.entities import ConversationTurn
from ..domain.ports import IGenerationProvider
from ..exceptions import ReplyGenerationError
from .base import BaseProvider, LLMProviderConfig

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring anthropic if not used
try:
    import anthropic
    from anthropic import AsyncAnthropic

    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False
    anthropic = None
    AsyncAnthropic = None


class AnthropicProvider(BaseProvider, IGenerationProvider):
    """Anthropic Claude provider implementation.

    Usage:
        config = LLMProviderConfig(
            api_key="sk-ant-...",
            model="claude-sonnet-4-5-20250929",
        )
        provider = AnthropicProvider(config)
        reply = await provider.generate_reply(context, history, "Hi!")
    """

    provider_name = "anthropic"

    DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the Anthropic provider.

        Args:
            config: Provider configuration

        Raises:
            ImportError: If anthropic package is not installed
        """
        if not ANTHROPIC_AVAILABLE:
            raise ImportError(
                "anthropic package is required for AnthropicProvider. "
                "Install with: pip install anthropic"
            )

        super().__init__(config)

        self.client = AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def _format_messages_for_api(
        self, messages: list[dict[str, str]]
    ) -> list[dict[str, Any]]:
        """Make a message list acceptable to the Messages API.

        The API requires the first message to come from the user and roles
        to alternate, so leading assistant turns are dropped and consecutive
        turns of the same role are merged.
        """
        api_messages: list[dict[str, Any]] = []
        for msg in messages:
            if not api_messages and msg["role"] != "user":
                continue
            if api_messages and api_messages[-1]["role"] == msg["role"]:
                api_messages[-1]["content"] += f"\n\n{msg['content']}"
            else:
                api_messages.append(dict(msg))
        return api_messages

    async def _create(
        self,
        system: Optional[str],
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(messages),
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            logger.warning(f"Rate limited by Anthropic: {e}")
            raise ReplyGenerationError(
                f"Rate limited: {e}", provider=self.provider_name, cause=e
            )
        except anthropic.APITimeoutError as e:
            logger.error(f"Anthropic API timeout: {e}")
            raise ReplyGenerationError(
                f"Request timed out: {e}", provider=self.provider_name, cause=e
            )
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise ReplyGenerationError(
                f"API error: {e}", provider=self.provider_name, cause=e
            )

        text = "".join(
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text"
        ).strip()
        if not text:
            raise ReplyGenerationError(
                "Anthropic returned an empty completion",
                provider=self.provider_name,
            )
        return text

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
        messages = self._format_history(history)
        messages.append({"role": "user", "content": utterance})
        return await self._create(
            context,
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
        return await self._create(
            system_prompt,
            [{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )

    async def close(self) -> None:
        """Close the client."""
        await self.client.close()
