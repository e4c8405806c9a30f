"""
Port interfaces (abstract base classes) for the Twin memory core.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID

if TYPE_CHECKING:
    from .entities import (
        ConversationTurn,
        Insight,
        Memory,
        MemoryCategory,
        PersonaProfile,
        ScoredMemory,
        Session,
    )


# ============================================
# External Capabilities
# ============================================


class IEmbeddingProvider(ABC):
    """Interface for embedding providers (OpenAI, Voyage AI, ...).

    Implementations may raise on failure. Callers in the core never use a
    provider directly; they go through EmbeddingService, which turns every
    failure into an absent vector.
    """

    embedding_model: str

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate an embedding for the given text."""
        pass

    async def embed_query(self, text: str) -> list[float]:
        """Embed a search query.

        Providers with asymmetric retrieval models override this; the
        default embeds the query like any stored text.
        """
        return await self.embed(text)


class IGenerationProvider(ABC):
    """Interface for text generation providers (Claude, GPT, ...)."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier (e.g., 'claude-sonnet-4-5', 'gpt-4o')."""
        pass

    @abstractmethod
    async def generate_reply(
        self,
        context: str,
        history: list[ConversationTurn],
        utterance: str,
    ) -> str:
        """Generate a conversational reply.

        Args:
            context: System context block (persona + memories)
            history: Short-term conversation history, oldest first
            utterance: The new user utterance

        Returns:
            Reply text

        Raises:
            ReplyGenerationError: When no reply can be produced
        """
        pass

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        """Generate a single completion for an analysis prompt."""
        pass


# ============================================
# Memory Store Interface
# ============================================


class IMemoryStore(ABC):
    """Interface for long-term memory persistence and retrieval."""

    @abstractmethod
    async def insert(self, memory: Memory) -> Memory:
        """Insert a memory atomically. The embedding is optional."""
        pass

    @abstractmethod
    async def similarity_search(
        self,
        owner_id: str,
        query_vector: list[float],
        category: Optional[MemoryCategory] = None,
        min_score: float = 0.0,
        limit: int = 5,
    ) -> list[ScoredMemory]:
        """Rank the owner's embedded memories by cosine similarity.

        score = 1 - cosine_distance(query_vector, memory.embedding).
        Memories without an embedding are never returned.
        """
        pass

    @abstractmethod
    async def recency_search(self, owner_id: str, limit: int = 10) -> list[Memory]:
        """Return the owner's memories, newest first."""
        pass

    @abstractmethod
    async def increment_access(self, memory_ids: list[UUID]) -> None:
        """Bump access_count and last_accessed_at. Not exactly-once."""
        pass

    @abstractmethod
    async def delete(self, owner_id: str, memory_id: UUID) -> bool:
        """Hard-delete one of the owner's memories. False if nothing matched."""
        pass

    @abstractmethod
    async def delete_by_source(self, owner_id: str, source_ref: str) -> int:
        """Delete all of the owner's memories derived from source_ref."""
        pass

    @abstractmethod
    async def important(self, owner_id: str, limit: int = 10) -> list[Memory]:
        """Return memories ordered by importance, then access count."""
        pass

    @abstractmethod
    async def list(
        self,
        owner_id: str,
        category: Optional[MemoryCategory] = None,
        offset: int = 0,
        limit: int = 20,
        sort: str = "recent",
    ) -> list[Memory]:
        """Page through the owner's memories ("recent" or "important")."""
        pass

    @abstractmethod
    async def count(
        self, owner_id: str, category: Optional[MemoryCategory] = None
    ) -> int:
        """Count the owner's memories."""
        pass

    @abstractmethod
    async def stats(self, owner_id: str) -> dict[str, Any]:
        """Return total, by_category, by_source and avg_importance."""
        pass


class IInsightStore(ABC):
    """Interface for append-only insight persistence."""

    @abstractmethod
    async def insert(self, insight: Insight) -> Insight:
        """Append one insight."""
        pass

    async def insert_many(self, insights: list[Insight]) -> int:
        """Append several insights. Returns the number stored."""
        for insight in insights:
            await self.insert(insight)
        return len(insights)

    @abstractmethod
    async def list(
        self,
        owner_id: str,
        category: Optional[str] = None,
        limit: int = 50,
    ) -> list[Insight]:
        """Return the owner's insights, newest first."""
        pass


# ============================================
# Collaborator Stores
# ============================================


class IConversationStore(ABC):
    """Interface for session and turn persistence (owned by the chat layer)."""

    @abstractmethod
    async def create_session(self, session: Session) -> Session:
        """Create a new session."""
        pass

    @abstractmethod
    async def get_session(self, session_id: UUID, owner_id: str) -> Optional[Session]:
        """Get a session by ID, scoped to its owner."""
        pass

    @abstractmethod
    async def update_title(self, session_id: UUID, owner_id: str, title: str) -> None:
        """Set the session title."""
        pass

    @abstractmethod
    async def add_turn(self, turn: ConversationTurn) -> ConversationTurn:
        """Append a turn to its session."""
        pass

    @abstractmethod
    async def get_recent_turns(
        self, session_id: UUID, limit: int = 20
    ) -> list[ConversationTurn]:
        """Return the last `limit` turns, oldest first."""
        pass

    @abstractmethod
    async def attach_embedding(self, turn_id: UUID, embedding: list[float]) -> None:
        """Store a vector on an existing turn."""
        pass


class IPersonaStore(ABC):
    """Interface for reading the twin's persona profile."""

    @abstractmethod
    async def get(self, owner_id: str) -> Optional[PersonaProfile]:
        """Get the persona for an owner, or None."""
        pass
