"""
Memory Manager.

Entry point for creating, searching and deleting an owner's memories:
- Creation never blocks on the embedding capability; a memory without a
  vector is stored and simply not reachable by semantic search.
- Search ranks by similarity when a query vector is available and falls
  back to recency when it is not.
- Deletion is owner-scoped; a missing or foreign id raises
  MemoryNotFoundError.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional, Union
from uuid import UUID

from ..domain.entities import (
    Memory,
    MemoryCategory,
    MemorySearchResult,
    MemorySource,
    ScoredMemory,
)
from ..domain.ports import IMemoryStore
from ..exceptions import MemoryNotFoundError, ValidationError
from .embedding import EmbeddingService

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 5000
MAX_SUMMARY_LENGTH = 200
MAX_SEARCH_LIMIT = 50


def _parse_category(category: Union[MemoryCategory, str]) -> MemoryCategory:
    try:
        return MemoryCategory(category)
    except ValueError:
        valid = ", ".join(c.value for c in MemoryCategory)
        raise ValidationError(
            f"Unknown memory category '{category}' (expected one of: {valid})",
            field="category",
        )


def _parse_source(source: Union[MemorySource, str]) -> MemorySource:
    try:
        return MemorySource(source)
    except ValueError:
        raise ValidationError(f"Unknown memory source '{source}'", field="source")


class MemoryManager:
    """Creates, retrieves and deletes long-term memories.

    Usage:
        manager = MemoryManager(memory_store=store, embeddings=embedding_service)

        memory = await manager.create_memory(
            owner_id="twin-1",
            content="User loves hiking in the Alps",
            category="preference",
            source="chat",
            importance=0.8,
        )

        result = await manager.search_memories("twin-1", "outdoor hobbies")
        for item in result:
            print(item.memory.content, item.similarity)
    """

    def __init__(
        self,
        memory_store: IMemoryStore,
        embeddings: EmbeddingService,
    ):
        """Initialize the memory manager.

        Args:
            memory_store: Persistence for memories
            embeddings: Never-throwing embedding capability
        """
        self.memory_store = memory_store
        self.embeddings = embeddings

    async def create_memory(
        self,
        owner_id: str,
        content: str,
        category: Union[MemoryCategory, str],
        source: Union[MemorySource, str] = MemorySource.MANUAL,
        summary: Optional[str] = None,
        source_ref: Optional[str] = None,
        importance: float = 0.5,
    ) -> Memory:
        """Create and persist a memory.

        The content is embedded first; if no vector comes back the memory
        is still stored, without one. Importance is clamped into [0, 1].

        Raises:
            ValidationError: Empty or oversized content, oversized summary,
                non-finite importance, unknown category or source
        """
        if content is None or not content.strip():
            raise ValidationError("Memory content must not be empty", field="content")
        if len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Memory content exceeds {MAX_CONTENT_LENGTH} characters",
                field="content",
            )
        if summary is not None and len(summary) > MAX_SUMMARY_LENGTH:
            raise ValidationError(
                f"Memory summary exceeds {MAX_SUMMARY_LENGTH} characters",
                field="summary",
            )
        if importance is None or not math.isfinite(importance):
            raise ValidationError(
                "Memory importance must be a finite number", field="importance"
            )

        memory = Memory(
            owner_id=owner_id,
            content=content,
            summary=summary,
            category=_parse_category(category),
            source=_parse_source(source),
            source_ref=source_ref,
            importance=importance,
        )

        memory.embedding = await self.embeddings.embed(content)
        if memory.embedding is None:
            logger.warning(
                f"Storing memory {memory.id} without embedding; "
                "it will not be reachable by semantic search"
            )

        stored = await self.memory_store.insert(memory)
        logger.debug(f"Created {stored.category.value} memory {stored.id} for {owner_id}")
        return stored

    async def search_memories(
        self,
        owner_id: str,
        query: str,
        limit: int = 5,
        min_similarity: float = 0.5,
        category: Optional[Union[MemoryCategory, str]] = None,
    ) -> MemorySearchResult:
        """Find the memories most relevant to query.

        When the query cannot be embedded the owner's most recent memories
        are returned instead, with ranked=False and no scores. Ranked hits
        have their access tracking bumped; a failure there is only logged.

        Raises:
            ValidationError: limit outside 1..50 or unknown category
        """
        if limit < 1 or limit > MAX_SEARCH_LIMIT:
            raise ValidationError(
                f"Search limit must be between 1 and {MAX_SEARCH_LIMIT}",
                field="limit",
            )
        parsed_category = _parse_category(category) if category is not None else None

        query_vector = await self.embeddings.embed(query, query=True)
        if query_vector is None:
            logger.warning("Query embedding unavailable, falling back to recent memories")
            recent = await self.memory_store.recency_search(owner_id, limit=limit)
            return MemorySearchResult(
                items=[ScoredMemory(memory=m) for m in recent],
                ranked=False,
            )

        items = await self.memory_store.similarity_search(
            owner_id,
            query_vector,
            category=parsed_category,
            min_score=min_similarity,
            limit=limit,
        )

        if items:
            try:
                await self.memory_store.increment_access([item.memory.id for item in items])
            except Exception as e:
                logger.warning(f"Failed to update memory access tracking: {e}")

        logger.debug(f"Found {len(items)} relevant memories for query: {query[:50]}...")
        return MemorySearchResult(items=items, ranked=True)

    async def delete_memory(self, owner_id: str, memory_id: UUID) -> None:
        """Delete one of the owner's memories.

        Raises:
            MemoryNotFoundError: The id does not exist or belongs to
                another owner
        """
        deleted = await self.memory_store.delete(owner_id, memory_id)
        if not deleted:
            raise MemoryNotFoundError(memory_id)

    async def delete_memories_by_source(self, owner_id: str, source_ref: str) -> int:
        """Remove every memory derived from a deleted origin record."""
        return await self.memory_store.delete_by_source(owner_id, source_ref)

    async def get_recent_memories(self, owner_id: str, limit: int = 10) -> list[Memory]:
        return await self.memory_store.recency_search(owner_id, limit=limit)

    async def get_important_memories(self, owner_id: str, limit: int = 10) -> list[Memory]:
        return await self.memory_store.important(owner_id, limit=limit)

    async def list_memories(
        self,
        owner_id: str,
        category: Optional[Union[MemoryCategory, str]] = None,
        page: int = 1,
        page_size: int = 20,
        sort: str = "recent",
    ) -> dict[str, Any]:
        """Return one page of memories plus pagination metadata."""
        if page < 1:
            raise ValidationError("Page must be at least 1", field="page")
        if page_size < 1 or page_size > MAX_SEARCH_LIMIT:
            raise ValidationError(
                f"Page size must be between 1 and {MAX_SEARCH_LIMIT}",
                field="page_size",
            )
        if sort not in ("recent", "important"):
            raise ValidationError(f"Unknown sort order '{sort}'", field="sort")
        parsed_category = _parse_category(category) if category is not None else None

        memories = await self.memory_store.list(
            owner_id,
            category=parsed_category,
            offset=(page - 1) * page_size,
            limit=page_size,
            sort=sort,
        )
        total = await self.memory_store.count(owner_id, category=parsed_category)
        return {
            "memories": memories,
            "total": total,
            "page": page,
            "page_size": page_size,
            "pages": (total + page_size - 1) // page_size,
        }

    async def get_memory_stats(self, owner_id: str) -> dict[str, Any]:
        return await self.memory_store.stats(owner_id)
