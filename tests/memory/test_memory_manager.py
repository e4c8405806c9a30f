"""
Tests for the MemoryManager.

Covers creation with and without embeddings, similarity and recency
search, owner-scoped deletion, and the listing/stats helpers.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from src.twin.domain.entities import (
    Insight,
    Memory,
    MemoryCategory,
    MemorySource,
    clamp_unit,
)
from src.twin.exceptions import MemoryNotFoundError, ValidationError
from src.twin.memory.manager import MemoryManager


OWNER = "twin-u1"
OTHER_OWNER = "twin-u2"


class TestCreateMemory:
    """Tests for create_memory."""

    @pytest.mark.asyncio
    async def test_stores_memory_with_embedding(self, memory_manager, memory_store):
        memory = await memory_manager.create_memory(
            OWNER, "I love jazz music", MemoryCategory.PREFERENCE, importance=0.8
        )

        assert memory.has_embedding
        assert memory.importance == 0.8
        assert await memory_store.count(OWNER) == 1

    @pytest.mark.asyncio
    async def test_accepts_string_category_and_source(self, memory_manager):
        memory = await memory_manager.create_memory(
            OWNER, "My sister lives in Izmir", "relationship", source="whatsapp"
        )

        assert memory.category == MemoryCategory.RELATIONSHIP
        assert memory.source == MemorySource.WHATSAPP

    @pytest.mark.asyncio
    async def test_importance_defaults_to_half(self, memory_manager):
        memory = await memory_manager.create_memory(OWNER, "Likes tea", "preference")
        assert memory.importance == 0.5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("given,stored", [(1.5, 1.0), (-0.2, 0.0), (0.3, 0.3)])
    async def test_importance_is_clamped(self, memory_manager, given, stored):
        memory = await memory_manager.create_memory(
            OWNER, "Runs every morning", "habit", importance=given
        )
        assert memory.importance == stored

    @pytest.mark.asyncio
    @pytest.mark.parametrize("importance", [float("nan"), float("inf"), float("-inf")])
    async def test_rejects_non_finite_importance(
        self, memory_manager, memory_store, importance
    ):
        with pytest.raises(ValidationError) as exc_info:
            await memory_manager.create_memory(
                OWNER, "Runs every morning", "habit", importance=importance
            )

        assert exc_info.value.field == "importance"
        assert await memory_store.count(OWNER) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   ", None])
    async def test_rejects_empty_content(self, memory_manager, content):
        with pytest.raises(ValidationError) as exc_info:
            await memory_manager.create_memory(OWNER, content, "fact")
        assert exc_info.value.field == "content"

    @pytest.mark.asyncio
    async def test_rejects_oversized_content(self, memory_manager):
        with pytest.raises(ValidationError):
            await memory_manager.create_memory(OWNER, "x" * 5001, "fact")

    @pytest.mark.asyncio
    async def test_rejects_unknown_category(self, memory_manager, memory_store):
        with pytest.raises(ValidationError) as exc_info:
            await memory_manager.create_memory(OWNER, "Something", "opinion")

        assert exc_info.value.field == "category"
        assert await memory_store.count(OWNER) == 0

    @pytest.mark.asyncio
    async def test_rejects_long_summary(self, memory_manager):
        with pytest.raises(ValidationError):
            await memory_manager.create_memory(
                OWNER, "Something", "fact", summary="s" * 201
            )

    @pytest.mark.asyncio
    async def test_stores_without_vector_when_embedding_unavailable(
        self, memory_store, degraded_embeddings
    ):
        manager = MemoryManager(memory_store, degraded_embeddings)

        memory = await manager.create_memory(OWNER, "I love jazz music", "preference")

        assert memory.embedding is None
        assert await memory_store.count(OWNER) == 1


class TestSearchMemories:
    """Tests for search_memories."""

    @pytest.mark.asyncio
    async def test_finds_semantically_related_memory(self, memory_manager):
        created = await memory_manager.create_memory(
            OWNER, "I love jazz music", MemoryCategory.PREFERENCE, importance=0.8
        )

        result = await memory_manager.search_memories(
            OWNER, "what music do you like", min_similarity=0.3
        )

        assert result.ranked
        assert [m.id for m in result.memories] == [created.id]
        assert result.items[0].similarity >= 0.3

    @pytest.mark.asyncio
    async def test_category_filter_excludes_higher_scoring_memory(self, memory_manager):
        preference = await memory_manager.create_memory(
            OWNER, "I like pizza and jazz music", "preference"
        )
        await memory_manager.create_memory(
            OWNER, "Went to a jazz music festival", "experience"
        )

        unfiltered = await memory_manager.search_memories(
            OWNER, "jazz music", min_similarity=0.3
        )
        filtered = await memory_manager.search_memories(
            OWNER, "jazz music", min_similarity=0.3, category="preference"
        )

        assert unfiltered.items[0].memory.category == MemoryCategory.EXPERIENCE
        assert [m.id for m in filtered.memories] == [preference.id]

    @pytest.mark.asyncio
    async def test_min_similarity_filters_unrelated(self, memory_manager):
        await memory_manager.create_memory(OWNER, "Loves cooking pizza", "preference")

        result = await memory_manager.search_memories(
            OWNER, "mountain hiking", min_similarity=0.5
        )

        assert len(result) == 0

    @pytest.mark.asyncio
    async def test_results_scoped_to_owner(self, memory_manager):
        await memory_manager.create_memory(OTHER_OWNER, "I love jazz music", "preference")

        result = await memory_manager.search_memories(OWNER, "music")

        assert len(result) == 0

    @pytest.mark.asyncio
    async def test_query_embedded_as_search_query(
        self, memory_manager, embedding_provider
    ):
        embedding_provider.embed_query = AsyncMock(
            side_effect=embedding_provider.embed_query
        )
        await memory_manager.create_memory(OWNER, "I love jazz music", "preference")

        await memory_manager.search_memories(OWNER, "jazz")

        embedding_provider.embed_query.assert_awaited_once_with("jazz")
        assert embedding_provider.calls == ["I love jazz music", "jazz"]

    @pytest.mark.asyncio
    async def test_bumps_access_tracking(self, memory_manager, memory_store):
        created = await memory_manager.create_memory(OWNER, "I love jazz music", "preference")

        await memory_manager.search_memories(OWNER, "jazz")
        await memory_manager.search_memories(OWNER, "jazz")

        stored = (await memory_store.recency_search(OWNER))[0]
        assert stored.id == created.id
        assert stored.access_count == 2
        assert stored.last_accessed_at is not None

    @pytest.mark.asyncio
    async def test_access_bump_failure_does_not_fail_search(
        self, memory_manager, memory_store
    ):
        await memory_manager.create_memory(OWNER, "I love jazz music", "preference")
        memory_store.increment_access = AsyncMock(side_effect=RuntimeError("db gone"))

        result = await memory_manager.search_memories(OWNER, "jazz")

        assert len(result) == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_recency_when_embedding_unavailable(
        self, memory_store, degraded_embeddings
    ):
        manager = MemoryManager(memory_store, degraded_embeddings)
        base = datetime(2024, 1, 1)
        for i, text in enumerate(["oldest", "middle", "newest"]):
            memory = await manager.create_memory(OWNER, text, "fact")
            memory.created_at = base + timedelta(minutes=i)

        result = await manager.search_memories(OWNER, "anything", limit=2)

        assert not result.ranked
        assert [m.content for m in result.memories] == ["newest", "middle"]
        assert all(item.similarity is None for item in result)

    @pytest.mark.asyncio
    async def test_recency_fallback_skips_access_tracking(
        self, memory_store, degraded_embeddings
    ):
        manager = MemoryManager(memory_store, degraded_embeddings)
        await manager.create_memory(OWNER, "Something", "fact")

        await manager.search_memories(OWNER, "anything")

        assert (await memory_store.recency_search(OWNER))[0].access_count == 0

    @pytest.mark.asyncio
    async def test_memories_without_vector_excluded_from_ranked_search(
        self, memory_store, embeddings, degraded_embeddings
    ):
        await MemoryManager(memory_store, degraded_embeddings).create_memory(
            OWNER, "I love jazz music", "preference"
        )
        manager = MemoryManager(memory_store, embeddings)

        result = await manager.search_memories(OWNER, "jazz music", min_similarity=0.0)

        assert result.ranked
        assert len(result) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 51])
    async def test_rejects_out_of_range_limit(self, memory_manager, limit):
        with pytest.raises(ValidationError):
            await memory_manager.search_memories(OWNER, "jazz", limit=limit)


class TestDeleteMemory:
    """Tests for owner-scoped deletion."""

    @pytest.mark.asyncio
    async def test_second_delete_raises_not_found(self, memory_manager, memory_store):
        memory = await memory_manager.create_memory(OWNER, "Temporary", "fact")

        await memory_manager.delete_memory(OWNER, memory.id)
        with pytest.raises(MemoryNotFoundError) as exc_info:
            await memory_manager.delete_memory(OWNER, memory.id)

        assert exc_info.value.code == "MEMORY_NOT_FOUND"
        assert await memory_store.count(OWNER) == 0

    @pytest.mark.asyncio
    async def test_cannot_delete_other_owners_memory(self, memory_manager, memory_store):
        memory = await memory_manager.create_memory(OTHER_OWNER, "Private", "fact")

        with pytest.raises(MemoryNotFoundError):
            await memory_manager.delete_memory(OWNER, memory.id)

        assert await memory_store.count(OTHER_OWNER) == 1

    @pytest.mark.asyncio
    async def test_unknown_id_raises_not_found(self, memory_manager):
        with pytest.raises(MemoryNotFoundError):
            await memory_manager.delete_memory(OWNER, uuid4())

    @pytest.mark.asyncio
    async def test_delete_by_source_cascades(self, memory_manager, memory_store):
        for text in ("Chat with Ali", "Trip to Bodrum"):
            await memory_manager.create_memory(
                OWNER, text, "experience", source="whatsapp", source_ref="import-1"
            )
        await memory_manager.create_memory(
            OWNER, "Other import", "experience", source="whatsapp", source_ref="import-2"
        )

        deleted = await memory_manager.delete_memories_by_source(OWNER, "import-1")

        assert deleted == 2
        remaining = await memory_store.recency_search(OWNER)
        assert [m.source_ref for m in remaining] == ["import-2"]


class TestListingAndStats:
    """Tests for the listing helpers."""

    @pytest.mark.asyncio
    async def test_important_memories_ordering(self, memory_manager):
        await memory_manager.create_memory(OWNER, "Low", "fact", importance=0.2)
        await memory_manager.create_memory(OWNER, "High", "fact", importance=0.9)
        await memory_manager.create_memory(OWNER, "Mid", "fact", importance=0.5)

        important = await memory_manager.get_important_memories(OWNER, limit=2)

        assert [m.content for m in important] == ["High", "Mid"]

    @pytest.mark.asyncio
    async def test_list_memories_paginates(self, memory_manager):
        for i in range(5):
            await memory_manager.create_memory(OWNER, f"Fact {i}", "fact")
        await memory_manager.create_memory(OWNER, "Likes tea", "preference")

        page = await memory_manager.list_memories(
            OWNER, category="fact", page=2, page_size=2
        )

        assert page["total"] == 5
        assert page["pages"] == 3
        assert len(page["memories"]) == 2
        assert all(m.category == MemoryCategory.FACT for m in page["memories"])

    @pytest.mark.asyncio
    async def test_list_memories_rejects_unknown_sort(self, memory_manager):
        with pytest.raises(ValidationError):
            await memory_manager.list_memories(OWNER, sort="random")

    @pytest.mark.asyncio
    async def test_stats(self, memory_manager):
        await memory_manager.create_memory(OWNER, "A", "fact", importance=0.4)
        await memory_manager.create_memory(
            OWNER, "B", "preference", source="chat", importance=0.8
        )

        stats = await memory_manager.get_memory_stats(OWNER)

        assert stats["total"] == 2
        assert stats["by_category"] == {"fact": 1, "preference": 1}
        assert stats["by_source"] == {"manual": 1, "chat": 1}
        assert stats["avg_importance"] == pytest.approx(0.6)


class TestClampUnit:

    @pytest.mark.parametrize("given,expected", [
        (0.7, 0.7),
        (2.0, 1.0),
        (-1.0, 0.0),
        (float("inf"), 1.0),
        (float("nan"), 0.5),
    ])
    def test_clamp(self, given, expected):
        assert clamp_unit(given) == expected

    def test_nan_scores_on_records_fall_back(self):
        memory = Memory(owner_id=OWNER, content="x", category=MemoryCategory.FACT, importance=float("nan"))
        insight = Insight(
            owner_id=OWNER, category="preference", key="k", value="v",
            confidence=float("nan"),
        )

        assert memory.importance == 0.5
        assert insight.confidence == 0.5
