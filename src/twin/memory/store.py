"""
PostgreSQL Memory and Insight Stores.

Persists memories with optional pgvector embeddings and ranks them by
cosine similarity. Every query is scoped by owner_id.

Vectors cross the asyncpg boundary as pgvector text literals
("[0.1,0.2,...]") cast with ::vector, so no codec registration is needed.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol
from uuid import UUID

from ..domain.entities import (
    Insight,
    Memory,
    MemoryCategory,
    MemorySource,
    ScoredMemory,
)
from ..domain.ports import IInsightStore, IMemoryStore
from .embedding import parse_vector_literal, to_vector_literal

logger = logging.getLogger(__name__)


class IAsyncDBPool(Protocol):
    """Protocol for async database pool."""

    async def acquire(self): ...
    async def execute(self, query: str, *args) -> str: ...
    async def fetch(self, query: str, *args) -> list[Any]: ...
    async def fetchrow(self, query: str, *args) -> Optional[Any]: ...
    async def fetchval(self, query: str, *args) -> Any: ...


# ============================================
# Schema
# ============================================

SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS vector;

CREATE TABLE IF NOT EXISTS memories (
    id UUID PRIMARY KEY,
    owner_id TEXT NOT NULL,
    content TEXT NOT NULL,
    summary TEXT,
    category TEXT NOT NULL,
    source TEXT NOT NULL,
    source_ref TEXT,
    importance DOUBLE PRECISION NOT NULL DEFAULT 0.5
        CHECK (importance >= 0 AND importance <= 1),
    embedding vector({dimension}),
    access_count INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_accessed_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_memories_owner_created
    ON memories (owner_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_memories_owner_category
    ON memories (owner_id, category);
CREATE INDEX IF NOT EXISTS idx_memories_owner_source_ref
    ON memories (owner_id, source_ref);

CREATE TABLE IF NOT EXISTS insights (
    id UUID PRIMARY KEY,
    owner_id TEXT NOT NULL,
    category TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    confidence DOUBLE PRECISION NOT NULL
        CHECK (confidence >= 0 AND confidence <= 1),
    source TEXT NOT NULL DEFAULT 'chat',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_insights_owner_category
    ON insights (owner_id, category);
"""


async def ensure_schema(db_pool: IAsyncDBPool, dimension: int = 768) -> None:
    """Create the memory and insight tables if they do not exist."""
    async with db_pool.acquire() as conn:
        await conn.execute(SCHEMA_SQL.format(dimension=int(dimension)))
    logger.info(f"Memory schema ready (vector dimension {dimension})")


def _affected_rows(status: str) -> int:
    """Parse the row count from an asyncpg status string ("DELETE 3")."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


MEMORY_COLUMNS = """
    id, owner_id, content, summary, category, source, source_ref,
    importance, embedding::text AS embedding, access_count,
    created_at, last_accessed_at
"""

SORT_ORDERS = {
    "recent": "created_at DESC",
    "important": "importance DESC, access_count DESC, created_at DESC",
}


def _row_to_memory(row) -> Memory:
    return Memory(
        id=row["id"],
        owner_id=row["owner_id"],
        content=row["content"],
        summary=row["summary"],
        category=MemoryCategory(row["category"]),
        source=MemorySource(row["source"]),
        source_ref=row["source_ref"],
        importance=row["importance"],
        embedding=parse_vector_literal(row["embedding"]),
        access_count=row["access_count"],
        created_at=row["created_at"],
        last_accessed_at=row["last_accessed_at"],
    )


# ============================================
# Memory Store
# ============================================


class PostgresMemoryStore(IMemoryStore):
    """pgvector-backed memory store.

    Usage:
        store = PostgresMemoryStore(db_pool)
        await store.insert(Memory(owner_id="twin-1", content="...", category="fact"))
        hits = await store.similarity_search("twin-1", query_vector, min_score=0.5)
    """

    def __init__(self, db_pool: IAsyncDBPool):
        """Initialize the memory store.

        Args:
            db_pool: Async database connection pool
        """
        self.db = db_pool

    async def insert(self, memory: Memory) -> Memory:
        """Insert a memory, with or without its embedding."""
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO memories (
                    id, owner_id, content, summary, category, source,
                    source_ref, importance, embedding
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::vector)
                RETURNING created_at
                """,
                memory.id,
                memory.owner_id,
                memory.content,
                memory.summary,
                memory.category.value,
                memory.source.value,
                memory.source_ref,
                memory.importance,
                to_vector_literal(memory.embedding),
            )
            if row is not None:
                memory.created_at = row["created_at"]

        logger.debug(
            f"Stored memory {memory.id} for {memory.owner_id} "
            f"(embedded={memory.has_embedding})"
        )
        return memory

    async def similarity_search(
        self,
        owner_id: str,
        query_vector: list[float],
        category: Optional[MemoryCategory] = None,
        min_score: float = 0.0,
        limit: int = 5,
    ) -> list[ScoredMemory]:
        """Rank embedded memories by cosine similarity to query_vector."""
        params: list[Any] = [to_vector_literal(query_vector), owner_id, min_score]
        category_clause = ""
        if category is not None:
            params.append(MemoryCategory(category).value)
            category_clause = f"AND category = ${len(params)}"
        params.append(limit)

        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {MEMORY_COLUMNS},
                       1 - (embedding <=> $1::vector) AS similarity
                FROM memories
                WHERE owner_id = $2
                  AND embedding IS NOT NULL
                  AND 1 - (embedding <=> $1::vector) >= $3
                  {category_clause}
                ORDER BY embedding <=> $1::vector
                LIMIT ${len(params)}
                """,
                *params,
            )

        return [
            ScoredMemory(memory=_row_to_memory(row), similarity=float(row["similarity"]))
            for row in rows
        ]

    async def recency_search(self, owner_id: str, limit: int = 10) -> list[Memory]:
        """Return the owner's newest memories."""
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {MEMORY_COLUMNS}
                FROM memories
                WHERE owner_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                owner_id,
                limit,
            )
        return [_row_to_memory(row) for row in rows]

    async def increment_access(self, memory_ids: list[UUID]) -> None:
        """Bump access tracking for the given memories."""
        if not memory_ids:
            return
        async with self.db.acquire() as conn:
            await conn.execute(
                """
                UPDATE memories
                SET access_count = access_count + 1,
                    last_accessed_at = NOW()
                WHERE id = ANY($1::uuid[])
                """,
                list(memory_ids),
            )

    async def delete(self, owner_id: str, memory_id: UUID) -> bool:
        """Delete one memory if it belongs to owner_id."""
        async with self.db.acquire() as conn:
            result = await conn.execute(
                """
                DELETE FROM memories
                WHERE id = $1 AND owner_id = $2
                """,
                memory_id,
                owner_id,
            )

        deleted = _affected_rows(result) > 0
        if deleted:
            logger.info(f"Deleted memory {memory_id} for {owner_id}")
        return deleted

    async def delete_by_source(self, owner_id: str, source_ref: str) -> int:
        """Delete every memory derived from source_ref."""
        async with self.db.acquire() as conn:
            result = await conn.execute(
                """
                DELETE FROM memories
                WHERE owner_id = $1 AND source_ref = $2
                """,
                owner_id,
                source_ref,
            )

        count = _affected_rows(result)
        logger.info(f"Deleted {count} memories from source {source_ref} for {owner_id}")
        return count

    async def important(self, owner_id: str, limit: int = 10) -> list[Memory]:
        return await self.list(owner_id, limit=limit, sort="important")

    async def list(
        self,
        owner_id: str,
        category: Optional[MemoryCategory] = None,
        offset: int = 0,
        limit: int = 20,
        sort: str = "recent",
    ) -> list[Memory]:
        """Page through the owner's memories."""
        order_by = SORT_ORDERS.get(sort)
        if order_by is None:
            raise ValueError(f"Unknown sort order: {sort}")

        params: list[Any] = [owner_id]
        category_clause = ""
        if category is not None:
            params.append(MemoryCategory(category).value)
            category_clause = f"AND category = ${len(params)}"
        params.extend([limit, offset])

        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {MEMORY_COLUMNS}
                FROM memories
                WHERE owner_id = $1
                  {category_clause}
                ORDER BY {order_by}
                LIMIT ${len(params) - 1} OFFSET ${len(params)}
                """,
                *params,
            )
        return [_row_to_memory(row) for row in rows]

    async def count(
        self, owner_id: str, category: Optional[MemoryCategory] = None
    ) -> int:
        async with self.db.acquire() as conn:
            if category is None:
                value = await conn.fetchval(
                    "SELECT COUNT(*) FROM memories WHERE owner_id = $1",
                    owner_id,
                )
            else:
                value = await conn.fetchval(
                    "SELECT COUNT(*) FROM memories WHERE owner_id = $1 AND category = $2",
                    owner_id,
                    MemoryCategory(category).value,
                )
        return int(value or 0)

    async def stats(self, owner_id: str) -> dict[str, Any]:
        """Return counts per category and source plus average importance."""
        async with self.db.acquire() as conn:
            summary = await conn.fetchrow(
                """
                SELECT COUNT(*) AS total,
                       COALESCE(AVG(importance), 0) AS avg_importance
                FROM memories
                WHERE owner_id = $1
                """,
                owner_id,
            )
            by_category = await conn.fetch(
                """
                SELECT category, COUNT(*) AS count
                FROM memories
                WHERE owner_id = $1
                GROUP BY category
                """,
                owner_id,
            )
            by_source = await conn.fetch(
                """
                SELECT source, COUNT(*) AS count
                FROM memories
                WHERE owner_id = $1
                GROUP BY source
                """,
                owner_id,
            )

        return {
            "total": int(summary["total"]) if summary else 0,
            "by_category": {row["category"]: int(row["count"]) for row in by_category},
            "by_source": {row["source"]: int(row["count"]) for row in by_source},
            "avg_importance": float(summary["avg_importance"]) if summary else 0.0,
        }


# ============================================
# Insight Store
# ============================================


class PostgresInsightStore(IInsightStore):
    """Append-only insight store. Duplicate keys are kept."""

    def __init__(self, db_pool: IAsyncDBPool):
        self.db = db_pool

    async def insert(self, insight: Insight) -> Insight:
        async with self.db.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO insights (
                    id, owner_id, category, key, value, confidence, source
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                insight.id,
                insight.owner_id,
                insight.category,
                insight.key,
                insight.value,
                insight.confidence,
                insight.source,
            )
        return insight

    async def insert_many(self, insights: list[Insight]) -> int:
        """Insert several insights in one transaction."""
        if not insights:
            return 0
        async with self.db.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    """
                    INSERT INTO insights (
                        id, owner_id, category, key, value, confidence, source
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                    """,
                    [
                        (
                            i.id,
                            i.owner_id,
                            i.category,
                            i.key,
                            i.value,
                            i.confidence,
                            i.source,
                        )
                        for i in insights
                    ],
                )
        logger.debug(f"Stored {len(insights)} insights")
        return len(insights)

    async def list(
        self,
        owner_id: str,
        category: Optional[str] = None,
        limit: int = 50,
    ) -> list[Insight]:
        async with self.db.acquire() as conn:
            if category is None:
                rows = await conn.fetch(
                    """
                    SELECT id, owner_id, category, key, value, confidence,
                           source, created_at
                    FROM insights
                    WHERE owner_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    owner_id,
                    limit,
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT id, owner_id, category, key, value, confidence,
                           source, created_at
                    FROM insights
                    WHERE owner_id = $1 AND category = $2
                    ORDER BY created_at DESC
                    LIMIT $3
                    """,
                    owner_id,
                    category,
                    limit,
                )

        return [
            Insight(
                id=row["id"],
                owner_id=row["owner_id"],
                category=row["category"],
                key=row["key"],
                value=row["value"],
                confidence=row["confidence"],
                source=row["source"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
