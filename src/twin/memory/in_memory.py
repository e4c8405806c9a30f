"""
In-process store implementations.

Dict-backed versions of every store port, for local development and tests.
Similarity search computes cosine similarity in Python, with the same
contract as the pgvector store: score = 1 - cosine_distance, memories
without a vector are skipped.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from ..domain.entities import (
    ConversationTurn,
    Insight,
    Memory,
    MemoryCategory,
    PersonaProfile,
    ScoredMemory,
    Session,
)
from ..domain.ports import (
    IConversationStore,
    IInsightStore,
    IMemoryStore,
    IPersonaStore,
)

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 if either has zero norm."""
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions differ: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryMemoryStore(IMemoryStore):
    """Memory store held in a dict keyed by memory id."""

    def __init__(self):
        self._memories: dict[UUID, Memory] = {}

    def _owned(self, owner_id: str, category: Optional[MemoryCategory] = None) -> list[Memory]:
        items = [m for m in self._memories.values() if m.owner_id == owner_id]
        if category is not None:
            category = MemoryCategory(category)
            items = [m for m in items if m.category == category]
        return items

    async def insert(self, memory: Memory) -> Memory:
        self._memories[memory.id] = memory
        return memory

    async def similarity_search(
        self,
        owner_id: str,
        query_vector: list[float],
        category: Optional[MemoryCategory] = None,
        min_score: float = 0.0,
        limit: int = 5,
    ) -> list[ScoredMemory]:
        scored = []
        for memory in self._owned(owner_id, category):
            if not memory.embedding:
                continue
            score = cosine_similarity(query_vector, memory.embedding)
            if score >= min_score:
                scored.append(ScoredMemory(memory=memory, similarity=score))
        scored.sort(key=lambda s: s.similarity, reverse=True)
        return scored[:limit]

    async def recency_search(self, owner_id: str, limit: int = 10) -> list[Memory]:
        items = sorted(self._owned(owner_id), key=lambda m: m.created_at, reverse=True)
        return items[:limit]

    async def increment_access(self, memory_ids: list[UUID]) -> None:
        now = datetime.utcnow()
        for memory_id in memory_ids:
            memory = self._memories.get(memory_id)
            if memory is not None:
                memory.access_count += 1
                memory.last_accessed_at = now

    async def delete(self, owner_id: str, memory_id: UUID) -> bool:
        memory = self._memories.get(memory_id)
        if memory is None or memory.owner_id != owner_id:
            return False
        del self._memories[memory_id]
        return True

    async def delete_by_source(self, owner_id: str, source_ref: str) -> int:
        doomed = [m.id for m in self._owned(owner_id) if m.source_ref == source_ref]
        for memory_id in doomed:
            del self._memories[memory_id]
        return len(doomed)

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
        items = self._owned(owner_id, category)
        if sort == "recent":
            items.sort(key=lambda m: m.created_at, reverse=True)
        elif sort == "important":
            items.sort(
                key=lambda m: (m.importance, m.access_count, m.created_at),
                reverse=True,
            )
        else:
            raise ValueError(f"Unknown sort order: {sort}")
        return items[offset:offset + limit]

    async def count(
        self, owner_id: str, category: Optional[MemoryCategory] = None
    ) -> int:
        return len(self._owned(owner_id, category))

    async def stats(self, owner_id: str) -> dict[str, Any]:
        items = self._owned(owner_id)
        by_category: dict[str, int] = {}
        by_source: dict[str, int] = {}
        for m in items:
            by_category[m.category.value] = by_category.get(m.category.value, 0) + 1
            by_source[m.source.value] = by_source.get(m.source.value, 0) + 1
        avg = sum(m.importance for m in items) / len(items) if items else 0.0
        return {
            "total": len(items),
            "by_category": by_category,
            "by_source": by_source,
            "avg_importance": avg,
        }


class InMemoryInsightStore(IInsightStore):
    """Append-only insight list."""

    def __init__(self):
        self._insights: list[Insight] = []

    async def insert(self, insight: Insight) -> Insight:
        self._insights.append(insight)
        return insight

    async def list(
        self,
        owner_id: str,
        category: Optional[str] = None,
        limit: int = 50,
    ) -> list[Insight]:
        items = [
            i for i in reversed(self._insights)
            if i.owner_id == owner_id and (category is None or i.category == category)
        ]
        return items[:limit]


class InMemoryConversationStore(IConversationStore):
    """Sessions and turns held in dicts."""

    def __init__(self):
        self.sessions: dict[UUID, Session] = {}
        self.turns: dict[UUID, list[ConversationTurn]] = {}

    async def create_session(self, session: Session) -> Session:
        self.sessions[session.id] = session
        self.turns.setdefault(session.id, [])
        return session

    async def get_session(self, session_id: UUID, owner_id: str) -> Optional[Session]:
        session = self.sessions.get(session_id)
        if session is None or session.owner_id != owner_id:
            return None
        return session

    async def update_title(self, session_id: UUID, owner_id: str, title: str) -> None:
        session = await self.get_session(session_id, owner_id)
        if session is not None:
            session.title = title
            session.updated_at = datetime.utcnow()

    async def add_turn(self, turn: ConversationTurn) -> ConversationTurn:
        self.turns.setdefault(turn.session_id, []).append(turn)
        session = self.sessions.get(turn.session_id)
        if session is not None:
            session.updated_at = datetime.utcnow()
        return turn

    async def get_recent_turns(
        self, session_id: UUID, limit: int = 20
    ) -> list[ConversationTurn]:
        turns = self.turns.get(session_id, [])
        return list(turns[-limit:]) if limit > 0 else []

    async def attach_embedding(self, turn_id: UUID, embedding: list[float]) -> None:
        for turns in self.turns.values():
            for turn in turns:
                if turn.id == turn_id:
                    turn.embedding = list(embedding)
                    return


class InMemoryPersonaStore(IPersonaStore):
    """Persona profiles keyed by owner."""

    def __init__(self, profiles: Optional[dict[str, PersonaProfile]] = None):
        self.profiles: dict[str, PersonaProfile] = dict(profiles or {})

    async def get(self, owner_id: str) -> Optional[PersonaProfile]:
        return self.profiles.get(owner_id)
