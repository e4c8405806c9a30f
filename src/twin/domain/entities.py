"""
Domain entities for the Twin memory core.

These are pure domain objects with no infrastructure dependencies.
They define the records persisted by the stores and the values passed
between the memory manager, the reply pipeline and the extraction pipeline.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional


def clamp_unit(value: float, default: float = 0.5) -> float:
    """Clamp a score into [0, 1]. NaN becomes `default`."""
    value = float(value)
    if math.isnan(value):
        return default
    return max(0.0, min(1.0, value))


# ============================================
# Memory
# ============================================


class MemoryCategory(str, Enum):
    """Kind of fact a memory holds about its owner."""

    FACT = "fact"
    PREFERENCE = "preference"
    EXPERIENCE = "experience"
    RELATIONSHIP = "relationship"
    HABIT = "habit"


class MemorySource(str, Enum):
    """Where a memory came from."""

    CHAT = "chat"  # Extraction pipeline
    MANUAL = "manual"  # Owner created it directly
    WHATSAPP = "whatsapp"  # Import services
    INSTAGRAM = "instagram"
    TWITTER = "twitter"
    PHOTO = "photo"
    QUESTION = "question"


@dataclass
class Memory:
    """A persisted fact about the owner, used as long-term retrieval context.

    Attributes:
        owner_id: Owner of this memory (the twin profile)
        content: Full text, immutable after creation
        category: Memory category
        source: Origin tag
        id: Unique memory identifier
        summary: Optional short form of content
        source_ref: Optional id of the originating record (import, photo, ...)
        importance: Importance score 0-1, clamped on construction
        embedding: Vector embedding, None in degraded mode
        access_count: Times this memory was returned by a ranked search
        created_at: Creation timestamp
        last_accessed_at: Last ranked retrieval timestamp
    """

    owner_id: str
    content: str
    category: MemoryCategory
    source: MemorySource = MemorySource.MANUAL
    id: Optional[uuid.UUID] = None
    summary: Optional[str] = None
    source_ref: Optional[str] = None
    importance: float = 0.5
    embedding: Optional[list[float]] = None
    access_count: int = 0
    created_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()
        if self.created_at is None:
            self.created_at = datetime.utcnow()
        self.category = MemoryCategory(self.category)
        self.source = MemorySource(self.source)
        self.importance = clamp_unit(self.importance)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


@dataclass(frozen=True)
class ScoredMemory:
    """A memory paired with its similarity to a query.

    similarity is None for unranked (recency fallback) results.
    """

    memory: Memory
    similarity: Optional[float] = None


@dataclass
class MemorySearchResult:
    """Result of a memory search.

    Attributes:
        items: Memories in result order
        ranked: False when the embedding capability was unavailable and the
            items are the owner's most recent memories, not a semantic match
    """

    items: list[ScoredMemory] = field(default_factory=list)
    ranked: bool = True

    @property
    def memories(self) -> list[Memory]:
        return [item.memory for item in self.items]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[ScoredMemory]:
        return iter(self.items)


# ============================================
# Insight
# ============================================


@dataclass
class Insight:
    """A confidence-scored structured observation about the owner.

    Append-only: every extraction adds rows, duplicate keys are kept.
    Not embedded, not similarity-searchable.
    """

    owner_id: str
    category: str
    key: str
    value: str
    confidence: float
    source: str = MemorySource.CHAT.value
    id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()
        if self.created_at is None:
            self.created_at = datetime.utcnow()
        self.confidence = clamp_unit(self.confidence)


# ============================================
# Conversation
# ============================================


class TurnRole(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ConversationTurn:
    """A single utterance in a session, owned by the chat layer.

    Attributes:
        session_id: Parent session
        role: user or assistant
        content: Utterance text
        id: Unique turn identifier
        embedding: Best-effort vector attached in the background
        created_at: Creation timestamp
    """

    role: TurnRole
    content: str
    session_id: Optional[uuid.UUID] = None
    id: Optional[uuid.UUID] = None
    embedding: Optional[list[float]] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()
        if self.created_at is None:
            self.created_at = datetime.utcnow()
        self.role = TurnRole(self.role)


@dataclass
class Session:
    """A conversation between the owner and their twin."""

    owner_id: str
    id: Optional[uuid.UUID] = None
    title: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()
        if self.created_at is None:
            self.created_at = datetime.utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at


@dataclass
class PersonaProfile:
    """Persona attributes of the twin, read when composing a reply.

    Maintained by the profile collaborator; this core only reads it.
    """

    owner_id: str
    personality_traits: dict[str, Any] = field(default_factory=dict)
    communication_style: dict[str, Any] = field(default_factory=dict)
    interests: list[str] = field(default_factory=list)
    preferences: dict[str, Any] = field(default_factory=dict)
    learned_facts: list[Any] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.personality_traits
            or self.communication_style
            or self.interests
            or self.preferences
            or self.learned_facts
        )


@dataclass(frozen=True)
class TurnResult:
    """Outcome of handling one utterance.

    Attributes:
        reply: Generated reply text
        session_id: Session the turn was recorded in
        memories_used_count: Long-term memories injected into the context
        message_id: Id of the stored assistant turn (None if not persisted)
    """

    reply: str
    session_id: uuid.UUID
    memories_used_count: int
    message_id: Optional[uuid.UUID] = None


# ============================================
# Extraction Candidates
# ============================================


@dataclass(frozen=True)
class InsightCandidate:
    """An insight proposed by the analysis model, before filtering."""

    category: str
    key: str
    value: str
    confidence: float


@dataclass(frozen=True)
class MemoryCandidate:
    """A memory proposed by the analysis model, before filtering."""

    content: str
    category: MemoryCategory
    importance: float
    summary: Optional[str] = None


@dataclass(frozen=True)
class AnalysisPayload:
    """Decoded structured block of an analysis response."""

    insights: tuple[InsightCandidate, ...] = ()
    memories: tuple[MemoryCandidate, ...] = ()
    suggested_questions: tuple[str, ...] = ()
