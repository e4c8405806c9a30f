"""Domain entities and port interfaces for the Twin memory core."""

from .entities import (
    AnalysisPayload,
    ConversationTurn,
    Insight,
    InsightCandidate,
    Memory,
    MemoryCandidate,
    MemoryCategory,
    MemorySearchResult,
    MemorySource,
    PersonaProfile,
    ScoredMemory,
    Session,
    TurnResult,
    TurnRole,
    clamp_unit,
)
from .ports import (
    IConversationStore,
    IEmbeddingProvider,
    IGenerationProvider,
    IInsightStore,
    IMemoryStore,
    IPersonaStore,
)

__all__ = [
    # Entities
    "AnalysisPayload",
    "ConversationTurn",
    "Insight",
    "InsightCandidate",
    "Memory",
    "MemoryCandidate",
    "MemoryCategory",
    "MemorySearchResult",
    "MemorySource",
    "PersonaProfile",
    "ScoredMemory",
    "Session",
    "TurnResult",
    "TurnRole",
    "clamp_unit",
    # Ports
    "IConversationStore",
    "IEmbeddingProvider",
    "IGenerationProvider",
    "IInsightStore",
    "IMemoryStore",
    "IPersonaStore",
]
