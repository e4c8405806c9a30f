"""Memory system for the twin.

Provides:
- Never-throwing embedding capability
- Semantic memory and insight stores on pgvector
- Session, turn and persona stores
- In-process stores for development and tests
- Memory manager and background knowledge extraction
"""

from .conversation import ConversationStore, PersonaStore, ensure_conversation_schema
from .embedding import EmbeddingService, parse_vector_literal, to_vector_literal
from .extraction import (
    Err,
    ExtractionOutcome,
    ExtractionPipeline,
    Ok,
    build_analysis_prompt,
    decode_analysis,
)
from .in_memory import (
    InMemoryConversationStore,
    InMemoryInsightStore,
    InMemoryMemoryStore,
    InMemoryPersonaStore,
    cosine_similarity,
)
from .manager import MemoryManager
from .store import PostgresInsightStore, PostgresMemoryStore, ensure_schema

__all__ = [
    # Embedding
    "EmbeddingService",
    "to_vector_literal",
    "parse_vector_literal",
    # PostgreSQL stores
    "PostgresMemoryStore",
    "PostgresInsightStore",
    "ConversationStore",
    "PersonaStore",
    "ensure_schema",
    "ensure_conversation_schema",
    # In-process stores
    "InMemoryMemoryStore",
    "InMemoryInsightStore",
    "InMemoryConversationStore",
    "InMemoryPersonaStore",
    "cosine_similarity",
    # Manager and extraction
    "MemoryManager",
    "ExtractionPipeline",
    "ExtractionOutcome",
    "decode_analysis",
    "build_analysis_prompt",
    "Ok",
    "Err",
]
