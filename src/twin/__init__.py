"""Twin memory core.

Long-term semantic memory for a personal conversational agent: memory
creation and similarity retrieval on pgvector, memory-grounded replies,
and best-effort background knowledge extraction.

Architecture:
    - domain/: Entities and port interfaces
    - providers/: Generation and embedding provider adapters
    - memory/: Embedding capability, stores, memory manager, extraction
    - orchestrator/: Prompt building and the reply pipeline
    - background_worker.py: Queue for post-reply side effects
    - app.py: Composition root
"""

from .app import TwinApp
from .background_worker import BackgroundWorker
from .config import TwinConfig, configure_logging
from .domain import (
    Insight,
    Memory,
    MemoryCategory,
    MemorySearchResult,
    MemorySource,
    TurnResult,
)
from .exceptions import (
    MemoryNotFoundError,
    ReplyGenerationError,
    SessionNotFoundError,
    TwinError,
    ValidationError,
)
from .memory import EmbeddingService, ExtractionPipeline, MemoryManager
from .orchestrator import ReplyPipeline

__all__ = [
    "TwinApp",
    "TwinConfig",
    "configure_logging",
    "BackgroundWorker",
    "EmbeddingService",
    "MemoryManager",
    "ExtractionPipeline",
    "ReplyPipeline",
    "Memory",
    "MemoryCategory",
    "MemorySource",
    "MemorySearchResult",
    "Insight",
    "TurnResult",
    "TwinError",
    "ValidationError",
    "MemoryNotFoundError",
    "SessionNotFoundError",
    "ReplyGenerationError",
]
