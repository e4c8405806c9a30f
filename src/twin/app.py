"""Composition root for the Twin memory core.

Builds every capability once (providers, stores, embedding service,
background worker) and injects them into the memory manager, the
extraction pipeline and the reply pipeline. Nothing below this module
reaches for a global.

Usage:
    app = await TwinApp.from_config(TwinConfig.from_env())
    try:
        result = await app.reply_pipeline.handle_turn("twin-1", None, "Hello!")
    finally:
        await app.close()
"""
import logging
from typing import Any, Optional

from .background_worker import BackgroundWorker
from .config import TwinConfig, configure_logging
from .database import close_pool, open_pool
from .domain.ports import (
    IConversationStore,
    IEmbeddingProvider,
    IGenerationProvider,
    IInsightStore,
    IMemoryStore,
    IPersonaStore,
)
from .memory.conversation import (
    ConversationStore,
    PersonaStore,
    ensure_conversation_schema,
)
from .memory.embedding import EmbeddingService
from .memory.extraction import ExtractionPipeline
from .memory.in_memory import (
    InMemoryConversationStore,
    InMemoryInsightStore,
    InMemoryMemoryStore,
    InMemoryPersonaStore,
)
from .memory.manager import MemoryManager
from .memory.store import PostgresInsightStore, PostgresMemoryStore, ensure_schema
from .orchestrator.reply_pipeline import ReplyPipeline
from .providers.factory import create_embedding_provider, create_generation_provider

logger = logging.getLogger(__name__)


class TwinApp:
    """Wired-up set of services sharing one set of capabilities."""

    def __init__(
        self,
        llm: IGenerationProvider,
        embedding_provider: Optional[IEmbeddingProvider],
        memory_store: IMemoryStore,
        insight_store: IInsightStore,
        conversations: IConversationStore,
        personas: IPersonaStore,
        worker: Optional[BackgroundWorker] = None,
        embedding_timeout: float = 10.0,
        embedding_dimension: Optional[int] = None,
        history_window: int = 20,
        db_pool: Any = None,
    ):
        self.llm = llm
        self.embedding_provider = embedding_provider
        self.memory_store = memory_store
        self.insight_store = insight_store
        self.conversations = conversations
        self.personas = personas
        self.worker = worker or BackgroundWorker()
        self.db_pool = db_pool

        self.embeddings = EmbeddingService(
            embedding_provider,
            timeout=embedding_timeout,
            expected_dimension=embedding_dimension,
        )
        self.memory_manager = MemoryManager(memory_store, self.embeddings)
        self.extraction = ExtractionPipeline(llm, self.memory_manager, insight_store)
        self.reply_pipeline = ReplyPipeline(
            llm=llm,
            memory_manager=self.memory_manager,
            conversations=conversations,
            personas=personas,
            embeddings=self.embeddings,
            extraction=self.extraction,
            worker=self.worker,
            history_window=history_window,
        )

    @classmethod
    async def from_config(cls, config: TwinConfig) -> "TwinApp":
        """Build the PostgreSQL-backed application and start its worker.

        Raises:
            ConfigurationError: Missing DATABASE_URL or generation provider
            StoreError: The database pool could not be created
            ConfigurationError: The server has no pgvector extension
        """
        configure_logging(config.log_level)

        database_url = config.require_database()
        llm = create_generation_provider(config)
        embedding_provider = create_embedding_provider(config)

        pool = await open_pool(
            database_url,
            min_size=config.db_pool_min_size,
            max_size=config.db_pool_max_size,
        )
        await ensure_schema(pool, dimension=config.embedding_dimension)
        await ensure_conversation_schema(pool, dimension=config.embedding_dimension)

        app = cls(
            llm=llm,
            embedding_provider=embedding_provider,
            memory_store=PostgresMemoryStore(pool),
            insight_store=PostgresInsightStore(pool),
            conversations=ConversationStore(pool),
            personas=PersonaStore(pool),
            worker=BackgroundWorker(
                max_queue_size=config.worker_queue_size,
                max_concurrent=config.worker_concurrency,
            ),
            embedding_timeout=config.embedding_timeout,
            embedding_dimension=config.embedding_dimension,
            history_window=config.history_window,
            db_pool=pool,
        )
        await app.start()
        return app

    @classmethod
    def in_memory(
        cls,
        llm: IGenerationProvider,
        embedding_provider: Optional[IEmbeddingProvider] = None,
        worker: Optional[BackgroundWorker] = None,
    ) -> "TwinApp":
        """Build an application on in-process stores (call start() before use)."""
        return cls(
            llm=llm,
            embedding_provider=embedding_provider,
            memory_store=InMemoryMemoryStore(),
            insight_store=InMemoryInsightStore(),
            conversations=InMemoryConversationStore(),
            personas=InMemoryPersonaStore(),
            worker=worker,
        )

    async def start(self) -> None:
        await self.worker.start()
        logger.info("Twin memory core started")

    async def close(self, timeout: float = 30.0) -> None:
        """Drain background work, then release clients and the pool."""
        await self.worker.stop(timeout=timeout)

        closed = set()
        for provider in (self.llm, self.embedding_provider):
            if provider is None or id(provider) in closed:
                continue
            closed.add(id(provider))
            close = getattr(provider, "close", None)
            if close is not None:
                try:
                    await close()
                except Exception as e:
                    logger.warning(f"Error closing provider: {e}")

        await close_pool(self.db_pool)
        logger.info("Twin memory core stopped")
