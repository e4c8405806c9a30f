"""Shared fixtures for the twin memory core tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from src.twin.background_worker import BackgroundWorker
from src.twin.domain.ports import IEmbeddingProvider
from src.twin.exceptions import EmbeddingError
from src.twin.memory.embedding import EmbeddingService
from src.twin.memory.in_memory import (
    InMemoryConversationStore,
    InMemoryInsightStore,
    InMemoryMemoryStore,
    InMemoryPersonaStore,
)
from src.twin.memory.manager import MemoryManager


class KeywordEmbeddingProvider(IEmbeddingProvider):
    """Deterministic embeddings: one axis per topic, 0.1 baseline elsewhere.

    Texts sharing a topic score ~1.0; texts with disjoint topics score ~0.2.
    """

    TOPICS = (
        ("music", "jazz", "song"),
        ("hiking", "outdoor", "alps", "mountain"),
        ("pizza", "food", "cooking"),
        ("sister", "brother", "family"),
    )

    embedding_model = "keyword-test"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("embedding backend down", provider="test")
        lowered = text.lower()
        return [
            1.0 if any(word in lowered for word in words) else 0.1
            for words in self.TOPICS
        ]


@pytest.fixture
def embedding_provider():
    return KeywordEmbeddingProvider()


@pytest.fixture
def embeddings(embedding_provider):
    return EmbeddingService(embedding_provider, timeout=5.0)


@pytest.fixture
def degraded_embeddings():
    """Embedding service whose provider always fails."""
    return EmbeddingService(KeywordEmbeddingProvider(fail=True), timeout=5.0)


@pytest.fixture
def memory_store():
    return InMemoryMemoryStore()


@pytest.fixture
def insight_store():
    return InMemoryInsightStore()


@pytest.fixture
def conversation_store():
    return InMemoryConversationStore()


@pytest.fixture
def persona_store():
    return InMemoryPersonaStore()


@pytest.fixture
def memory_manager(memory_store, embeddings):
    return MemoryManager(memory_store, embeddings)


@pytest.fixture
def mock_llm():
    """Generation provider double with canned answers."""
    llm = MagicMock()
    llm.model_name = "test-model"
    llm.generate_reply = AsyncMock(return_value="Hi! Nice to hear from you.")
    llm.complete = AsyncMock(return_value='{"insights": [], "memories": []}')
    return llm


@pytest_asyncio.fixture
async def worker():
    bg = BackgroundWorker(max_queue_size=10, max_concurrent=1)
    await bg.start()
    yield bg
    await bg.stop(timeout=5.0)
