"""
Tests for the never-throwing EmbeddingService and vector helpers.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.twin.memory.embedding import (
    EmbeddingService,
    parse_vector_literal,
    to_vector_literal,
)
from src.twin.resilience import CircuitBreaker, CircuitState


def make_provider(**kwargs):
    provider = MagicMock()
    provider.embedding_model = "test-embedding"
    provider.embed = AsyncMock(**kwargs)
    return provider


class TestVectorLiteral:
    """Tests for pgvector text conversion."""

    def test_renders_bracketed_list(self):
        assert to_vector_literal([0.1, 2, -3.5]) == "[0.1,2.0,-3.5]"

    def test_absent_vector(self):
        assert to_vector_literal(None) is None
        assert to_vector_literal([]) is None

    def test_parses_text_form(self):
        assert parse_vector_literal("[0.1,2,-3.5]") == [0.1, 2.0, -3.5]

    def test_parses_none_and_sequences(self):
        assert parse_vector_literal(None) is None
        assert parse_vector_literal((1, 2)) == [1.0, 2.0]


class TestEmbeddingService:
    """Tests for EmbeddingService.embed."""

    @pytest.mark.asyncio
    async def test_returns_vector(self):
        provider = make_provider(return_value=[0.1, 0.2, 0.3])
        service = EmbeddingService(provider)

        assert await service.embed("hello") == [0.1, 0.2, 0.3]
        provider.embed.assert_awaited_once_with("hello")

    @pytest.mark.asyncio
    async def test_query_uses_query_embedding(self):
        provider = make_provider(return_value=[0.1, 0.2])
        provider.embed_query = AsyncMock(return_value=[0.3, 0.4])
        service = EmbeddingService(provider)

        assert await service.embed("jazz", query=True) == [0.3, 0.4]
        provider.embed_query.assert_awaited_once_with("jazz")
        provider.embed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_error_yields_none(self):
        service = EmbeddingService(make_provider(side_effect=RuntimeError("boom")))

        assert await service.embed("hello") is None

    @pytest.mark.asyncio
    async def test_timeout_yields_none(self):
        async def slow_embed(text):
            await asyncio.sleep(1.0)
            return [0.1]

        provider = MagicMock()
        provider.embed = slow_embed
        service = EmbeddingService(provider, timeout=0.01)

        assert await service.embed("hello") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", None])
    async def test_blank_input_skips_provider(self, text):
        provider = make_provider(return_value=[0.1])
        service = EmbeddingService(provider)

        assert await service.embed(text) is None
        provider.embed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_provider_is_degraded(self):
        service = EmbeddingService(None)

        assert not service.available
        assert service.model_name is None
        assert await service.embed("hello") is None

    @pytest.mark.asyncio
    async def test_empty_vector_yields_none(self):
        service = EmbeddingService(make_provider(return_value=[]))

        assert await service.embed("hello") is None

    @pytest.mark.asyncio
    async def test_dimension_mismatch_yields_none(self):
        service = EmbeddingService(
            make_provider(return_value=[0.1, 0.2]), expected_dimension=3
        )

        assert await service.embed("hello") is None

    @pytest.mark.asyncio
    async def test_open_circuit_skips_provider(self):
        provider = make_provider(side_effect=RuntimeError("down"))
        circuit = CircuitBreaker(name="embedding", failure_threshold=2, timeout=60.0)
        service = EmbeddingService(provider, circuit_breaker=circuit)

        assert await service.embed("one") is None
        assert await service.embed("two") is None
        assert circuit.state == CircuitState.OPEN

        assert await service.embed("three") is None
        assert provider.embed.await_count == 2
