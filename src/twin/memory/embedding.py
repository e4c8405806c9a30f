"""
Embedding capability used by the memory core.

EmbeddingService wraps a raw embedding provider and never raises: any
provider error, timeout, blank input or open circuit yields None. Callers
treat None as "no vector available" and carry on in degraded mode.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from ..domain.ports import IEmbeddingProvider
from ..exceptions import CircuitOpenError
from ..resilience import CircuitBreaker, call_with_timeout

logger = logging.getLogger(__name__)


def to_vector_literal(vector: Optional[Sequence[float]]) -> Optional[str]:
    """Render a vector in pgvector's text input form: [0.1,0.2,0.3]."""
    if not vector:
        return None
    return "[" + ",".join(str(float(v)) for v in vector) + "]"


def parse_vector_literal(value) -> Optional[list[float]]:
    """Parse a pgvector value returned as text back into floats."""
    if value is None:
        return None
    if isinstance(value, str):
        inner = value.strip().strip("[]")
        if not inner:
            return []
        return [float(v) for v in inner.split(",")]
    return [float(v) for v in value]


class EmbeddingService:
    """Never-throwing embedding capability.

    Usage:
        service = EmbeddingService(provider, timeout=10.0)
        vector = await service.embed("I love hiking")  # list[float] or None
    """

    def __init__(
        self,
        provider: Optional[IEmbeddingProvider],
        timeout: Optional[float] = 10.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        expected_dimension: Optional[int] = None,
    ):
        """Initialize the service.

        Args:
            provider: Raw embedding provider, None to run permanently degraded
            timeout: Per-call timeout in seconds
            circuit_breaker: Breaker guarding the provider (one is created
                when omitted)
            expected_dimension: When set, vectors of any other size are
                discarded so they never reach a fixed-size column
        """
        self.provider = provider
        self.timeout = timeout
        self.circuit = circuit_breaker or CircuitBreaker(
            name="embedding", failure_threshold=5, timeout=30.0
        )
        self.expected_dimension = expected_dimension

    @property
    def available(self) -> bool:
        return self.provider is not None

    @property
    def model_name(self) -> Optional[str]:
        if self.provider is None:
            return None
        return getattr(self.provider, "embedding_model", None)

    async def embed(self, text: str, query: bool = False) -> Optional[list[float]]:
        """Embed text, returning None on any failure.

        query=True embeds a search query rather than text to be stored.
        """
        if self.provider is None:
            return None
        if not text or not text.strip():
            return None

        embed = self.provider.embed_query if query else self.provider.embed
        try:
            vector = await self.circuit.call(
                call_with_timeout, embed, self.timeout, text
            )
        except CircuitOpenError:
            logger.warning("Embedding circuit open, skipping embedding")
            return None
        except asyncio.TimeoutError:
            logger.warning(f"Embedding timed out after {self.timeout}s")
            return None
        except Exception as e:
            logger.warning(f"Embedding failed: {e}")
            return None

        if not vector:
            logger.warning("Embedding provider returned an empty vector")
            return None
        if self.expected_dimension and len(vector) != self.expected_dimension:
            logger.warning(
                f"Embedding dimension mismatch: got {len(vector)}, "
                f"expected {self.expected_dimension}"
            )
            return None
        return list(vector)
