"""Tests for the provider timeout helper and circuit breaker.

Tests cover:
    - call_with_timeout limits and pass-through
    - Circuit breaker state transitions (CLOSED -> OPEN -> HALF_OPEN -> CLOSED)
    - Status reporting
"""
import asyncio

import pytest

from src.twin.exceptions import CircuitOpenError, EmbeddingError
from src.twin.resilience import CircuitBreaker, CircuitState, call_with_timeout


# ============================================
# call_with_timeout
# ============================================

class TestCallWithTimeout:

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def add(a, b=0):
            return a + b

        assert await call_with_timeout(add, 1.0, 2, b=3) == 5

    @pytest.mark.asyncio
    async def test_raises_on_timeout(self):
        async def slow():
            await asyncio.sleep(1.0)

        with pytest.raises(asyncio.TimeoutError):
            await call_with_timeout(slow, 0.01)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [None, 0])
    async def test_no_limit(self, timeout):
        async def quick():
            await asyncio.sleep(0.01)
            return "done"

        assert await call_with_timeout(quick, timeout) == "done"


# ============================================
# Circuit Breaker State Transition Tests
# ============================================

class TestCircuitBreakerStateTransitions:
    """Test circuit breaker state machine transitions."""

    def test_initial_state_is_closed(self):
        """Circuit should start in CLOSED state."""
        circuit = CircuitBreaker(failure_threshold=3)
        assert circuit.state == CircuitState.CLOSED
        assert not circuit.is_open
        assert circuit.failure_count == 0

    @pytest.mark.asyncio
    async def test_closed_to_open_after_failures(self):
        """Circuit should open after reaching failure threshold."""
        circuit = CircuitBreaker(failure_threshold=3, timeout=60.0)

        async def failing_embed():
            raise EmbeddingError("embedding backend down")

        for i in range(2):
            with pytest.raises(EmbeddingError):
                await circuit.call(failing_embed)

            assert circuit.state == CircuitState.CLOSED
            assert circuit.failure_count == i + 1

        with pytest.raises(EmbeddingError):
            await circuit.call(failing_embed)

        assert circuit.state == CircuitState.OPEN
        assert circuit.is_open
        assert circuit.failure_count == 3

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        circuit = CircuitBreaker(failure_threshold=3)

        async def failing():
            raise EmbeddingError("fail")

        async def ok():
            return [0.1]

        with pytest.raises(EmbeddingError):
            await circuit.call(failing)
        await circuit.call(ok)

        assert circuit.failure_count == 0
        assert circuit.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_open_rejects_requests_immediately(self):
        """Open circuit should reject requests without calling function."""
        circuit = CircuitBreaker(failure_threshold=1, timeout=60.0, name="embedding")
        call_count = 0

        async def tracked_func():
            nonlocal call_count
            call_count += 1
            raise EmbeddingError("fail")

        with pytest.raises(EmbeddingError):
            await circuit.call(tracked_func)

        assert call_count == 1
        assert circuit.is_open

        with pytest.raises(CircuitOpenError) as exc_info:
            await circuit.call(tracked_func)

        assert call_count == 1  # Not incremented
        assert exc_info.value.reset_at is not None
        assert exc_info.value.failure_count == 1
        assert "embedding" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_half_open_to_closed_on_success(self):
        """Circuit should close after successful requests in HALF_OPEN."""
        circuit = CircuitBreaker(
            failure_threshold=1,
            timeout=0.1,
            success_threshold=2,
        )

        call_count = 0

        async def sometimes_fails():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise EmbeddingError("fail")
            return "success"

        with pytest.raises(EmbeddingError):
            await circuit.call(sometimes_fails)

        assert circuit.state == CircuitState.OPEN

        await asyncio.sleep(0.15)

        # First success in HALF_OPEN
        assert await circuit.call(sometimes_fails) == "success"
        assert circuit.state == CircuitState.HALF_OPEN

        # Second success closes
        assert await circuit.call(sometimes_fails) == "success"
        assert circuit.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_to_open_on_failure(self):
        """Circuit should reopen if request fails in HALF_OPEN state."""
        circuit = CircuitBreaker(failure_threshold=1, timeout=0.1)

        async def always_fails():
            raise EmbeddingError("fail")

        with pytest.raises(EmbeddingError):
            await circuit.call(always_fails)

        await asyncio.sleep(0.15)

        with pytest.raises(EmbeddingError):
            await circuit.call(always_fails)

        assert circuit.state == CircuitState.OPEN

    def test_manual_reset(self):
        """Should be able to manually reset circuit to CLOSED."""
        circuit = CircuitBreaker(failure_threshold=1)
        circuit._state = CircuitState.OPEN
        circuit._failure_count = 10

        circuit.reset()

        assert circuit.state == CircuitState.CLOSED
        assert circuit.failure_count == 0

    @pytest.mark.asyncio
    async def test_get_status(self):
        circuit = CircuitBreaker(failure_threshold=2, timeout=15.0, name="generation")

        async def failing():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await circuit.call(failing)

        status = circuit.get_status()
        assert status["name"] == "generation"
        assert status["state"] == "closed"
        assert status["failure_count"] == 1
        assert status["timeout_seconds"] == 15.0
        assert status["last_failure_at"] is not None
