"""Bounds for calls into the remote AI providers.

``call_with_timeout`` caps a single awaited call. ``CircuitBreaker`` stops
calling a provider that keeps failing, so a turn degrades at once instead of
waiting out the provider timeout again and again.

    circuit = CircuitBreaker(name="embedding", failure_threshold=5, timeout=30)
    vector = await circuit.call(call_with_timeout, provider.embed, 10.0, text)
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_timeout(
    func: Callable[..., Awaitable[T]],
    timeout: Optional[float],
    *args,
    **kwargs,
) -> T:
    """Await ``func(*args, **kwargs)`` for at most ``timeout`` seconds.

    ``None`` or a non-positive timeout means no limit. Expiry raises
    ``asyncio.TimeoutError``.
    """
    call = func(*args, **kwargs)
    if timeout is None or timeout <= 0:
        return await call
    return await asyncio.wait_for(call, timeout=timeout)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure breaker around one provider.

    ``failure_threshold`` failures in a row open the circuit. After
    ``timeout`` seconds the next call is let through as a trial call
    (HALF_OPEN). ``success_threshold`` successful trial calls close it
    again and a failed one reopens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 30.0,
        success_threshold: int = 1,
        name: str = "default",
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._trial_successes = 0
        self._last_failure_at: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def reset_at(self) -> Optional[datetime]:
        if self._last_failure_at is None:
            return None
        return self._last_failure_at + timedelta(seconds=self.timeout)

    def _move_to(self, state: CircuitState, reason: str) -> None:
        if state is self._state:
            return
        log = logger.info if state is not CircuitState.OPEN else logger.warning
        log(f"Circuit '{self.name}' {self._state.value} -> {state.value}: {reason}")
        self._state = state
        self._trial_successes = 0

    async def _admit(self) -> None:
        async with self._lock:
            if self._state is not CircuitState.OPEN:
                return
            reset_at = self.reset_at
            if reset_at is not None and datetime.now(timezone.utc) >= reset_at:
                self._move_to(CircuitState.HALF_OPEN, "trying again after cool-down")
                return
            raise CircuitOpenError(
                f"Circuit breaker '{self.name}' is open",
                reset_at=reset_at,
                failure_count=self._failure_count,
            )

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Run ``func`` unless the circuit is open.

        Raises:
            CircuitOpenError: the circuit is open and still cooling down.
            Whatever ``func`` raises, after the failure has been counted.
        """
        await self._admit()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._record_failure(e)
            raise
        await self._record_success()
        return result

    async def _record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            if self._state is not CircuitState.HALF_OPEN:
                return
            self._trial_successes += 1
            if self._trial_successes >= self.success_threshold:
                self._move_to(CircuitState.CLOSED, "provider recovered")

    async def _record_failure(self, error: Exception) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_at = datetime.now(timezone.utc)
            if self._state is CircuitState.HALF_OPEN:
                self._move_to(CircuitState.OPEN, f"trial call failed: {error}")
            elif self._failure_count >= self.failure_threshold:
                self._move_to(
                    CircuitState.OPEN, f"{self._failure_count} consecutive failures"
                )

    def reset(self) -> None:
        """Force the circuit closed and forget past failures."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._trial_successes = 0
        self._last_failure_at = None

    def get_status(self) -> dict[str, Any]:
        last = self._last_failure_at
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "timeout_seconds": self.timeout,
            "last_failure_at": last.isoformat() if last else None,
        }
