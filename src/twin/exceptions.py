"""Errors raised by the Twin memory core.

Two kinds of failure matter to callers:

* degrading failures (embedding unavailable, unparseable extraction output,
  background persistence, memory search) are logged and absorbed where they
  are caught;
* reply generation failure is the only one that reaches the caller of
  ``ReplyPipeline.handle_turn``, who may resubmit the turn.

Every error carries a stable ``code``, a ``details`` mapping for structured
logs and a ``recoverable`` flag telling whether a retry may help.
"""
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional


class TwinError(Exception):
    """Base class for all Twin errors."""

    default_code: ClassVar[Optional[str]] = None
    default_recoverable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code or type(self).__name__.upper()
        self.details = dict(details or {})
        self.cause = cause
        self.recoverable = (
            self.default_recoverable if recoverable is None else recoverable
        )
        self.timestamp = datetime.now(timezone.utc)
        if cause is not None:
            self.__cause__ = cause

    def _add_detail(self, key: str, value: Any) -> None:
        if value is not None:
            self.details[key] = value

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.details:
            pairs = ", ".join(f"{k}={v}" for k, v in self.details.items())
            text = f"{text} ({pairs})"
        return text

    def to_dict(self) -> dict[str, Any]:
        """Flatten the error for structured logging."""
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause is not None else None,
        }


class ConfigurationError(TwinError):
    """Settings are missing or invalid. Fix the environment and restart."""

    default_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, missing_keys: Optional[list[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self._add_detail("missing_keys", missing_keys)


class ValidationError(TwinError):
    """Caller input was rejected before any side effect."""

    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self._add_detail("field", field)


class NotFoundError(TwinError):
    """A record is absent, or belongs to another owner."""

    default_code = "NOT_FOUND"
    resource_type: ClassVar[str] = "Resource"

    def __init__(self, resource_id: Any = None, **kwargs):
        self.resource_id = str(resource_id) if resource_id is not None else None
        if self.resource_id:
            message = f"{self.resource_type} '{self.resource_id}' not found"
        else:
            message = f"{self.resource_type} not found"
        super().__init__(message, **kwargs)
        self._add_detail("resource_type", self.resource_type)
        self._add_detail("resource_id", self.resource_id)


class MemoryNotFoundError(NotFoundError):
    default_code = "MEMORY_NOT_FOUND"
    resource_type = "Memory"


class SessionNotFoundError(NotFoundError):
    default_code = "SESSION_NOT_FOUND"
    resource_type = "Session"


class ProviderError(TwinError):
    """An external AI capability failed."""

    default_recoverable = True

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.provider = provider
        self._add_detail("provider", provider)


class EmbeddingError(ProviderError):
    """Absorbed by EmbeddingService, which reports "no embedding" instead."""

    default_code = "EMBEDDING_FAILED"


class ReplyGenerationError(ProviderError):
    """The reply could not be produced. Nothing was persisted for the turn."""

    default_code = "REPLY_GENERATION_FAILED"


class StoreError(TwinError):
    """The backing store rejected or could not serve a query."""

    default_code = "STORE_ERROR"
    default_recoverable = True

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self._add_detail("operation", operation)


class CircuitOpenError(TwinError):
    """Calls are being short-circuited until ``reset_at``."""

    default_code = "CIRCUIT_OPEN"
    default_recoverable = True

    def __init__(
        self,
        message: str = "Circuit breaker is open, requests rejected",
        reset_at: Optional[datetime] = None,
        failure_count: int = 0,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.failure_count = failure_count
        if reset_at is not None:
            self.details["reset_at"] = reset_at.isoformat()
        self.details["failure_count"] = failure_count
