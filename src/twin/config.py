"""Configuration for the Twin memory core.

Settings are read from environment variables (a `.env` file is loaded
first when present). Tuning constants of the reply and extraction paths
live next to the code that uses them, not here.

Environment Variables:
    DATABASE_URL: PostgreSQL connection string (pgvector required)
    DB_POOL_MIN_SIZE / DB_POOL_MAX_SIZE: asyncpg pool bounds (default: 2 / 10)
    LLM_PROVIDER: anthropic | openai (default: anthropic when its key is set)
    ANTHROPIC_API_KEY / ANTHROPIC_MODEL
    OPENAI_API_KEY / OPENAI_MODEL
    EMBEDDING_PROVIDER: openai | voyageai (default: openai)
    OPENAI_EMBEDDING_MODEL / VOYAGE_API_KEY / VOYAGE_EMBEDDING_MODEL
    EMBEDDING_DIMENSION: Vector size stored in pgvector (default: 768)
    EMBEDDING_TIMEOUT_SECONDS: Per-call embedding timeout (default: 10)
    LLM_TIMEOUT_SECONDS: Generation client timeout (default: 60)
    HISTORY_WINDOW: Turns of short-term history per reply (default: 20)
    WORKER_QUEUE_SIZE / WORKER_CONCURRENCY: Background task queue sizing
    LOG_LEVEL: Logging level (default: INFO)
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

VALID_LLM_PROVIDERS = ("anthropic", "openai")
VALID_EMBEDDING_PROVIDERS = ("openai", "voyageai")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


@dataclass
class TwinConfig:
    """Runtime settings, built once at startup."""

    database_url: Optional[str] = None
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    llm_provider: str = "openai"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    embedding_provider: str = "openai"
    openai_embedding_model: str = "text-embedding-3-small"
    voyage_api_key: Optional[str] = None
    voyage_embedding_model: str = "voyage-3.5"
    embedding_dimension: int = 768
    embedding_timeout: float = 10.0
    llm_timeout: float = 60.0
    history_window: int = 20
    worker_queue_size: int = 1000
    worker_concurrency: int = 2
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "TwinConfig":
        """Build settings from the environment.

        Raises:
            ConfigurationError: On unknown provider names or malformed numbers
        """
        if load_env_file:
            load_dotenv()

        anthropic_key = os.getenv("ANTHROPIC_API_KEY")
        default_llm = "anthropic" if anthropic_key else "openai"
        llm_provider = os.getenv("LLM_PROVIDER", default_llm).strip().lower()
        if llm_provider not in VALID_LLM_PROVIDERS:
            raise ConfigurationError(
                f"Invalid LLM_PROVIDER '{llm_provider}', "
                f"expected one of {', '.join(VALID_LLM_PROVIDERS)}"
            )

        embedding_provider = os.getenv("EMBEDDING_PROVIDER", "openai").strip().lower()
        if embedding_provider not in VALID_EMBEDDING_PROVIDERS:
            raise ConfigurationError(
                f"Invalid EMBEDDING_PROVIDER '{embedding_provider}', "
                f"expected one of {', '.join(VALID_EMBEDDING_PROVIDERS)}"
            )

        return cls(
            database_url=os.getenv("DATABASE_URL"),
            db_pool_min_size=_get_int("DB_POOL_MIN_SIZE", cls.db_pool_min_size),
            db_pool_max_size=_get_int("DB_POOL_MAX_SIZE", cls.db_pool_max_size),
            llm_provider=llm_provider,
            anthropic_api_key=anthropic_key,
            anthropic_model=os.getenv("ANTHROPIC_MODEL", cls.anthropic_model),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", cls.openai_model),
            embedding_provider=embedding_provider,
            openai_embedding_model=os.getenv(
                "OPENAI_EMBEDDING_MODEL", cls.openai_embedding_model
            ),
            voyage_api_key=os.getenv("VOYAGE_API_KEY") or os.getenv("VOYAGEAI_API_KEY"),
            voyage_embedding_model=os.getenv(
                "VOYAGE_EMBEDDING_MODEL", cls.voyage_embedding_model
            ),
            embedding_dimension=_get_int("EMBEDDING_DIMENSION", cls.embedding_dimension),
            embedding_timeout=_get_float(
                "EMBEDDING_TIMEOUT_SECONDS", cls.embedding_timeout
            ),
            llm_timeout=_get_float("LLM_TIMEOUT_SECONDS", cls.llm_timeout),
            history_window=_get_int("HISTORY_WINDOW", cls.history_window),
            worker_queue_size=_get_int("WORKER_QUEUE_SIZE", cls.worker_queue_size),
            worker_concurrency=_get_int("WORKER_CONCURRENCY", cls.worker_concurrency),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )

    def require_database(self) -> str:
        """Return DATABASE_URL or raise ConfigurationError."""
        if not self.database_url:
            raise ConfigurationError(
                "DATABASE_URL is required for the PostgreSQL stores",
                missing_keys=["DATABASE_URL"],
            )
        return self.database_url


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the standard format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
