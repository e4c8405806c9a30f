"""Tests for environment-driven configuration."""
import pytest

from src.twin.config import TwinConfig
from src.twin.exceptions import ConfigurationError

ENV_VARS = (
    "DATABASE_URL",
    "DB_POOL_MIN_SIZE",
    "DB_POOL_MAX_SIZE",
    "LLM_PROVIDER",
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_MODEL",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "EMBEDDING_PROVIDER",
    "OPENAI_EMBEDDING_MODEL",
    "VOYAGE_API_KEY",
    "VOYAGEAI_API_KEY",
    "VOYAGE_EMBEDDING_MODEL",
    "EMBEDDING_DIMENSION",
    "EMBEDDING_TIMEOUT_SECONDS",
    "LLM_TIMEOUT_SECONDS",
    "HISTORY_WINDOW",
    "WORKER_QUEUE_SIZE",
    "WORKER_CONCURRENCY",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestTwinConfig:

    def test_defaults(self, clean_env):
        config = TwinConfig.from_env(load_env_file=False)

        assert config.database_url is None
        assert (config.db_pool_min_size, config.db_pool_max_size) == (2, 10)
        assert config.llm_provider == "openai"
        assert config.embedding_provider == "openai"
        assert config.embedding_dimension == 768
        assert config.embedding_timeout == 10.0
        assert config.history_window == 20
        assert config.log_level == "INFO"

    def test_anthropic_default_when_key_present(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-test")

        config = TwinConfig.from_env(load_env_file=False)

        assert config.llm_provider == "anthropic"
        assert config.anthropic_api_key == "sk-ant-test"

    def test_explicit_provider_wins(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        clean_env.setenv("LLM_PROVIDER", " OpenAI ")

        assert TwinConfig.from_env(load_env_file=False).llm_provider == "openai"

    def test_numeric_overrides(self, clean_env):
        clean_env.setenv("EMBEDDING_DIMENSION", "1024")
        clean_env.setenv("EMBEDDING_TIMEOUT_SECONDS", "2.5")
        clean_env.setenv("HISTORY_WINDOW", "8")
        clean_env.setenv("WORKER_CONCURRENCY", "4")

        config = TwinConfig.from_env(load_env_file=False)

        assert config.embedding_dimension == 1024
        assert config.embedding_timeout == 2.5
        assert config.history_window == 8
        assert config.worker_concurrency == 4

    def test_blank_number_uses_default(self, clean_env):
        clean_env.setenv("HISTORY_WINDOW", "  ")

        assert TwinConfig.from_env(load_env_file=False).history_window == 20

    def test_voyage_key_fallback(self, clean_env):
        clean_env.setenv("EMBEDDING_PROVIDER", "voyageai")
        clean_env.setenv("VOYAGEAI_API_KEY", "pa-test")

        config = TwinConfig.from_env(load_env_file=False)

        assert config.embedding_provider == "voyageai"
        assert config.voyage_api_key == "pa-test"

    @pytest.mark.parametrize("name,value", [
        ("LLM_PROVIDER", "ollama"),
        ("EMBEDDING_PROVIDER", "cohere"),
        ("EMBEDDING_DIMENSION", "big"),
        ("EMBEDDING_TIMEOUT_SECONDS", "ten"),
    ])
    def test_invalid_values(self, clean_env, name, value):
        clean_env.setenv(name, value)

        with pytest.raises(ConfigurationError):
            TwinConfig.from_env(load_env_file=False)

    def test_require_database(self):
        with pytest.raises(ConfigurationError) as exc_info:
            TwinConfig().require_database()

        assert exc_info.value.details["missing_keys"] == ["DATABASE_URL"]
        assert TwinConfig(database_url="postgresql://db/twin").require_database() == (
            "postgresql://db/twin"
        )
