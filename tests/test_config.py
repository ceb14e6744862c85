import pytest

from chatmatch.clients.memory_change_feed_client import MemoryChangeFeedClient
from chatmatch.config import load_settings
from chatmatch.services.matching_service import create_matching_service
from chatmatch.stores.memory_store import MemoryQueueStore


class TestLoadSettings:
    """Environment driven settings."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "ENV",
            "COMMIT_HASH",
            "DATABASE_URL",
            "REDIS_URL",
            "QUEUE_TIMEOUT_SECONDS",
            "MATCH_DEBOUNCE_SECONDS",
            "MATCH_MAX_RETRIES",
            "LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("STORE_BACKEND", "memory")

    def test_defaults(self) -> None:
        settings = load_settings()

        assert settings.store_backend == "memory"
        assert settings.queue_timeout_seconds == 300
        assert settings.match_debounce_seconds == 0.2
        assert settings.redis_url is None
        assert settings.log_level == "INFO"
        assert settings.is_prod is False

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QUEUE_TIMEOUT_SECONDS", "60")
        monkeypatch.setenv("MATCH_DEBOUNCE_SECONDS", "0.5")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = load_settings()

        assert settings.queue_timeout_seconds == 60
        assert settings.match_debounce_seconds == 0.5
        assert settings.log_level == "DEBUG"

    def test_sql_backend_requires_database_url(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("STORE_BACKEND", "sql")

        with pytest.raises(ValueError, match="DATABASE_URL"):
            load_settings()

    def test_unknown_backend(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE_BACKEND", "mongo")

        with pytest.raises(ValueError, match="STORE_BACKEND"):
            load_settings()

    def test_prod_requires_commit_hash(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ENV", "prod")

        with pytest.raises(ValueError, match="COMMIT_HASH"):
            load_settings()

    @pytest.mark.asyncio
    async def test_memory_backends_are_wired(self) -> None:
        service = create_matching_service(load_settings())

        assert isinstance(service.feed, MemoryChangeFeedClient)
        assert isinstance(service.queue_store, MemoryQueueStore)
        await service.shutdown()
