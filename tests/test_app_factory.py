"""Tests for shared app and CLI wiring."""

from unittest.mock import AsyncMock

import pytest

from pictobox.app_factory import ImageServices, build_image_services, create_session_config
from pictobox.asgi import create_app, create_db_config
from pictobox.config import DatabaseConfig, Settings, StorageConfig, SupabaseConfig
from pictobox.lib.storage.local import LocalStorageBackend
from pictobox.lib.storage.supabase import SupabaseStorageBackend
from pictobox.lib.urls import UrlKind
from pictobox.middleware.storage import StorageFilesMiddleware


def _settings(**storage):
    return Settings(secret_key="k", storage=StorageConfig(**storage))


class TestBuildImageServices:
    def test_supabase_bucket_drives_classifier(self):
        services = build_image_services(
            _settings(supabase=SupabaseConfig(url="https://proj.supabase.co", service_key="svc"))
        )

        assert isinstance(services.storage, SupabaseStorageBackend)
        stored = "https://proj.supabase.co/storage/v1/object/public/custom-pictograms/owner/1_a.png"
        assert services.classifier.classify(stored) is UrlKind.STORAGE_PERSISTED
        assert services.engine.classifier is services.classifier
        assert services.engine.max_bytes == 5 * 1024 * 1024

    def test_local_backend(self, tmp_path):
        services = build_image_services(_settings(backend="local", local_path=str(tmp_path)))

        assert isinstance(services.storage, LocalStorageBackend)
        assert services.classifier.classify("/storage/custom-pictograms/owner/1_a.png") is UrlKind.STORAGE_PERSISTED

    @pytest.mark.asyncio
    async def test_close_releases_storage(self):
        storage = AsyncMock()
        services = ImageServices(
            storage=storage,
            classifier=None,
            engine=None,
            translator=None,
            generator=None,
            icons=None,
        )

        await services.close()

        storage.close.assert_awaited_once()


class TestConfigs:
    def test_session_config_derives_key(self):
        config = create_session_config("secret", max_age=60, secure=True, cookie_name="pb")

        assert len(config.secret) == 32
        assert config.key == "pb"
        assert config.max_age == 60
        assert config.secure is True
        assert config.httponly is True

    def test_sqlite_db_config(self):
        config = create_db_config(Settings(db=DatabaseConfig(url="sqlite+aiosqlite:///./x.db", echo=True)))

        assert config.connection_string == "sqlite+aiosqlite:///./x.db"
        assert config.engine_config.echo is True
        assert config.create_all is False

    def test_pooled_db_config(self):
        config = create_db_config(
            Settings(db=DatabaseConfig(url="postgresql+asyncpg://u:p@db/app", pool_size=3, pool_overflow=4))
        )

        assert config.engine_config.pool_size == 3
        assert config.engine_config.max_overflow == 4


class TestLocalStorageMount:
    def test_local_backend_wraps_app(self, tmp_path):
        settings = Settings(
            secret_key="k",
            db=DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'x.db'}"),
            storage=StorageConfig(backend="local", local_path=str(tmp_path / "storage")),
        )

        assert isinstance(create_app(settings), StorageFilesMiddleware)
