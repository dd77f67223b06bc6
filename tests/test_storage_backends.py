"""Tests for the storage backends and the backend factory."""

import json
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest

from pictobox.config import StorageConfig, SupabaseConfig
from pictobox.lib.errors import StorageFailure
from pictobox.lib.storage import (
    LocalStorageBackend,
    ObjectStorage,
    SupabaseStorageBackend,
    create_storage_backend,
)

SUPABASE = SupabaseConfig(url="https://proj.supabase.co/", service_key="service-key")


# ---------------------------------------------------------------------------
# Local backend
# ---------------------------------------------------------------------------


class TestLocalStorageBackend:
    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(LocalStorageBackend(tmp_path), ObjectStorage)

    @pytest.mark.asyncio
    async def test_upload_writes_file_and_returns_url(self, tmp_path, png_bytes):
        backend = LocalStorageBackend(tmp_path, base_url="http://localhost:8080")
        stored = await backend.upload("owner/1_abc.png", png_bytes, "image/png")

        assert (tmp_path / "owner" / "1_abc.png").read_bytes() == png_bytes
        assert stored.url == "http://localhost:8080/storage/custom-pictograms/owner/1_abc.png"
        assert stored.size == len(png_bytes)

    @pytest.mark.asyncio
    async def test_upload_never_overwrites(self, tmp_path, png_bytes):
        backend = LocalStorageBackend(tmp_path)
        await backend.upload("owner/1_abc.png", png_bytes, "image/png")

        with pytest.raises(StorageFailure, match="already exists"):
            await backend.upload("owner/1_abc.png", b"other", "image/png")
        assert (tmp_path / "owner" / "1_abc.png").read_bytes() == png_bytes

    @pytest.mark.asyncio
    async def test_remove_deletes_and_tolerates_missing(self, tmp_path, png_bytes):
        backend = LocalStorageBackend(tmp_path)
        await backend.upload("owner/1_abc.png", png_bytes, "image/png")

        await backend.remove(["owner/1_abc.png", "owner/missing.png"])

        assert not (tmp_path / "owner" / "1_abc.png").exists()

    @pytest.mark.asyncio
    async def test_rejects_escaping_paths(self, tmp_path):
        backend = LocalStorageBackend(tmp_path / "root")
        with pytest.raises(StorageFailure, match="escapes"):
            await backend.upload("../outside.png", b"x", "image/png")


# ---------------------------------------------------------------------------
# Supabase backend
# ---------------------------------------------------------------------------


class TestSupabaseStorageBackend:
    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            SupabaseStorageBackend(SupabaseConfig(url="https://proj.supabase.co"), bucket="b")

    def test_public_url_template(self):
        backend = SupabaseStorageBackend(SUPABASE, bucket="custom-pictograms")
        assert backend.public_url_for("u/1_a.png") == (
            "https://proj.supabase.co/storage/v1/object/public/custom-pictograms/u/1_a.png"
        )

    @pytest.mark.asyncio
    async def test_upload_posts_without_upsert(self, png_bytes):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "custom-pictograms/u/1_a.png"})

        backend = SupabaseStorageBackend(
            SUPABASE, bucket="custom-pictograms", transport=httpx.MockTransport(handler)
        )
        stored = await backend.upload("u/1_a.png", png_bytes, "image/png")

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/storage/v1/object/custom-pictograms/u/1_a.png"
        assert request.headers["x-upsert"] == "false"
        assert request.headers["authorization"] == "Bearer service-key"
        assert request.headers["content-type"] == "image/png"
        assert request.headers["cache-control"] == "max-age=3600"
        assert request.content == png_bytes
        assert stored.url.endswith("/storage/v1/object/public/custom-pictograms/u/1_a.png")

    @pytest.mark.asyncio
    async def test_upload_conflict_raises(self):
        def handler(request):
            return httpx.Response(409, json={"message": "The resource already exists"})

        backend = SupabaseStorageBackend(SUPABASE, bucket="b", transport=httpx.MockTransport(handler))
        with pytest.raises(StorageFailure, match="already exists"):
            await backend.upload("u/1_a.png", b"x", "image/png")

    @pytest.mark.asyncio
    async def test_upload_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("boom")

        backend = SupabaseStorageBackend(SUPABASE, bucket="b", transport=httpx.MockTransport(handler))
        with pytest.raises(StorageFailure):
            await backend.upload("u/1_a.png", b"x", "image/png")

    @pytest.mark.asyncio
    async def test_remove_sends_prefixes(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        backend = SupabaseStorageBackend(SUPABASE, bucket="b", transport=httpx.MockTransport(handler))
        await backend.remove(["u/1_a.png"])

        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/storage/v1/object/b"
        assert json.loads(seen[0].content) == {"prefixes": ["u/1_a.png"]}

    @pytest.mark.asyncio
    async def test_remove_failure_raises(self):
        def handler(request):
            return httpx.Response(500, text="oops")

        backend = SupabaseStorageBackend(SUPABASE, bucket="b", transport=httpx.MockTransport(handler))
        with pytest.raises(StorageFailure):
            await backend.remove(["u/1_a.png"])


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class DummyBackend:
    def __init__(self, config):
        self.config = config


class TestCreateStorageBackend:
    def test_supabase(self):
        backend = create_storage_backend(StorageConfig(backend="supabase", supabase=SUPABASE))
        assert isinstance(backend, SupabaseStorageBackend)
        assert backend.bucket == "custom-pictograms"

    def test_local(self, tmp_path):
        backend = create_storage_backend(StorageConfig(backend="local", local_path=str(tmp_path)))
        assert isinstance(backend, LocalStorageBackend)

    def test_dynamic_import(self):
        config = StorageConfig(backend="myplugins.storage:DummyBackend")
        module = SimpleNamespace(DummyBackend=DummyBackend)
        with patch("pictobox.lib.storage.manager.importlib.import_module", return_value=module) as mock_import:
            backend = create_storage_backend(config)

        mock_import.assert_called_once_with("myplugins.storage")
        assert backend.config is config

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_storage_backend(StorageConfig(backend="ftp"))

    def test_bad_dynamic_spec(self):
        with pytest.raises(ValueError, match="exactly one colon"):
            create_storage_backend(StorageConfig(backend="a:b:c"))
