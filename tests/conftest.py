"""Shared pytest fixtures."""

import io

import httpx
import pytest
import yaml
from PIL import Image
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from pictobox.db.base import Base
from pictobox.db.models import Category, CustomPictogram, Item  # noqa: F401
from pictobox.lib.errors import StorageFailure
from pictobox.lib.storage.base import StoredObject
from pictobox.lib.transfer import StorageTransferEngine
from pictobox.lib.urls import UrlClassifier

SUPABASE_URL = "https://proj.supabase.co"
STORAGE_PREFIX = f"{SUPABASE_URL}/storage/v1/object/public/custom-pictograms/"
EPHEMERAL_URL = "https://replicate.delivery/xezq/abc123/out-0.png"


class FakeStorage:
    """In-memory ObjectStorage that records every call."""

    def __init__(self, bucket: str = "custom-pictograms", fail_upload: bool = False, fail_remove: bool = False):
        self.bucket = bucket
        self.objects: dict[str, bytes] = {}
        self.uploads: list[str] = []
        self.removed: list[str] = []
        self.fail_upload = fail_upload
        self.fail_remove = fail_remove
        self.closed = False

    @property
    def public_prefix(self) -> str:
        return f"{SUPABASE_URL}/storage/v1/object/public/{self.bucket}/"

    async def upload(self, path, data, content_type):
        if self.fail_upload:
            raise StorageFailure("upload rejected", path=path)
        if path in self.objects:
            raise StorageFailure("Object already exists", path=path)
        self.uploads.append(path)
        self.objects[path] = data
        return StoredObject(path=path, url=self.public_url_for(path), content_type=content_type, size=len(data))

    async def remove(self, paths):
        if self.fail_remove:
            raise StorageFailure("remove rejected", paths=paths)
        for path in paths:
            self.removed.append(path)
            self.objects.pop(path, None)

    def public_url_for(self, path):
        return f"{self.public_prefix}{path}"

    async def close(self):
        self.closed = True


def make_png(size: tuple[int, int] = (4, 4)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, (200, 180, 150)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def classifier(fake_storage):
    return UrlClassifier(
        fake_storage.public_prefix,
        ephemeral_hosts=["replicate.delivery"],
        ephemeral_path_patterns=[r"^/api/v1/predictions/[^/]+/output"],
    )


@pytest.fixture
def image_server(png_bytes):
    """A MockTransport serving PNG bytes for every GET, with a request log."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


@pytest.fixture
def make_engine(fake_storage, classifier):
    """Factory for a transfer engine over the fake storage."""

    def _make(transport=None, max_bytes=5 * 1024 * 1024, storage=None):
        return StorageTransferEngine(
            storage or fake_storage,
            classifier,
            max_bytes=max_bytes,
            fetch_timeout=5.0,
            transport=transport,
        )

    return _make


@pytest.fixture
def engine(make_engine, image_server):
    return make_engine(transport=image_server)


@pytest.fixture
async def session_maker(tmp_path):
    """A fresh SQLite database with all tables created."""
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(db_engine, expire_on_commit=False)
    await db_engine.dispose()


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def storage_factory():
    """Build additional FakeStorage instances (e.g. failing ones)."""
    return FakeStorage
