"""Local filesystem storage backend."""

from __future__ import annotations

import asyncio
from pathlib import Path
from urllib.parse import quote

from pictobox.lib.errors import StorageFailure
from pictobox.lib.storage.base import StoredObject


class LocalStorageBackend:
    """Store objects on the local filesystem, one directory per owner."""

    def __init__(self, base_path: Path, bucket: str = "custom-pictograms", base_url: str = "") -> None:
        self._base_path = base_path
        self.bucket = bucket
        self._base_url = base_url.rstrip("/")

    @property
    def base_path(self) -> Path:
        return self._base_path

    @property
    def public_prefix(self) -> str:
        return f"{self._base_url}/storage/{self.bucket}/"

    async def upload(self, path: str, data: bytes, content_type: str) -> StoredObject:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(self._write_new_file, target, data)
        except FileExistsError as exc:
            raise StorageFailure("Object already exists", path=path) from exc
        except OSError as exc:
            raise StorageFailure(f"Local write failed: {exc}", path=path) from exc
        return StoredObject(
            path=path,
            url=self.public_url_for(path),
            content_type=content_type,
            size=len(data),
        )

    async def remove(self, paths: list[str]) -> None:
        for path in paths:
            target = self._resolve(path)
            try:
                await asyncio.to_thread(target.unlink, missing_ok=True)
            except OSError as exc:
                raise StorageFailure(f"Local delete failed: {exc}", path=path) from exc

    def public_url_for(self, path: str) -> str:
        return f"{self.public_prefix}{quote(path)}"

    async def close(self) -> None:
        """No persistent resources to clean up."""

    # -- internal helpers --

    def _resolve(self, path: str) -> Path:
        target = (self._base_path / path).resolve()
        if not target.is_relative_to(self._base_path.resolve()):
            raise StorageFailure("Path escapes the storage root", path=path)
        return target

    @staticmethod
    def _write_new_file(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # "x" mode refuses to replace an existing object
        with open(path, "xb") as f:
            f.write(data)
