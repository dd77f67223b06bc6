"""ASGI middleware for serving images from the local storage backend."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from litestar.types import ASGIApp, Receive, Scope, Send

from pictobox.lib.imaging import detect_image_content_type

if TYPE_CHECKING:
    from pictobox.lib.storage.local import LocalStorageBackend

logger = logging.getLogger(__name__)


async def _reject(send: Send) -> None:
    await send({
        "type": "http.response.start",
        "status": 404,
        "headers": [(b"content-type", b"text/plain; charset=utf-8")],
    })
    await send({"type": "http.response.body", "body": b"Not Found"})


class StorageFilesMiddleware:
    """Serve objects at ``/storage/{bucket}/{owner}/{file}``.

    Only mounted when the local backend is configured; remote backends serve
    their own public URLs.
    """

    def __init__(self, app: ASGIApp, storage: LocalStorageBackend) -> None:
        self.app = app
        self._storage = storage
        self._prefix = f"/storage/{storage.bucket}/"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope["path"].startswith(self._prefix):
            await self.app(scope, receive, send)
            return

        key = scope["path"][len(self._prefix):]
        if not key or ".." in key.split("/") or "\x00" in key:
            logger.warning("Rejected storage path %r", key)
            await _reject(send)
            return

        base_path = self._storage.base_path.resolve()
        try:
            resolved = (base_path / key).resolve()
        except (OSError, ValueError):
            await _reject(send)
            return

        if not resolved.is_relative_to(base_path) or not resolved.is_file():
            await _reject(send)
            return

        content = resolved.read_bytes()
        media_type = detect_image_content_type(content) or "application/octet-stream"

        await send({
            "type": "http.response.start",
            "status": 200,
            "headers": [
                (b"content-type", media_type.encode()),
                (b"content-length", str(len(content)).encode()),
                (b"cache-control", b"public, max-age=3600"),
            ],
        })
        await send({"type": "http.response.body", "body": content})
