"""Storage transfer engine: move image bytes into owner-scoped object storage.

``persist`` is idempotent for URLs that already point into the bucket and
raises on every failure; it never leaves a partially written object behind.
Writing the resulting URL to the database is the caller's job, and so is the
compensating :meth:`StorageTransferEngine.delete` when that write fails.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

import httpx

from pictobox.config import MAX_IMAGE_BYTES
from pictobox.lib.errors import FetchFailure, StorageFailure, ValidationFailure
from pictobox.lib.imaging import (
    detect_image_content_type,
    extension_for_content_type,
    is_image_content_type,
    normalize_content_type,
    verify_image,
)
from pictobox.lib.results import BestEffort
from pictobox.lib.urls import UrlKind, is_http_url

if TYPE_CHECKING:
    from pictobox.config import StorageConfig
    from pictobox.lib.storage.base import ObjectStorage
    from pictobox.lib.urls import UrlClassifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UrlSource:
    """An image reachable over HTTP (generator output, third-party asset, ...)."""

    url: str


@dataclass(frozen=True)
class BytesSource:
    """An in-memory image, typically a user upload."""

    data: bytes
    content_type: str
    filename: str | None = None


ImageSource = UrlSource | BytesSource


def compose_storage_path(
    owner_id: str,
    extension: str,
    timestamp_ms: int | None = None,
    token: str | None = None,
) -> str:
    """Build ``{owner_id}/{timestamp}_{token}.{extension}``.

    Timestamp plus random token keeps concurrent uploads for the same owner
    from colliding without any coordination.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if token is None:
        token = secrets.token_hex(4)
    return f"{owner_id}/{timestamp_ms}_{token}.{extension}"


def _owner_segment(owner_id: str | UUID) -> str:
    owner = str(owner_id).strip()
    if not owner or "/" in owner or owner in (".", ".."):
        raise ValidationFailure("Owner id must be a non-empty path segment", owner_id=owner)
    return owner


class StorageTransferEngine:
    """Persist images from URLs or byte buffers and delete them again."""

    def __init__(
        self,
        storage: ObjectStorage,
        classifier: UrlClassifier,
        max_bytes: int = MAX_IMAGE_BYTES,
        fetch_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._storage = storage
        self._classifier = classifier
        self._max_bytes = max_bytes
        self._fetch_timeout = fetch_timeout
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: StorageConfig,
        storage: ObjectStorage,
        classifier: UrlClassifier,
    ) -> StorageTransferEngine:
        return cls(
            storage,
            classifier,
            max_bytes=config.max_upload_size,
            fetch_timeout=config.fetch_timeout,
        )

    @property
    def classifier(self) -> UrlClassifier:
        return self._classifier

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    async def persist(self, source: ImageSource, owner_id: str | UUID) -> str:
        """Store ``source`` under the owner's prefix and return its public URL.

        Raises:
            FetchFailure: The source URL could not be downloaded.
            ValidationFailure: Not an image, too large, or a bad owner id.
            StorageFailure: The backend rejected the upload.
        """
        owner = _owner_segment(owner_id)

        if isinstance(source, UrlSource):
            if self._classifier.classify(source.url) is UrlKind.STORAGE_PERSISTED:
                logger.debug("Image already persisted, skipping transfer: %s", source.url)
                return source.url
            data, content_type = await self._fetch(source.url)
        else:
            data, content_type = self._check_bytes(source)

        path = compose_storage_path(owner, extension_for_content_type(content_type))
        try:
            stored = await self._storage.upload(path, data, content_type)
        except StorageFailure as exc:
            logger.error("Storage upload failed for %s: %s", path, exc)
            raise

        logger.info("Stored image %s (%s, %d bytes)", stored.path, stored.content_type, stored.size)
        return stored.url

    async def delete(self, url: str | None) -> BestEffort[bool]:
        """Remove the object behind a storage URL.

        Foreign URLs and inline markup are left alone and count as success.
        Backend errors are logged and reported through the result, never raised.
        """
        path = self._classifier.storage_path(url)
        if path is None:
            logger.debug("Not a storage URL, nothing to delete: %.80s", url or "")
            return BestEffort(True)

        try:
            await self._storage.remove([path])
        except Exception as exc:
            logger.warning("Storage delete failed for %s", path, exc_info=True)
            return BestEffort(False, warning=f"Could not delete {path}: {exc}")

        logger.info("Deleted stored image %s", path)
        return BestEffort(True)

    async def _fetch(self, url: str) -> tuple[bytes, str]:
        if not is_http_url(url):
            raise ValidationFailure("Only http(s) image sources can be fetched", url=url[:200])

        try:
            async with httpx.AsyncClient(
                timeout=self._fetch_timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise FetchFailure(
                            f"Image download failed: {response.status_code} {response.reason_phrase}",
                            url=url,
                            status_code=response.status_code,
                        )

                    declared_type = normalize_content_type(response.headers.get("content-type"))
                    if declared_type and not is_image_content_type(declared_type):
                        raise ValidationFailure(
                            f"Invalid content type: {declared_type}. Expected image/*",
                            url=url,
                        )

                    declared_length = response.headers.get("content-length", "")
                    if declared_length.isdigit() and int(declared_length) > self._max_bytes:
                        raise ValidationFailure(
                            f"Image size ({declared_length} bytes) exceeds {self._max_bytes} bytes",
                            url=url,
                        )

                    buffer = bytearray()
                    async for chunk in response.aiter_bytes():
                        buffer.extend(chunk)
                        if len(buffer) > self._max_bytes:
                            raise ValidationFailure(
                                f"Image exceeds {self._max_bytes} bytes",
                                url=url,
                            )
        except httpx.HTTPError as exc:
            raise FetchFailure(f"Image download failed: {exc}", url=url) from exc

        data = bytes(buffer)
        content_type = detect_image_content_type(data) or declared_type
        if not content_type:
            raise ValidationFailure("Downloaded data is not a recognizable image", url=url)
        return data, content_type

    def _check_bytes(self, source: BytesSource) -> tuple[bytes, str]:
        declared_type = normalize_content_type(source.content_type)
        if not is_image_content_type(declared_type):
            raise ValidationFailure(
                f"Invalid content type: {declared_type or 'missing'}. Expected image/*",
                filename=source.filename,
            )

        if len(source.data) > self._max_bytes:
            raise ValidationFailure(
                f"Image size ({len(source.data)} bytes) exceeds {self._max_bytes} bytes",
                filename=source.filename,
            )

        sniffed = detect_image_content_type(source.data)
        if sniffed is None:
            raise ValidationFailure(
                "Uploaded data does not carry an image signature",
                filename=source.filename,
                declared=declared_type,
            )

        try:
            verify_image(source.data)
        except ValueError as exc:
            raise ValidationFailure(str(exc), filename=source.filename) from exc

        return source.data, sniffed
