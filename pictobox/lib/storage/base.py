"""Object storage protocol and common types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass
class StoredObject:
    """Metadata for an object written to the bucket."""

    path: str
    url: str
    content_type: str
    size: int


@runtime_checkable
class ObjectStorage(Protocol):
    """Interface for pluggable image storage backends.

    Uploads never overwrite: an existing object at ``path`` is a
    :class:`~pictobox.lib.errors.StorageFailure`.
    """

    bucket: str

    @property
    def public_prefix(self) -> str:
        """Public URL prefix shared by every object in the bucket."""
        ...

    async def upload(self, path: str, data: bytes, content_type: str) -> StoredObject:
        """Store data under the given path, failing if it already exists."""
        ...

    async def remove(self, paths: list[str]) -> None:
        """Remove objects from the bucket."""
        ...

    def public_url_for(self, path: str) -> str:
        """Return the public URL for a path (pure string template)."""
        ...

    async def close(self) -> None:
        """Release any held resources."""
        ...
