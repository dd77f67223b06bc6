"""URL classification for image references.

Classification looks only at the shape of a URL, never at the network, so the
same input always yields the same answer. Both the transfer engine and the
migration job rely on it to converge: a persisted URL is never fetched again.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlsplit

if TYPE_CHECKING:
    from pictobox.config import ClassifierConfig
    from pictobox.lib.storage.base import ObjectStorage


class UrlKind(str, Enum):
    STORAGE_PERSISTED = "storage_persisted"
    GENERATED_EPHEMERAL = "generated_ephemeral"
    UNKNOWN = "unknown"


class SourceKind(str, Enum):
    """Where the image behind a record currently lives."""

    DEFAULT_ICON = "default_icon"
    GENERATED_EPHEMERAL = "generated_ephemeral"
    STORAGE_PERSISTED = "storage_persisted"
    USER_UPLOADED = "user_uploaded"


def is_inline_markup(value: str | None) -> bool:
    """True for inline SVG/HTML markup stored in place of a URL."""
    return bool(value) and value.lstrip().startswith("<")


def is_http_url(value: str | None) -> bool:
    if not value:
        return False
    return urlsplit(value.strip()).scheme.lower() in ("http", "https")


class UrlClassifier:
    """Classify image URLs against this deployment's bucket and known generators."""

    def __init__(
        self,
        storage_prefix: str,
        ephemeral_hosts: Iterable[str] = (),
        ephemeral_path_patterns: Iterable[str] = (),
    ) -> None:
        path = urlsplit(storage_prefix).path
        if not path.endswith("/"):
            path += "/"
        self._storage_path_prefix = path
        self._ephemeral_hosts = tuple(h.lower().lstrip(".") for h in ephemeral_hosts)
        self._ephemeral_patterns = tuple(re.compile(p) for p in ephemeral_path_patterns)

    @classmethod
    def from_config(cls, storage: ObjectStorage, config: ClassifierConfig) -> UrlClassifier:
        return cls(
            storage.public_prefix,
            ephemeral_hosts=config.ephemeral_hosts,
            ephemeral_path_patterns=config.ephemeral_path_patterns,
        )

    @property
    def storage_path_prefix(self) -> str:
        return self._storage_path_prefix

    def classify(self, url: str | None) -> UrlKind:
        if not url or is_inline_markup(url):
            return UrlKind.UNKNOWN

        parts = urlsplit(url.strip())
        if parts.path.startswith(self._storage_path_prefix) and len(parts.path) > len(
            self._storage_path_prefix
        ):
            return UrlKind.STORAGE_PERSISTED

        host = (parts.hostname or "").lower()
        if host and any(host == h or host.endswith(f".{h}") for h in self._ephemeral_hosts):
            return UrlKind.GENERATED_EPHEMERAL
        if any(p.search(parts.path) for p in self._ephemeral_patterns):
            return UrlKind.GENERATED_EPHEMERAL

        return UrlKind.UNKNOWN

    def storage_path(self, url: str | None) -> str | None:
        """Extract the object path from a storage URL, or ``None`` for anything else."""
        if self.classify(url) is not UrlKind.STORAGE_PERSISTED:
            return None
        path = unquote(urlsplit(url.strip()).path[len(self._storage_path_prefix):])
        if ".." in path.split("/"):
            return None
        return path or None

    def classify_record(self, url: str | None, image_type: str | None = None) -> SourceKind:
        """Map a stored ``image_url``/``image_type`` pair to its source kind."""
        if not url or is_inline_markup(url) or image_type == "default":
            return SourceKind.DEFAULT_ICON

        if self.classify(url) is UrlKind.STORAGE_PERSISTED:
            if image_type == "uploaded":
                return SourceKind.USER_UPLOADED
            return SourceKind.STORAGE_PERSISTED

        # Unrecognized URLs might be short-lived too
        return SourceKind.GENERATED_EPHEMERAL
