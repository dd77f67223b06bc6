"""Failure taxonomy for the image pipeline.

Every error carries a ``detail`` mapping that is logged server-side. Only
``user_message`` is ever shown to end users.
"""

from __future__ import annotations

from typing import Any


class ImageError(Exception):
    """Base class for image fetch, validation, storage and generation failures."""

    user_message = "Image could not be saved. Please try again."

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.detail = detail


class FetchFailure(ImageError):
    """Source bytes could not be retrieved (non-2xx, network error, expired URL)."""


class ValidationFailure(ImageError):
    """Wrong content type, oversized payload, or otherwise unusable input."""


class StorageFailure(ImageError):
    """The storage backend rejected an upload or delete."""


class GenerationFailure(ImageError):
    """The generation backend produced no usable image URL."""

    user_message = "Image could not be generated. Please try again."
