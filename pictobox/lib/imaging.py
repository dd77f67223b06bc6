"""Image signature checks and content-type helpers using Pillow."""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

DEFAULT_EXTENSION = "webp"

_CONTENT_TYPE_TO_EXTENSION = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
}


def detect_image_content_type(data: bytes) -> str | None:
    """Detect image content type from magic bytes.

    Returns ``None`` if the data does not match a known image signature.
    """
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return None


def normalize_content_type(value: str | None) -> str:
    """Lower-case a Content-Type header and drop its parameters."""
    if not value:
        return ""
    return value.split(";", 1)[0].strip().lower()


def is_image_content_type(value: str | None) -> bool:
    return normalize_content_type(value).startswith("image/")


def extension_for_content_type(content_type: str | None) -> str:
    """Map a content type to a file extension, defaulting to ``webp``.

    Source URLs rarely carry a meaningful extension, so the content type is
    the only input.
    """
    return _CONTENT_TYPE_TO_EXTENSION.get(normalize_content_type(content_type), DEFAULT_EXTENSION)


def verify_image(data: bytes) -> tuple[int, int]:
    """Check that Pillow can decode the header and return ``(width, height)``.

    Raises:
        ValueError: If the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
        # verify() leaves the image unusable; reopen for the size
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Unreadable image data: {exc}") from exc
