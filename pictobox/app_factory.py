"""Shared wiring for the ASGI app and the CLI.

Both the web app and ``pictobox migrate-images`` build their image pipeline
through :func:`build_image_services`, so they agree on the bucket and on which
URLs count as persisted.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from litestar.exceptions import HTTPException
from litestar.middleware.session.client_side import CookieBackendConfig

from pictobox.lib.errors import ImageError
from pictobox.lib.exceptions import (
    http_exception_handler,
    image_error_handler,
    internal_server_error_handler,
)
from pictobox.lib.generator import ImageGeneratorClient
from pictobox.lib.icons import IconResolver
from pictobox.lib.storage import create_storage_backend
from pictobox.lib.transfer import StorageTransferEngine
from pictobox.lib.translate import Translator
from pictobox.lib.urls import UrlClassifier

if TYPE_CHECKING:
    from pictobox.config import Settings
    from pictobox.lib.storage.base import ObjectStorage

logger = logging.getLogger(__name__)

# Shared exception handlers dict
EXCEPTION_HANDLERS: dict[type[Exception], Any] = {
    ImageError: image_error_handler,
    HTTPException: http_exception_handler,
    Exception: internal_server_error_handler,
}


def create_session_config(
    secret_key: str,
    max_age: int = 86400,
    secure: bool = False,
    cookie_domain: str | None = None,
    cookie_name: str = "session",
) -> CookieBackendConfig:
    """Create a cookie-backed session config."""
    session_secret = hashlib.sha256(secret_key.encode()).digest()
    return CookieBackendConfig(
        secret=session_secret,
        key=cookie_name,
        max_age=max_age,
        httponly=True,
        secure=secure,
        samesite="lax",
        domain=cookie_domain,
    )


@dataclass
class ImageServices:
    """The image pipeline components, configured once per process."""

    storage: ObjectStorage
    classifier: UrlClassifier
    engine: StorageTransferEngine
    translator: Translator
    generator: ImageGeneratorClient
    icons: IconResolver

    async def close(self) -> None:
        await self.storage.close()


def build_image_services(settings: Settings) -> ImageServices:
    storage = create_storage_backend(settings.storage)
    classifier = UrlClassifier.from_config(storage, settings.classifier)
    engine = StorageTransferEngine.from_config(settings.storage, storage, classifier)
    translator = Translator.from_config(settings.translator)
    generator = ImageGeneratorClient.from_config(settings.generator, translator)
    icons = IconResolver(settings.icons)

    logger.info(
        "Image storage: %s backend, bucket %s", settings.storage.backend, storage.bucket
    )
    if not settings.generator.api_token:
        logger.warning("No generator API token configured; image generation will fail")

    return ImageServices(
        storage=storage,
        classifier=classifier,
        engine=engine,
        translator=translator,
        generator=generator,
        icons=icons,
    )
