"""ASGI application factory for Pictobox."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from advanced_alchemy.config import EngineConfig
from advanced_alchemy.extensions.litestar import (
    AsyncSessionConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyPlugin,
)
from litestar import Litestar
from litestar.types import ASGIApp

from pictobox.app_factory import (
    EXCEPTION_HANDLERS,
    ImageServices,
    build_image_services,
    create_session_config,
)
from pictobox.config import Settings, get_settings
from pictobox.controllers.items import ItemsController
from pictobox.controllers.pictograms import PictogramsController
from pictobox.controllers.sketches import SketchesController
from pictobox.db.base import Base
from pictobox.lib.storage.local import LocalStorageBackend
from pictobox.middleware.storage import StorageFilesMiddleware

logger = logging.getLogger(__name__)


def create_db_config(settings: Settings) -> SQLAlchemyAsyncConfig:
    if "sqlite" in settings.db.url:
        engine_config = EngineConfig(echo=settings.db.echo)
    else:
        engine_kwargs: dict[str, Any] = dict(
            pool_size=settings.db.pool_size,
            max_overflow=settings.db.pool_overflow,
            pool_timeout=settings.db.pool_timeout,
            echo=settings.db.echo,
        )
        engine_config = EngineConfig(**engine_kwargs)

    return SQLAlchemyAsyncConfig(
        connection_string=settings.db.url,
        metadata=Base.metadata,
        create_all=False,
        session_config=AsyncSessionConfig(expire_on_commit=False),
        engine_config=engine_config,
    )


def create_app(settings: Settings | None = None, services: ImageServices | None = None) -> ASGIApp:
    """Create and configure the Litestar application.

    With the local storage backend the app is wrapped in middleware that
    serves stored images under ``/storage/{bucket}/``.
    """
    settings = settings or get_settings()
    if not settings.secret_key:
        raise ValueError("SECRET_KEY must be set to sign session cookies")

    services = services or build_image_services(settings)
    db_config = create_db_config(settings)

    # Session configuration (client-side encrypted cookies)
    session_config = create_session_config(
        secret_key=settings.secret_key,
        max_age=settings.session.max_age,
        secure=not settings.debug,
        cookie_domain=settings.session.cookie_domain,
        cookie_name=settings.session.cookie_name,
    )

    local_storage = services.storage if isinstance(services.storage, LocalStorageBackend) else None

    async def on_startup(_app: Litestar) -> None:
        if local_storage is not None:
            Path(local_storage.base_path).mkdir(parents=True, exist_ok=True)

    async def on_shutdown(_app: Litestar) -> None:
        """Release storage backend resources on shutdown."""
        await services.close()

    app = Litestar(
        on_startup=[on_startup],
        on_shutdown=[on_shutdown],
        route_handlers=[SketchesController, PictogramsController, ItemsController],
        plugins=[SQLAlchemyPlugin(config=db_config)],
        middleware=[session_config.middleware],
        exception_handlers=EXCEPTION_HANDLERS,
        debug=settings.debug,
    )
    app.state.services = services

    if local_storage is not None:
        return StorageFilesMiddleware(app, storage=local_storage)
    return app
