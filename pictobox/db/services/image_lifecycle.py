"""Keep stored images and the rows that reference them consistent.

The contract is two-phase: store the image, then write the record. When the
record write fails, the freshly stored object is deleted again before the
error propagates. Releasing an image is best-effort and only happens once no
row references it any more.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pictobox.db.models import CustomPictogram, Item
from pictobox.lib.errors import ValidationFailure
from pictobox.lib.results import BestEffort
from pictobox.lib.transfer import ImageSource, UrlSource
from pictobox.lib.urls import UrlKind

if TYPE_CHECKING:
    from pictobox.lib.transfer import StorageTransferEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


def check_owner_scope(engine: StorageTransferEngine, url: str, owner_id: UUID | str) -> None:
    """Reject a storage URL that lies outside the owner's own prefix."""
    if engine.classifier.classify(url) is not UrlKind.STORAGE_PERSISTED:
        return

    path = engine.classifier.storage_path(url)
    if path is None or not path.startswith(f"{owner_id}/"):
        raise ValidationFailure(
            "Stored image does not belong to this owner", url=url, owner_id=str(owner_id)
        )


async def store_then_record(
    engine: StorageTransferEngine,
    source: ImageSource,
    owner_id: UUID | str,
    write: Callable[[str], Awaitable[T]],
) -> T:
    """Persist ``source`` and hand the public URL to ``write``.

    If ``write`` raises after a new object was uploaded, the object is removed
    before the exception is re-raised.
    """
    if isinstance(source, UrlSource):
        check_owner_scope(engine, source.url, owner_id)

    url = await engine.persist(source, owner_id)
    newly_stored = not (isinstance(source, UrlSource) and source.url == url)

    try:
        return await write(url)
    except Exception:
        if newly_stored:
            logger.warning("Record write failed, removing just-stored image %s", url)
            result = await engine.delete(url)
            if result.degraded:
                logger.error("Compensating delete failed, object orphaned: %s", result.warning)
        raise


async def commit_or_rollback(db_session: AsyncSession) -> None:
    """Commit, rolling the session back before re-raising on failure."""
    try:
        await db_session.commit()
    except Exception:
        await db_session.rollback()
        raise


async def count_image_references(db_session: AsyncSession, url: str) -> int:
    """Count items and custom pictograms whose ``image_url`` is ``url``."""
    total = 0
    for model in (Item, CustomPictogram):
        result = await db_session.execute(
            select(func.count()).select_from(model).where(model.image_url == url)
        )
        total += result.scalar() or 0
    return total


async def release_image(
    db_session: AsyncSession,
    engine: StorageTransferEngine,
    url: str | None,
) -> BestEffort[bool]:
    """Delete the stored object behind ``url`` if nothing references it."""
    if engine.classifier.classify(url) is not UrlKind.STORAGE_PERSISTED:
        return BestEffort(True)

    remaining = await count_image_references(db_session, url)
    if remaining:
        logger.debug("Image still referenced by %d record(s), keeping %s", remaining, url)
        return BestEffort(True)

    return await engine.delete(url)
