"""Item service: CRUD with image persistence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pictobox.db.models import Category, Item
from pictobox.db.services.image_lifecycle import (
    commit_or_rollback,
    release_image,
    store_then_record,
)
from pictobox.lib.errors import ValidationFailure
from pictobox.lib.results import BestEffort
from pictobox.lib.transfer import BytesSource, UrlSource
from pictobox.lib.urls import is_inline_markup

if TYPE_CHECKING:
    from pictobox.lib.transfer import StorageTransferEngine

logger = logging.getLogger(__name__)

_UNSET = object()  # Sentinel for distinguishing None from "not provided"


def _check_image(image_url: str | None, image_type: str) -> bool:
    """Validate the url/type pair and report whether the image must be stored.

    ``default`` items carry inline icon markup (or nothing); ``custom`` and
    ``uploaded`` items carry a URL that has to end up in storage.
    """
    if not image_url:
        return False

    inline = is_inline_markup(image_url)
    if image_type == "default" and not inline:
        raise ValidationFailure("Default items only hold inline icon markup", image_type=image_type)
    if image_type != "default" and inline:
        raise ValidationFailure("Inline markup cannot back a stored image", image_type=image_type)
    return not inline


async def list_items(
    db_session: AsyncSession,
    owner_id: UUID,
    category_id: UUID | None = None,
) -> list[Item]:
    """List an owner's items, newest first, optionally within one category."""
    filters = [Item.user_id == owner_id]
    if category_id is not None:
        filters.append(Item.category_id == category_id)

    result = await db_session.execute(
        select(Item).where(and_(*filters)).order_by(Item.created_at.desc())
    )
    return list(result.scalars().all())


async def get_item(db_session: AsyncSession, owner_id: UUID, item_id: UUID) -> Item | None:
    result = await db_session.execute(
        select(Item).where(and_(Item.id == item_id, Item.user_id == owner_id))
    )
    return result.scalar_one_or_none()


async def get_category_for_owner(
    db_session: AsyncSession,
    owner_id: UUID,
    category_id: UUID,
) -> Category | None:
    result = await db_session.execute(
        select(Category).where(and_(Category.id == category_id, Category.user_id == owner_id))
    )
    return result.scalar_one_or_none()


async def create_item(
    db_session: AsyncSession,
    engine: StorageTransferEngine,
    owner_id: UUID,
    name: str,
    category_id: UUID,
    description: str | None = None,
    quantity: int = 1,
    image_url: str | None = None,
    image_type: str = "default",
) -> Item:
    """Create an item, persisting a generated image before the row is written.

    Raises:
        ImageError: The image could not be stored; no row is written.
    """
    item = Item(
        user_id=owner_id,
        category_id=category_id,
        name=name,
        description=description,
        quantity=quantity,
        image_type=image_type,
    )

    async def write(url: str | None) -> Item:
        item.image_url = url
        db_session.add(item)
        await commit_or_rollback(db_session)
        await db_session.refresh(item)
        return item

    if _check_image(image_url, image_type):
        return await store_then_record(engine, UrlSource(image_url), owner_id, write)
    return await write(image_url)


async def update_item(
    db_session: AsyncSession,
    engine: StorageTransferEngine,
    item: Item,
    name: str | None = None,
    description: str | None | object = _UNSET,
    quantity: int | None = None,
    category_id: UUID | None = None,
    image_url: str | None | object = _UNSET,
    image_type: str | None = None,
) -> Item:
    """Apply field updates; a new image is stored before the row changes.

    The previous image is released (best-effort) after a successful commit.
    """
    previous_url = item.image_url
    new_type = image_type or item.image_type

    def apply(url: str | None | object) -> None:
        if name is not None:
            item.name = name
        if description is not _UNSET:
            item.description = description
        if quantity is not None:
            item.quantity = quantity
        if category_id is not None:
            item.category_id = category_id
        if image_type is not None:
            item.image_type = image_type
        if url is not _UNSET:
            item.image_url = url

    async def write(url: str | None | object) -> Item:
        apply(url)
        await commit_or_rollback(db_session)
        await db_session.refresh(item)
        return item

    image_changed = image_url is not _UNSET and image_url != previous_url
    target_url = previous_url if image_url is _UNSET else image_url
    if (image_changed or new_type != item.image_type) and _check_image(target_url, new_type):
        item = await store_then_record(engine, UrlSource(target_url), item.user_id, write)
    else:
        item = await write(image_url)

    if item.image_url != previous_url:
        await _release_previous(db_session, engine, previous_url)
    return item


async def replace_item_image(
    db_session: AsyncSession,
    engine: StorageTransferEngine,
    item: Item,
    source: BytesSource,
) -> Item:
    """Store an uploaded photo and point the item at it."""
    previous_url = item.image_url

    async def write(url: str) -> Item:
        item.image_url = url
        item.image_type = "uploaded"
        await commit_or_rollback(db_session)
        await db_session.refresh(item)
        return item

    item = await store_then_record(engine, source, item.user_id, write)
    await _release_previous(db_session, engine, previous_url)
    return item


async def delete_item(
    db_session: AsyncSession,
    engine: StorageTransferEngine,
    item: Item,
) -> BestEffort[bool]:
    """Delete the row, then release its image.

    The row deletion always stands even if the storage object cannot be
    removed; the returned result reports the storage side.
    """
    image_url = item.image_url
    await db_session.delete(item)
    await commit_or_rollback(db_session)
    return await _release_previous(db_session, engine, image_url)


async def _release_previous(
    db_session: AsyncSession,
    engine: StorageTransferEngine,
    url: str | None,
) -> BestEffort[bool]:
    result = await release_image(db_session, engine, url)
    if result.degraded:
        logger.warning("Stored image not removed (record change kept): %s", result.warning)
    return result
