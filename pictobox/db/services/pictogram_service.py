"""Custom pictogram service: the user's gallery of saved generated sketches."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pictobox.db.models import CustomPictogram
from pictobox.db.services.image_lifecycle import (
    commit_or_rollback,
    release_image,
    store_then_record,
)
from pictobox.lib.results import BestEffort
from pictobox.lib.transfer import UrlSource

if TYPE_CHECKING:
    from pictobox.lib.transfer import StorageTransferEngine


async def list_custom_pictograms(db_session: AsyncSession, owner_id: UUID) -> list[CustomPictogram]:
    """List an owner's saved pictograms, newest first."""
    result = await db_session.execute(
        select(CustomPictogram)
        .where(CustomPictogram.user_id == owner_id)
        .order_by(CustomPictogram.created_at.desc())
    )
    return list(result.scalars().all())


async def get_custom_pictogram(db_session: AsyncSession, pictogram_id: UUID) -> CustomPictogram | None:
    """Fetch a pictogram by id regardless of owner; callers check ownership."""
    result = await db_session.execute(
        select(CustomPictogram).where(CustomPictogram.id == pictogram_id)
    )
    return result.scalar_one_or_none()


async def save_custom_pictogram(
    db_session: AsyncSession,
    engine: StorageTransferEngine,
    owner_id: UUID,
    image_url: str,
    prompt: str,
) -> CustomPictogram:
    """Persist a generated preview into storage, then insert the gallery row."""

    async def write(url: str) -> CustomPictogram:
        pictogram = CustomPictogram(user_id=owner_id, prompt=prompt, image_url=url)
        db_session.add(pictogram)
        await commit_or_rollback(db_session)
        await db_session.refresh(pictogram)
        return pictogram

    return await store_then_record(engine, UrlSource(image_url), owner_id, write)


async def delete_custom_pictogram(
    db_session: AsyncSession,
    engine: StorageTransferEngine,
    pictogram: CustomPictogram,
) -> BestEffort[bool]:
    """Delete the row first; removing the stored image is best-effort."""
    image_url = pictogram.image_url
    await db_session.delete(pictogram)
    await commit_or_rollback(db_session)
    return await release_image(db_session, engine, image_url)
