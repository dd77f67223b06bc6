"""Record store adapter used by the offline image migration.

Each operation opens and closes its own session, so records processed
concurrently within a migration batch never share one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pictobox.db.models import CustomPictogram, Item


@dataclass(frozen=True)
class ImageRecord:
    id: UUID
    owner_id: UUID
    image_url: str
    image_type: str | None = None


class RecordStore(Protocol):
    """What the migration runner needs from a table holding image URLs."""

    name: str

    async def list_image_records(self) -> list[ImageRecord]: ...

    async def get_record(self, record_id: UUID) -> ImageRecord | None: ...

    async def update_image_url(self, record_id: UUID, url: str) -> None: ...

    async def delete_record(self, record_id: UUID) -> bool: ...


class SQLAlchemyRecordStore:
    """Expose one model's ``(id, user_id, image_url)`` rows as image records.

    ``criteria`` narrows which rows are listed (e.g. items that carry a
    generated or uploaded image).
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        model: type[Any],
        *criteria: Any,
        name: str | None = None,
    ) -> None:
        self._session_maker = session_maker
        self._model = model
        self._criteria = criteria
        self.name = name or model.__tablename__

    def _to_record(self, row: Any) -> ImageRecord:
        return ImageRecord(
            id=row.id,
            owner_id=row.user_id,
            image_url=row.image_url,
            image_type=getattr(row, "image_type", None),
        )

    async def list_image_records(self) -> list[ImageRecord]:
        model = self._model
        query = select(model).where(model.image_url.is_not(None), *self._criteria)
        async with self._session_maker() as session:
            result = await session.execute(query.order_by(model.created_at))
            return [self._to_record(row) for row in result.scalars().all()]

    async def get_record(self, record_id: UUID) -> ImageRecord | None:
        async with self._session_maker() as session:
            result = await session.execute(select(self._model).where(self._model.id == record_id))
            row = result.scalar_one_or_none()
            return self._to_record(row) if row is not None else None

    async def update_image_url(self, record_id: UUID, url: str) -> None:
        """Point a record at ``url``.

        Raises:
            LookupError: No row with ``record_id`` exists any more.
        """
        async with self._session_maker() as session:
            result = await session.execute(
                update(self._model).where(self._model.id == record_id).values(image_url=url)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise LookupError(f"{self.name} record {record_id} not found")
            await session.commit()

    async def delete_record(self, record_id: UUID) -> bool:
        async with self._session_maker() as session:
            result = await session.execute(delete(self._model).where(self._model.id == record_id))
            await session.commit()
            return result.rowcount > 0


def migration_record_stores(
    session_maker: async_sessionmaker[AsyncSession],
) -> list[SQLAlchemyRecordStore]:
    """The tables whose image URLs the migration job reconciles.

    Items with ``default`` images hold inline icon markup and are never
    candidates.
    """
    return [
        SQLAlchemyRecordStore(session_maker, CustomPictogram),
        SQLAlchemyRecordStore(
            session_maker,
            Item,
            Item.image_type.in_(("custom", "uploaded")),
        ),
    ]
