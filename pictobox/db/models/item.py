"""Item model."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pictobox.db.base import Base

if TYPE_CHECKING:
    from pictobox.db.models.category import Category

ImageType = Literal["default", "custom", "uploaded"]
IMAGE_TYPES: tuple[str, ...] = ("default", "custom", "uploaded")


class Item(Base):
    """A physical possession tagged with an icon, a generated sketch or a photo.

    ``image_url`` holds inline SVG markup for ``default`` images and a storage
    URL for ``custom`` and ``uploaded`` ones.
    """

    __tablename__ = "items"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_items_quantity_positive"),)

    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    category_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    category: Mapped["Category | None"] = relationship("Category", lazy="selectin")

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_type: Mapped[str] = mapped_column(String(16), nullable=False, default="default")
