"""Custom pictogram model."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pictobox.db.base import Base


class CustomPictogram(Base):
    """An AI-generated sketch saved to a user's gallery."""

    __tablename__ = "custom_pictograms"

    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(String(500), nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
