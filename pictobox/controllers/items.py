"""Inventory item endpoints."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from litestar import Controller, Request, delete, get, post, put
from litestar.datastructures import UploadFile
from litestar.enums import RequestEncodingType
from litestar.exceptions import ClientException, NotFoundException
from litestar.params import Body
from litestar.response import Response
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from pictobox.auth.guards import auth_guard, get_owner_id
from pictobox.controllers.helpers import get_services
from pictobox.db.models import Item, ImageType
from pictobox.db.services import item_service
from pictobox.lib.transfer import BytesSource
from pictobox.lib.urls import UrlClassifier

logger = logging.getLogger(__name__)


# --- Request models ---


def _strip_name(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("Name is required")
    return value


class ItemCreate(BaseModel):
    name: str = Field(max_length=200)
    category_id: UUID
    description: str | None = None
    quantity: int = Field(default=1, ge=1)
    image_url: str | None = None
    image_type: ImageType = "default"

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str | None) -> str | None:
        return _strip_name(value)


class ItemUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    category_id: UUID | None = None
    description: str | None = None
    quantity: int | None = Field(default=None, ge=1)
    image_url: str | None = None
    image_type: ImageType | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str | None) -> str | None:
        return _strip_name(value)


def item_to_dict(item: Item, classifier: UrlClassifier) -> dict:
    return {
        "id": str(item.id),
        "name": item.name,
        "description": item.description,
        "quantity": item.quantity,
        "category_id": str(item.category_id) if item.category_id else None,
        "category_name": item.category.name if item.category else None,
        "image_url": item.image_url,
        "image_type": item.image_type,
        "image_source": classifier.classify_record(item.image_url, item.image_type).value,
        "created_at": item.created_at.isoformat() if item.created_at else None,
        "updated_at": item.updated_at.isoformat() if item.updated_at else None,
    }


class ItemsController(Controller):
    path = "/api/items"
    guards = [auth_guard]

    async def _get_owned_item(self, request: Request, db_session: AsyncSession, item_id: UUID) -> Item:
        item = await item_service.get_item(db_session, get_owner_id(request), item_id)
        if item is None:
            raise NotFoundException("Item not found")
        return item

    async def _require_category(self, db_session: AsyncSession, owner_id: UUID, category_id: UUID) -> None:
        category = await item_service.get_category_for_owner(db_session, owner_id, category_id)
        if category is None:
            raise ClientException("Invalid category")

    @get("/")
    async def list_items(
        self,
        request: Request,
        db_session: AsyncSession,
        category_id: UUID | None = None,
    ) -> Response:
        items = await item_service.list_items(db_session, get_owner_id(request), category_id)
        classifier = get_services(request).classifier
        return Response(content={"items": [item_to_dict(i, classifier) for i in items]})

    @post("/", status_code=201)
    async def create_item(self, request: Request, db_session: AsyncSession, data: ItemCreate) -> Response:
        owner_id = get_owner_id(request)
        await self._require_category(db_session, owner_id, data.category_id)

        item = await item_service.create_item(
            db_session,
            get_services(request).engine,
            owner_id,
            name=data.name,
            category_id=data.category_id,
            description=data.description,
            quantity=data.quantity,
            image_url=data.image_url,
            image_type=data.image_type,
        )
        return Response(content=item_to_dict(item, get_services(request).classifier), status_code=201)

    @get("/{item_id:uuid}")
    async def get_item(self, request: Request, db_session: AsyncSession, item_id: UUID) -> Response:
        item = await self._get_owned_item(request, db_session, item_id)
        return Response(content=item_to_dict(item, get_services(request).classifier))

    @put("/{item_id:uuid}")
    async def update_item(
        self,
        request: Request,
        db_session: AsyncSession,
        item_id: UUID,
        data: ItemUpdate,
    ) -> Response:
        item = await self._get_owned_item(request, db_session, item_id)
        if data.category_id is not None:
            await self._require_category(db_session, item.user_id, data.category_id)

        # Only explicitly sent fields may clear a nullable column
        changes = {name: getattr(data, name) for name in data.model_fields_set}
        item = await item_service.update_item(
            db_session, get_services(request).engine, item, **changes
        )
        return Response(content=item_to_dict(item, get_services(request).classifier))

    @delete("/{item_id:uuid}", status_code=200)
    async def delete_item(self, request: Request, db_session: AsyncSession, item_id: UUID) -> Response:
        item = await self._get_owned_item(request, db_session, item_id)
        cleanup = await item_service.delete_item(db_session, get_services(request).engine, item)
        return Response(content={"success": True, "storage_cleaned": cleanup.value})

    @post("/{item_id:uuid}/image", status_code=200)
    async def upload_image(
        self,
        request: Request,
        db_session: AsyncSession,
        item_id: UUID,
        data: Annotated[UploadFile, Body(media_type=RequestEncodingType.MULTI_PART)],
    ) -> Response:
        """Replace the item's image with an uploaded photo."""
        item = await self._get_owned_item(request, db_session, item_id)
        engine = get_services(request).engine

        content = await data.read()
        if len(content) > engine.max_bytes:
            raise ClientException(f"File too large (max {engine.max_bytes // (1024 * 1024)} MB)")

        source = BytesSource(content, data.content_type or "", filename=data.filename)
        item = await item_service.replace_item_image(db_session, engine, item, source)
        return Response(content=item_to_dict(item, get_services(request).classifier))
