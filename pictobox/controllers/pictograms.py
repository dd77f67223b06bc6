"""AI pictogram generation and the saved pictogram gallery."""

from __future__ import annotations

import logging
from uuid import UUID

from litestar import Controller, Request, delete, get, post
from litestar.exceptions import NotFoundException, PermissionDeniedException
from litestar.response import Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from pictobox.auth.guards import auth_guard, get_owner_id
from pictobox.controllers.helpers import get_services
from pictobox.db.models import CustomPictogram
from pictobox.db.services import pictogram_service

logger = logging.getLogger(__name__)


# --- Request models ---


class GenerateRequest(BaseModel):
    prompt: str


class SavePictogramRequest(BaseModel):
    image_url: str = Field(min_length=1)
    prompt: str = Field(min_length=1, max_length=500)


def pictogram_to_dict(pictogram: CustomPictogram) -> dict:
    return {
        "id": str(pictogram.id),
        "prompt": pictogram.prompt,
        "image_url": pictogram.image_url,
        "created_at": pictogram.created_at.isoformat() if pictogram.created_at else None,
    }


class PictogramsController(Controller):
    path = "/api/pictograms"
    guards = [auth_guard]

    @post("/generate", status_code=200)
    async def generate(self, request: Request, data: GenerateRequest) -> Response:
        """Generate a preview; the returned URL expires and must be saved to keep it."""
        image_url = await get_services(request).generator.generate(data.prompt)
        return Response(content={"image_url": image_url, "prompt": data.prompt.strip()})

    @get("/custom")
    async def list_custom(self, request: Request, db_session: AsyncSession) -> Response:
        owner_id = get_owner_id(request)
        pictograms = await pictogram_service.list_custom_pictograms(db_session, owner_id)
        return Response(content={"pictograms": [pictogram_to_dict(p) for p in pictograms]})

    @post("/custom", status_code=201)
    async def save_custom(
        self,
        request: Request,
        db_session: AsyncSession,
        data: SavePictogramRequest,
    ) -> Response:
        owner_id = get_owner_id(request)
        pictogram = await pictogram_service.save_custom_pictogram(
            db_session,
            get_services(request).engine,
            owner_id,
            image_url=data.image_url,
            prompt=data.prompt.strip(),
        )
        return Response(content=pictogram_to_dict(pictogram), status_code=201)

    @delete("/custom/{pictogram_id:uuid}", status_code=200)
    async def delete_custom(
        self,
        request: Request,
        db_session: AsyncSession,
        pictogram_id: UUID,
    ) -> Response:
        owner_id = get_owner_id(request)
        pictogram = await pictogram_service.get_custom_pictogram(db_session, pictogram_id)
        if pictogram is None:
            raise NotFoundException("Pictogram not found")
        if pictogram.user_id != owner_id:
            raise PermissionDeniedException("You don't have permission to delete this pictogram")

        cleanup = await pictogram_service.delete_custom_pictogram(
            db_session, get_services(request).engine, pictogram
        )
        if cleanup.degraded:
            logger.warning("Pictogram %s deleted but image kept: %s", pictogram_id, cleanup.warning)
        return Response(content={"success": True, "storage_cleaned": cleanup.value})
