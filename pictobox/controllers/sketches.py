"""Icon picker endpoints backed by the Iconify API."""

import logging

from litestar import Controller, Request, get
from litestar.exceptions import NotFoundException
from litestar.response import Response

from pictobox.controllers.helpers import get_services
from pictobox.lib.icons import CATEGORY_LABELS, IconApiError, recommended_icon_ids

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
MAX_SEARCH_LIMIT = 64


class SketchesController(Controller):
    path = "/api/sketches"

    @get("/")
    async def recommended(self, request: Request, category: str | None = None) -> Response:
        """Curated icons for a category (or a mix of all categories)."""
        icons = get_services(request).icons
        sketches = await icons.get_sketches(recommended_icon_ids(category))
        return Response(
            content={
                "sketches": [s.to_dict() for s in sketches],
                "categories": CATEGORY_LABELS,
            }
        )

    @get("/search")
    async def search(self, request: Request, q: str = "", limit: int = 20) -> Response:
        query = q.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return Response(
                content={"error": f"Search query must be at least {MIN_QUERY_LENGTH} characters"},
                status_code=400,
            )

        icons = get_services(request).icons
        try:
            result = await icons.search(query, limit=max(1, min(limit, MAX_SEARCH_LIMIT)))
        except IconApiError:
            logger.warning("Icon search failed for %r", query, exc_info=True)
            return Response(content={"error": "Icon search failed"}, status_code=502)

        sketches = await icons.get_sketches(result.icons)
        return Response(
            content={
                "sketches": [s.to_dict() for s in sketches],
                "total": result.total,
                "query": query,
            }
        )

    @get("/icons/{icon_id:str}")
    async def icon(self, request: Request, icon_id: str) -> Response:
        try:
            sketch = await get_services(request).icons.get_sketch(icon_id)
        except IconApiError:
            logger.warning("Icon lookup failed for %s", icon_id, exc_info=True)
            return Response(content={"error": "Icon lookup failed"}, status_code=502)
        if sketch is None:
            raise NotFoundException(f"Icon {icon_id} not found")
        return Response(content=sketch.to_dict())
