"""Iconify client for the built-in icon picker."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from pictobox.config import IconsConfig

logger = logging.getLogger(__name__)

DEFAULT_ICON_SIZE = 24

COLLECTION_NAMES = {
    "mdi": "Material Design Icons",
    "heroicons": "Heroicons",
    "lucide": "Lucide",
    "carbon": "Carbon Design",
    "tabler": "Tabler Icons",
}

RECOMMENDED_ICONS: dict[str, list[str]] = {
    "clothing": [
        "mdi:tshirt-crew",
        "mdi:shoe-sneaker",
        "mdi:hat-fedora",
        "mdi:sunglasses",
        "heroicons:shopping-bag",
    ],
    "electronics": [
        "mdi:laptop",
        "mdi:cellphone",
        "mdi:headphones",
        "mdi:tablet",
        "lucide:smartphone",
    ],
    "accessories": [
        "mdi:bag-personal",
        "mdi:watch",
        "mdi:wallet",
        "heroicons:gift",
        "lucide:briefcase",
    ],
    "household": [
        "mdi:book-open-page-variant",
        "mdi:cup",
        "mdi:sofa",
        "heroicons:home",
        "lucide:lamp",
    ],
    "sports": [
        "mdi:basketball",
        "mdi:soccer",
        "mdi:bike",
        "lucide:dumbbell",
        "heroicons:trophy",
    ],
    "books": [
        "mdi:book",
        "mdi:bookshelf",
        "heroicons:book-open",
        "lucide:book-open",
        "carbon:book",
    ],
}

CATEGORY_LABELS = {
    "clothing": "Clothing",
    "electronics": "Electronics",
    "accessories": "Accessories",
    "household": "Household",
    "sports": "Sports",
    "books": "Books",
}


class IconApiError(Exception):
    """Raised when the icon search endpoint fails."""


@dataclass
class IconSearchResult:
    icons: list[str]
    total: int
    limit: int
    start: int = 0


@dataclass
class IconData:
    prefix: str
    name: str
    body: str
    width: int = DEFAULT_ICON_SIZE
    height: int = DEFAULT_ICON_SIZE


@dataclass
class Sketch:
    """An icon ready to be shown in the picker and stored inline on an item."""

    id: str
    name: str
    svg: str
    collection: str
    keywords: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "svg": self.svg,
            "keywords": self.keywords,
            "collection": self.collection,
        }


def split_icon_id(icon_id: str) -> tuple[str, str] | None:
    prefix, sep, name = icon_id.partition(":")
    if not sep or not prefix or not name:
        return None
    return prefix, name


def icon_to_svg(icon: IconData) -> str:
    width = icon.width or DEFAULT_ICON_SIZE
    height = icon.height or DEFAULT_ICON_SIZE
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}">{icon.body}</svg>'
    )


def recommended_icon_ids(category: str | None = None, limit: int = 20) -> list[str]:
    """Curated icon ids for a category, or the first ``limit`` across all of them."""
    if category and category in RECOMMENDED_ICONS:
        return list(RECOMMENDED_ICONS[category])
    return [icon_id for ids in RECOMMENDED_ICONS.values() for icon_id in ids][:limit]


class IconResolver:
    """Read-through Iconify client with no local cache."""

    def __init__(
        self,
        config: IconsConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._api_base = config.api_base.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._config.timeout, transport=self._transport)

    async def search(self, query: str, limit: int | None = None) -> IconSearchResult:
        limit = limit or self._config.search_limit
        params = {
            "query": query,
            "limit": str(limit),
            "prefixes": ",".join(self._config.collections),
        }
        try:
            async with self._client() as client:
                response = await client.get(f"{self._api_base}/search", params=params)
        except httpx.HTTPError as exc:
            raise IconApiError(f"Iconify API request failed: {exc}") from exc

        if not response.is_success:
            raise IconApiError(f"Iconify API error: {response.status_code} {response.reason_phrase}")

        data = response.json()
        return IconSearchResult(
            icons=list(data.get("icons", [])),
            total=int(data.get("total", 0)),
            limit=int(data.get("limit", limit)),
            start=int(data.get("start", 0)),
        )

    async def get_icon(self, icon_id: str) -> IconData | None:
        parts = split_icon_id(icon_id)
        if parts is None:
            return None
        prefix, name = parts

        try:
            async with self._client() as client:
                response = await client.get(f"{self._api_base}/{prefix}.json", params={"icons": name})
        except httpx.HTTPError as exc:
            raise IconApiError(f"Iconify API request failed: {exc}") from exc
        if not response.is_success:
            return None

        data = response.json()
        icon = (data.get("icons") or {}).get(name)
        if not icon:
            return None

        return IconData(
            prefix=prefix,
            name=name,
            body=icon["body"],
            width=icon.get("width") or data.get("width") or DEFAULT_ICON_SIZE,
            height=icon.get("height") or data.get("height") or DEFAULT_ICON_SIZE,
        )

    async def get_sketch(self, icon_id: str) -> Sketch | None:
        icon = await self.get_icon(icon_id)
        if icon is None:
            return None
        return Sketch(
            id=icon_id,
            name=icon.name.replace("-", " "),
            svg=icon_to_svg(icon),
            keywords=icon.name.split("-"),
            collection=COLLECTION_NAMES.get(icon.prefix, icon.prefix),
        )

    async def get_sketches(self, icon_ids: list[str]) -> list[Sketch]:
        """Resolve several icons concurrently, dropping any that fail."""
        results = await asyncio.gather(
            *(self.get_sketch(icon_id) for icon_id in icon_ids),
            return_exceptions=True,
        )
        sketches = []
        for icon_id, result in zip(icon_ids, results):
            if isinstance(result, BaseException):
                logger.warning("Icon lookup failed for %s: %s", icon_id, result)
                continue
            if result is not None:
                sketches.append(result)
        return sketches
