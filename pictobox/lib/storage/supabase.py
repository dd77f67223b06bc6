"""Supabase Storage backend speaking the storage REST API over httpx."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx

from pictobox.lib.errors import StorageFailure
from pictobox.lib.storage.base import StoredObject

if TYPE_CHECKING:
    from pictobox.config import SupabaseConfig

PUBLIC_OBJECT_PATH = "/storage/v1/object/public"


class SupabaseStorageBackend:
    """Store objects in a public Supabase Storage bucket."""

    def __init__(
        self,
        config: SupabaseConfig,
        bucket: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.url or not config.service_key:
            raise ValueError("Supabase storage requires both url and service_key")
        self._config = config
        self._base_url = config.url.rstrip("/")
        self.bucket = bucket
        self._timeout = timeout
        self._transport = transport

    @property
    def public_prefix(self) -> str:
        return f"{self._base_url}{PUBLIC_OBJECT_PATH}/{self.bucket}/"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.service_key}",
            "apikey": self._config.service_key,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def upload(self, path: str, data: bytes, content_type: str) -> StoredObject:
        headers = {
            **self._headers(),
            "Content-Type": content_type,
            "Cache-Control": f"max-age={self._config.cache_control}",
            "x-upsert": "false",
        }
        url = f"{self._base_url}/storage/v1/object/{self.bucket}/{quote(path)}"
        try:
            async with self._client() as client:
                response = await client.post(url, content=data, headers=headers)
        except httpx.HTTPError as exc:
            raise StorageFailure(f"Storage upload request failed: {exc}", path=path) from exc

        if not response.is_success:
            raise StorageFailure(
                f"Storage upload rejected: {response.status_code} {_error_message(response)}",
                path=path,
                status_code=response.status_code,
            )

        return StoredObject(
            path=path,
            url=self.public_url_for(path),
            content_type=content_type,
            size=len(data),
        )

    async def remove(self, paths: list[str]) -> None:
        url = f"{self._base_url}/storage/v1/object/{self.bucket}"
        try:
            async with self._client() as client:
                response = await client.request(
                    "DELETE", url, json={"prefixes": paths}, headers=self._headers()
                )
        except httpx.HTTPError as exc:
            raise StorageFailure(f"Storage delete request failed: {exc}", paths=paths) from exc

        if not response.is_success:
            raise StorageFailure(
                f"Storage delete rejected: {response.status_code} {_error_message(response)}",
                paths=paths,
                status_code=response.status_code,
            )

    def public_url_for(self, path: str) -> str:
        return f"{self.public_prefix}{quote(path)}"

    async def close(self) -> None:
        """Clients are scoped per request; nothing to release."""


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
