"""S3-compatible storage backend (requires ``pip install pictobox[s3]``)."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import quote

try:
    import aioboto3
    from botocore.exceptions import BotoCoreError, ClientError
except ImportError as exc:
    raise ImportError(
        "S3 storage backend requires aioboto3. Install it with: pip install pictobox[s3]"
    ) from exc

from pictobox.lib.errors import StorageFailure
from pictobox.lib.storage.base import StoredObject

if TYPE_CHECKING:
    from pictobox.config import S3Config


class S3StorageBackend:
    """Store objects in a public-read S3-compatible bucket."""

    def __init__(self, config: S3Config, bucket: str) -> None:
        self._config = config
        self.bucket = bucket
        self._session = aioboto3.Session()

    def _client_kwargs(self) -> dict:
        kwargs: dict = {
            "region_name": self._config.region,
        }
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        if self._config.access_key_id:
            kwargs["aws_access_key_id"] = self._config.access_key_id
        if self._config.secret_access_key:
            kwargs["aws_secret_access_key"] = self._config.secret_access_key
        return kwargs

    def _full_key(self, path: str) -> str:
        if self._config.prefix:
            return f"{self._config.prefix.strip('/')}/{path}"
        return path

    @property
    def public_prefix(self) -> str:
        # CDN / custom public URL
        if self._config.public_url:
            base = self._config.public_url.rstrip("/")
        elif self._config.endpoint_url:
            base = f"{self._config.endpoint_url.rstrip('/')}/{self.bucket}"
        else:
            base = f"https://{self.bucket}.s3.{self._config.region}.amazonaws.com"
        if self._config.prefix:
            return f"{base}/{self._config.prefix.strip('/')}/"
        return f"{base}/"

    async def upload(self, path: str, data: bytes, content_type: str) -> StoredObject:
        try:
            async with self._session.client("s3", **self._client_kwargs()) as s3:
                # Conditional write: 412 when the key already exists
                await s3.put_object(
                    Bucket=self.bucket,
                    Key=self._full_key(path),
                    Body=data,
                    ContentType=content_type,
                    IfNoneMatch="*",
                )
        except (BotoCoreError, ClientError) as exc:
            raise StorageFailure(f"S3 upload failed: {exc}", path=path) from exc

        return StoredObject(
            path=path,
            url=self.public_url_for(path),
            content_type=content_type,
            size=len(data),
        )

    async def remove(self, paths: list[str]) -> None:
        objects = [{"Key": self._full_key(path)} for path in paths]
        try:
            async with self._session.client("s3", **self._client_kwargs()) as s3:
                response = await s3.delete_objects(
                    Bucket=self.bucket, Delete={"Objects": objects, "Quiet": True}
                )
        except (BotoCoreError, ClientError) as exc:
            raise StorageFailure(f"S3 delete failed: {exc}", paths=paths) from exc

        errors = response.get("Errors") or []
        if errors:
            raise StorageFailure("S3 delete reported errors", paths=paths, errors=errors)

    def public_url_for(self, path: str) -> str:
        return f"{self.public_prefix}{quote(path)}"

    async def close(self) -> None:
        """No persistent resources to clean up."""
