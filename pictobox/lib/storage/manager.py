"""Storage backend factory."""

from __future__ import annotations

import importlib
from pathlib import Path
from typing import TYPE_CHECKING

from pictobox.lib.storage.local import LocalStorageBackend
from pictobox.lib.storage.supabase import SupabaseStorageBackend

if TYPE_CHECKING:
    from pictobox.config import StorageConfig
    from pictobox.lib.storage.base import ObjectStorage


def create_storage_backend(config: StorageConfig) -> ObjectStorage:
    """Instantiate the configured storage backend."""
    backend_type = config.backend

    if backend_type == "supabase":
        return SupabaseStorageBackend(
            config.supabase,
            bucket=config.bucket,
            timeout=config.fetch_timeout,
        )

    if backend_type == "local":
        return LocalStorageBackend(
            base_path=Path(config.local_path),
            bucket=config.bucket,
            base_url=config.local_base_url,
        )

    if backend_type == "s3":
        from pictobox.lib.storage.s3 import S3StorageBackend

        return S3StorageBackend(config.s3, bucket=config.bucket)

    # Dynamic import: "module:ClassName"
    if ":" in backend_type:
        parts = backend_type.split(":")
        if len(parts) != 2:
            raise ValueError(
                f"Invalid backend spec '{backend_type}': must contain exactly one colon"
            )
        module_path, class_name = parts
        module = importlib.import_module(module_path)
        cls = getattr(module, class_name)
        return cls(config)

    raise ValueError(
        f"Unknown storage backend '{backend_type}'. "
        "Use 'supabase', 'local', 's3', or 'module:ClassName'."
    )
