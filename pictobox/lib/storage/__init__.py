"""Pluggable object storage for persisted images."""

from pictobox.lib.storage.base import ObjectStorage, StoredObject
from pictobox.lib.storage.local import LocalStorageBackend
from pictobox.lib.storage.manager import create_storage_backend
from pictobox.lib.storage.supabase import SupabaseStorageBackend

__all__ = [
    "LocalStorageBackend",
    "ObjectStorage",
    "StoredObject",
    "SupabaseStorageBackend",
    "create_storage_backend",
]
