"""Storage transports for object storage and the native cache service."""

from .cache_service import CacheServiceClient
from .object_store import ObjectStoreClient, classify_storage_error

__all__ = ["CacheServiceClient", "ObjectStoreClient", "classify_storage_error"]
