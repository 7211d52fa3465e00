"""Artifact Cache - remote build-artifact cache client for CI pipelines.

This package provides:
- Deterministic cache versions from cached paths and platform modifiers
- Ordered key resolution against a scoped object namespace
- Reservation/commit of cache slots (native or storage-direct)
- Chunked, concurrent, retrying upload and download of archives
"""

from .client import CacheClient
from .config import Settings
from .constants import CompressionMethod, DownloadStrategy, ReservationMode
from .context import CacheContext, CacheScope
from .errors import (
    CacheError,
    CacheSizeLimitError,
    CommitError,
    IntegrityError,
    ObjectNotFoundError,
    PermanentTransportError,
    ReservationConflictError,
    ResolutionError,
    RetryExhaustedError,
    TransientTransportError,
)
from .models import ArtifactCacheEntry, CacheHit, CacheLookup, CacheMiss, Reservation
from .logging_config import setup_logging
from .options import CacheOptions, DownloadOptions, UploadOptions
from .version import get_cache_version

__version__ = "0.1.0"

__all__ = [
    "ArtifactCacheEntry",
    "CacheClient",
    "CacheContext",
    "CacheError",
    "CacheHit",
    "CacheLookup",
    "CacheMiss",
    "CacheOptions",
    "CacheScope",
    "CacheSizeLimitError",
    "CommitError",
    "CompressionMethod",
    "DownloadOptions",
    "DownloadStrategy",
    "IntegrityError",
    "ObjectNotFoundError",
    "PermanentTransportError",
    "Reservation",
    "ReservationConflictError",
    "ReservationMode",
    "ResolutionError",
    "RetryExhaustedError",
    "Settings",
    "TransientTransportError",
    "UploadOptions",
    "get_cache_version",
    "setup_logging",
]
