"""Options models for cache lookup, reservation and transfer."""

import os
from typing import Optional

from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_DOWNLOAD_CONCURRENCY,
    DEFAULT_DOWNLOAD_SEGMENT_SIZE,
    DEFAULT_MAX_CACHE_SIZE,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_UPLOAD_CHUNK_SIZE,
    MULTIPART_MIN_PART_SIZE,
    CompressionMethod,
    DownloadStrategy,
)


def default_upload_concurrency() -> int:
    """Worker count derived from available parallelism, capped at 8."""
    return max(1, min(os.cpu_count() or 1, 8))


class CacheOptions(BaseModel):
    """Options that influence the cache version and reservation."""

    compression_method: Optional[CompressionMethod] = None
    enable_cross_os_archive: bool = False
    cache_size: Optional[int] = Field(default=None, ge=0)
    max_cache_size: int = Field(default=DEFAULT_MAX_CACHE_SIZE, ge=0)


class UploadOptions(BaseModel):
    """Options for chunked uploads."""

    upload_concurrency: int = Field(default_factory=default_upload_concurrency, ge=1)
    upload_chunk_size: int = Field(default=DEFAULT_UPLOAD_CHUNK_SIZE, ge=1)
    # Archives at or below this size go up in a single request;
    # None means "same as the chunk size"
    chunk_threshold: Optional[int] = Field(default=None, ge=0)
    # Floor for multipart part sizes in storage-direct mode
    min_part_size: int = Field(default=MULTIPART_MIN_PART_SIZE, ge=1)
    timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)

    @property
    def effective_threshold(self) -> int:
        if self.chunk_threshold is None:
            return self.upload_chunk_size
        return self.chunk_threshold


class DownloadOptions(BaseModel):
    """Options for archive downloads."""

    download_strategy: DownloadStrategy = DownloadStrategy.NATIVE_SDK
    use_concurrent_range_download: bool = False
    download_concurrency: int = Field(default=DEFAULT_DOWNLOAD_CONCURRENCY, ge=1)
    segment_size: int = Field(default=DEFAULT_DOWNLOAD_SEGMENT_SIZE, ge=1)
    timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)

    @property
    def resolved_strategy(self) -> DownloadStrategy:
        """The strategy actually used, honoring the concurrent-range flag."""
        if self.use_concurrent_range_download:
            return DownloadStrategy.CONCURRENT_RANGE
        return self.download_strategy
