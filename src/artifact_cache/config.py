"""Client configuration using pydantic-settings.

Settings are read once by the caller and turned into explicit objects
(``CacheContext``, transfer options, retry policy). Components never read
the environment themselves.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_DOWNLOAD_CONCURRENCY,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_UPLOAD_CHUNK_SIZE,
    DownloadStrategy,
    ReservationMode,
)
from .context import CacheContext, CacheScope
from .logging_config import setup_logging
from .options import DownloadOptions, UploadOptions, default_upload_concurrency
from .retry import RetryPolicy


class Settings(BaseSettings):
    """Cache client configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Object storage
    BUCKET_NAME: str = ""
    ENDPOINT_URL: str = ""
    REGION: str = ""
    ACCESS_KEY: str = ""
    SECRET_KEY: str = ""

    # Scope identifiers
    GITHUB_REPOSITORY: str = ""
    GITHUB_REF: str = ""
    GITHUB_WORKFLOW_SHA: str = ""

    # Native cache service (only used in native reservation mode)
    ACTIONS_CACHE_URL: str = ""
    ACTIONS_RUNTIME_TOKEN: str = ""

    # Transfer
    CACHE_RESERVATION_MODE: ReservationMode = ReservationMode.STORAGE_DIRECT
    CACHE_UPLOAD_CONCURRENCY: int = Field(default_factory=default_upload_concurrency, ge=1)
    CACHE_UPLOAD_CHUNK_SIZE: int = Field(default=DEFAULT_UPLOAD_CHUNK_SIZE, ge=1)
    CACHE_DOWNLOAD_CONCURRENCY: int = Field(default=DEFAULT_DOWNLOAD_CONCURRENCY, ge=1)
    CACHE_DOWNLOAD_STRATEGY: DownloadStrategy = DownloadStrategy.NATIVE_SDK
    CACHE_USE_CONCURRENT_RANGE_DOWNLOAD: bool = False
    CACHE_REQUEST_TIMEOUT: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)
    CACHE_RETRY_MAX_ATTEMPTS: int = Field(default=5, ge=1)

    # Diagnostics
    CACHE_VERBOSE: bool = False
    CACHE_LOG_LEVEL: str = "INFO"

    def to_context(self) -> CacheContext:
        """Build the immutable namespace context.

        Raises:
            ValueError: If the bucket or any scope identifier is unset
        """
        missing = [
            name
            for name in ("BUCKET_NAME", "GITHUB_REPOSITORY", "GITHUB_REF", "GITHUB_WORKFLOW_SHA")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"Cache configuration incomplete, missing: {', '.join(missing)}")

        return CacheContext(
            bucket=self.BUCKET_NAME,
            scope=CacheScope(
                repository=self.GITHUB_REPOSITORY,
                ref=self.GITHUB_REF,
                workflow_digest=self.GITHUB_WORKFLOW_SHA,
            ),
        )

    def upload_options(self) -> UploadOptions:
        return UploadOptions(
            upload_concurrency=self.CACHE_UPLOAD_CONCURRENCY,
            upload_chunk_size=self.CACHE_UPLOAD_CHUNK_SIZE,
            timeout_seconds=self.CACHE_REQUEST_TIMEOUT,
        )

    def download_options(self) -> DownloadOptions:
        return DownloadOptions(
            download_strategy=self.CACHE_DOWNLOAD_STRATEGY,
            use_concurrent_range_download=self.CACHE_USE_CONCURRENT_RANGE_DOWNLOAD,
            download_concurrency=self.CACHE_DOWNLOAD_CONCURRENCY,
            timeout_seconds=self.CACHE_REQUEST_TIMEOUT,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.CACHE_RETRY_MAX_ATTEMPTS)

    @property
    def endpoint_url(self) -> Optional[str]:
        return self.ENDPOINT_URL or None

    @property
    def region(self) -> Optional[str]:
        return self.REGION or None

    def configure_logging(self, log_file: Optional[Path] = None) -> logging.Logger:
        """Set up package logging at ``CACHE_LOG_LEVEL``."""
        return setup_logging(self.CACHE_LOG_LEVEL, log_file=log_file)
