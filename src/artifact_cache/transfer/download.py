"""Archive download strategies.

Three variants share one interface and are chosen once from
``DownloadOptions``:

- NativeSdkDownload hands the transfer to the SDK's transfer manager
- DirectStreamDownload streams a single GET body into the file
- ConcurrentRangeDownload fetches disjoint byte ranges in parallel and
  writes each at its own offset
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable

from ..constants import DownloadStrategy
from ..errors import IntegrityError
from ..options import DownloadOptions
from ..retry import RetryPolicy, retry_async
from ..storage.object_store import ObjectStoreClient
from .pool import run_workers
from .upload import ChunkRange, plan_chunks, with_timeout

logger = logging.getLogger(__name__)


class ArchiveDownloader(ABC):
    """Fetches a remote object into a local file."""

    strategy: DownloadStrategy

    def __init__(
        self,
        store: ObjectStoreClient,
        options: DownloadOptions,
        retry_policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.options = options
        self.retry_policy = retry_policy
        self._sleep = sleep

    @abstractmethod
    async def fetch(self, object_key: str, archive_path: Path, content_length: int) -> int:
        """Write the object into ``archive_path``.

        Args:
            object_key: Remote object key
            archive_path: Destination file
            content_length: Declared object length

        Returns:
            Number of bytes written
        """


class NativeSdkDownload(ArchiveDownloader):
    strategy = DownloadStrategy.NATIVE_SDK

    async def fetch(self, object_key: str, archive_path: Path, content_length: int) -> int:
        await retry_async(
            lambda: self.store.download_file(object_key, archive_path),
            self.retry_policy,
            f"Download of {object_key}",
            self._sleep,
        )
        return archive_path.stat().st_size


class DirectStreamDownload(ArchiveDownloader):
    strategy = DownloadStrategy.DIRECT_STREAM

    async def _attempt(self, object_key: str, archive_path: Path) -> int:
        # "wb" truncates whatever a previous attempt left behind
        with open(archive_path, "wb") as handle:
            return await self.store.stream_to_file(object_key, handle)

    async def fetch(self, object_key: str, archive_path: Path, content_length: int) -> int:
        return await retry_async(
            lambda: self._attempt(object_key, archive_path),
            self.retry_policy,
            f"Download of {object_key}",
            self._sleep,
        )


class ConcurrentRangeDownload(ArchiveDownloader):
    strategy = DownloadStrategy.CONCURRENT_RANGE

    async def fetch(self, object_key: str, archive_path: Path, content_length: int) -> int:
        segments = plan_chunks(content_length, self.options.segment_size)
        timeout = self.options.timeout_seconds
        written = 0

        logger.debug(
            f"Downloading {object_key} in {len(segments)} segments "
            f"with {self.options.download_concurrency} workers"
        )

        with open(archive_path, "wb") as handle:

            async def fetch_segment(segment: ChunkRange) -> None:
                nonlocal written
                description = f"Download of {object_key} {segment}"
                data = await retry_async(
                    lambda: with_timeout(
                        lambda: self.store.get_range(object_key, segment.start, segment.end),
                        timeout,
                        description,
                    ),
                    self.retry_policy,
                    description,
                    self._sleep,
                )
                if len(data) != segment.length:
                    raise IntegrityError(
                        f"Short read for {object_key} {segment}: "
                        f"expected {segment.length} bytes, received {len(data)}"
                    )
                # segments are disjoint and seek/write never suspend
                handle.seek(segment.start)
                handle.write(data)
                written += len(data)

            await run_workers(segments, fetch_segment, self.options.download_concurrency)

        return written


DOWNLOADERS = {
    DownloadStrategy.NATIVE_SDK: NativeSdkDownload,
    DownloadStrategy.DIRECT_STREAM: DirectStreamDownload,
    DownloadStrategy.CONCURRENT_RANGE: ConcurrentRangeDownload,
}


def create_downloader(
    store: ObjectStoreClient,
    options: DownloadOptions,
    retry_policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ArchiveDownloader:
    """Build the downloader selected by ``options``."""
    return DOWNLOADERS[options.resolved_strategy](store, options, retry_policy, sleep)


def remove_partial_download(archive_path: Path) -> None:
    """Delete a destination file left behind by a failed download."""
    try:
        archive_path.unlink()
        logger.debug(f"Removed incomplete download {archive_path}")
    except FileNotFoundError:
        pass
