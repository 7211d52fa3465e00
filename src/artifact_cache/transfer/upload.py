"""Chunked, concurrent archive upload.

An archive above the chunk threshold is split into fixed-size byte ranges
that a bounded pool of workers uploads in any order. Each range is
addressed explicitly, so the backend reassembles the archive in offset
order no matter which chunk finishes first.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from ..constants import (
    METADATA_CACHE_KEY,
    METADATA_CACHE_VERSION,
    MULTIPART_MAX_PARTS,
    ReservationMode,
)
from ..errors import IntegrityError, TransientTransportError
from ..models import Reservation
from ..options import UploadOptions
from ..retry import RetryPolicy, retry_async
from ..storage.cache_service import CacheServiceClient
from ..storage.object_store import ObjectStoreClient
from ..utils import format_size, get_archive_file_size_in_bytes
from .pool import run_workers

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ChunkRange:
    """An inclusive byte range ``[start, end]`` of an archive."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        return f"bytes {self.start}-{self.end}"


def plan_chunks(size: int, chunk_size: int) -> List[ChunkRange]:
    """Split ``[0, size)`` into consecutive chunks of ``chunk_size`` bytes.

    The last chunk's end is clamped to ``size - 1``.

    Raises:
        ValueError: If chunk_size is not positive
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [
        ChunkRange(start, min(start + chunk_size, size) - 1)
        for start in range(0, size, chunk_size)
    ]


async def with_timeout(operation: Callable[[], Awaitable[T]], timeout: float, description: str) -> T:
    """Await ``operation()`` with a deadline; a timeout is a transient failure."""
    try:
        return await asyncio.wait_for(operation(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise TransientTransportError(f"{description} timed out after {timeout}s") from e


class UploadSession(ABC):
    """Destination for one archive upload."""

    def __init__(self, reservation: Reservation):
        self.reservation = reservation

    def chunk_size_for(self, size: int, options: UploadOptions) -> int:
        """Chunk size to split an archive of ``size`` bytes into."""
        return options.upload_chunk_size

    async def open(self) -> None:
        """Prepare for chunked upload."""

    @abstractmethod
    async def put_file(self, archive_path: Path, size: int) -> None:
        """Upload a small archive in one request."""

    @abstractmethod
    async def put_chunk(self, chunk: ChunkRange, data: bytes) -> None:
        """Upload one byte range."""

    async def complete(self) -> None:
        """Finish a chunked upload once every chunk is written."""

    async def abort(self) -> None:
        """Discard whatever a failed chunked upload left behind."""


class CacheServiceUploadSession(UploadSession):
    """Upload through the native cache service with ``Content-Range`` PATCHes."""

    def __init__(self, reservation: Reservation, service: CacheServiceClient):
        super().__init__(reservation)
        self.service = service

    async def put_file(self, archive_path: Path, size: int) -> None:
        if size == 0:
            return
        data = archive_path.read_bytes()
        await self.put_chunk(ChunkRange(0, len(data) - 1), data)

    async def put_chunk(self, chunk: ChunkRange, data: bytes) -> None:
        await self.service.upload_chunk(int(self.reservation.cache_id), data, chunk.start, chunk.end)


class MultipartUploadSession(UploadSession):
    """Upload straight to object storage.

    Chunks become multipart parts numbered by offset, so the object only
    becomes visible, fully assembled, when the upload completes.
    """

    def __init__(self, reservation: Reservation, store: ObjectStoreClient):
        super().__init__(reservation)
        self.store = store
        self.chunk_size: Optional[int] = None
        self.upload_id: Optional[str] = None
        self._parts: Dict[int, str] = {}

    @property
    def metadata(self) -> Dict[str, str]:
        return {
            METADATA_CACHE_KEY: self.reservation.key,
            METADATA_CACHE_VERSION: self.reservation.version,
        }

    def chunk_size_for(self, size: int, options: UploadOptions) -> int:
        """Raise the requested chunk size to what multipart uploads accept.

        Every part but the last must reach ``options.min_part_size`` and an
        upload holds at most ``MULTIPART_MAX_PARTS`` parts.
        """
        part_size = max(
            options.upload_chunk_size,
            options.min_part_size,
            math.ceil(size / MULTIPART_MAX_PARTS),
        )
        if part_size != options.upload_chunk_size:
            logger.debug(
                f"Using {format_size(part_size)} parts instead of the requested "
                f"{format_size(options.upload_chunk_size)}"
            )
        self.chunk_size = part_size
        return part_size

    async def open(self) -> None:
        self.upload_id = await self.store.create_multipart_upload(
            self.reservation.object_key, self.metadata
        )
        logger.debug(f"Started multipart upload {self.upload_id} for {self.reservation.object_key}")

    async def put_file(self, archive_path: Path, size: int) -> None:
        await self.store.upload_file(archive_path, self.reservation.object_key, self.metadata)

    async def put_chunk(self, chunk: ChunkRange, data: bytes) -> None:
        if self.upload_id is None or self.chunk_size is None:
            raise RuntimeError("Multipart upload not opened")
        part_number = chunk.start // self.chunk_size + 1
        etag = await self.store.upload_part(
            self.reservation.object_key, self.upload_id, part_number, data
        )
        self._parts[part_number] = etag

    async def complete(self) -> None:
        parts = [
            {"PartNumber": number, "ETag": self._parts[number]}
            for number in sorted(self._parts)
        ]
        await self.store.complete_multipart_upload(
            self.reservation.object_key, self.upload_id, parts
        )

    async def abort(self) -> None:
        if self.upload_id is not None:
            await self.store.abort_multipart_upload(self.reservation.object_key, self.upload_id)


def create_upload_session(
    reservation: Reservation,
    store: ObjectStoreClient,
    service: Optional[CacheServiceClient],
) -> UploadSession:
    """Pick the upload destination matching the reservation's mode.

    Raises:
        ValueError: If a native reservation is used without a service client
    """
    if reservation.mode == ReservationMode.NATIVE:
        if service is None:
            raise ValueError("Native reservations require a cache service client")
        return CacheServiceUploadSession(reservation, service)
    return MultipartUploadSession(reservation, store)


async def upload_archive(
    session: UploadSession,
    archive_path: Path,
    options: UploadOptions,
    retry_policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """Upload an archive through a session.

    Either every byte is written and the session is completed, or the
    session is aborted and the error propagates.

    Args:
        session: Upload destination
        archive_path: Local archive file
        options: Chunk size, concurrency and timeout
        retry_policy: Per-request retry policy
        sleep: Awaitable sleep used between retries

    Returns:
        Number of bytes uploaded
    """
    size = get_archive_file_size_in_bytes(archive_path)
    timeout = options.timeout_seconds

    if size <= options.effective_threshold:
        logger.debug(f"Uploading {archive_path} in a single request ({format_size(size)})")
        await retry_async(
            lambda: with_timeout(lambda: session.put_file(archive_path, size), timeout, "Archive upload"),
            retry_policy,
            f"Upload of {archive_path.name}",
            sleep,
        )
        return size

    chunks = plan_chunks(size, session.chunk_size_for(size, options))
    logger.debug(
        f"Uploading {archive_path} ({format_size(size)}) in {len(chunks)} chunks "
        f"with {options.upload_concurrency} workers"
    )

    await retry_async(
        lambda: with_timeout(session.open, timeout, "Upload start"),
        retry_policy,
        f"Start of upload for {archive_path.name}",
        sleep,
    )
    try:
        with open(archive_path, "rb") as handle:

            async def upload_chunk(chunk: ChunkRange) -> None:
                # seek and read never suspend, so workers never interleave here
                handle.seek(chunk.start)
                data = handle.read(chunk.length)
                if len(data) != chunk.length:
                    raise IntegrityError(
                        f"Archive {archive_path} changed during upload: "
                        f"expected {chunk.length} bytes at {chunk}, read {len(data)}"
                    )
                description = f"Upload of chunk {chunk}"
                await retry_async(
                    lambda: with_timeout(lambda: session.put_chunk(chunk, data), timeout, description),
                    retry_policy,
                    description,
                    sleep,
                )
                logger.debug(f"Uploaded chunk {chunk}")

            await run_workers(chunks, upload_chunk, options.upload_concurrency)

        await retry_async(
            lambda: with_timeout(session.complete, timeout, "Upload completion"),
            retry_policy,
            f"Completion of upload for {archive_path.name}",
            sleep,
        )
    except BaseException:
        try:
            await session.abort()
        except Exception as abort_error:
            logger.warning(f"Failed to abort upload of {archive_path}: {abort_error}")
        raise

    return size
