"""Transfer engine: upload to a reservation, download an entry."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..errors import IntegrityError
from ..models import Reservation
from ..options import DownloadOptions, UploadOptions
from ..retry import RetryPolicy, retry_async
from ..storage.cache_service import CacheServiceClient
from ..storage.object_store import ObjectStoreClient
from ..utils import format_size
from .download import create_downloader, remove_partial_download
from .upload import create_upload_session, upload_archive, with_timeout

logger = logging.getLogger(__name__)


class TransferEngine:
    """Moves archives between local disk and the cache backend.

    Owns all retry logic; callers see either success or a classified
    fatal error.

    Attributes:
        store: Object storage transport
        service: Native cache service transport (native mode only)
        upload_options: Default upload options
        download_options: Default download options
        retry_policy: Per-request retry policy
    """

    def __init__(
        self,
        store: ObjectStoreClient,
        service: Optional[CacheServiceClient] = None,
        upload_options: Optional[UploadOptions] = None,
        download_options: Optional[DownloadOptions] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.service = service
        self.upload_options = upload_options or UploadOptions()
        self.download_options = download_options or DownloadOptions()
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def upload(
        self,
        reservation: Reservation,
        archive_path: Path,
        options: Optional[UploadOptions] = None,
    ) -> int:
        """Upload an archive to a reserved destination.

        Args:
            reservation: Reservation returned by the reservation coordinator
            archive_path: Local archive file
            options: Overrides for the engine's default upload options

        Returns:
            Number of bytes uploaded
        """
        options = options or self.upload_options
        archive_path = Path(archive_path)
        session = create_upload_session(reservation, self.store, self.service)
        logger.debug(f"Uploading cache {reservation.key} (reservation {reservation.cache_id})")
        return await upload_archive(session, archive_path, options, self.retry_policy, self._sleep)

    async def download(
        self,
        object_key: str,
        archive_path: Path,
        options: Optional[DownloadOptions] = None,
    ) -> None:
        """Download an object to ``archive_path``.

        The destination is either complete and exactly as long as the
        remote object, or it does not exist when this returns.

        Args:
            object_key: Remote object key
            archive_path: Destination file
            options: Overrides for the engine's default download options

        Raises:
            IntegrityError: If fewer or more bytes arrived than declared
        """
        options = options or self.download_options
        archive_path = Path(archive_path)

        info = await retry_async(
            lambda: with_timeout(
                lambda: self.store.head_object(object_key),
                options.timeout_seconds,
                f"HEAD {object_key}",
            ),
            self.retry_policy,
            f"Size lookup of {object_key}",
            self._sleep,
        )
        downloader = create_downloader(self.store, options, self.retry_policy, self._sleep)
        logger.info(
            f"Downloading {object_key} ({format_size(info.content_length)}) "
            f"using {downloader.strategy.value}"
        )

        archive_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            written = await downloader.fetch(object_key, archive_path, info.content_length)
            on_disk = archive_path.stat().st_size
            if written != info.content_length or on_disk != info.content_length:
                raise IntegrityError(
                    f"Incomplete download of {object_key}: expected {info.content_length} bytes, "
                    f"received {written} ({on_disk} on disk)"
                )
        except BaseException:
            remove_partial_download(archive_path)
            raise
