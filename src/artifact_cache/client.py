"""Cache client facade used by restore/save workflows.

Wires the resolver, reservation coordinator, transfer engine and commit
coordinator together for one pipeline run.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

from .commit import CommitCoordinator, create_commit_coordinator
from .config import Settings
from .constants import ReservationMode
from .context import CacheContext
from .models import CacheLookup, Reservation
from .options import CacheOptions, DownloadOptions, UploadOptions
from .reservation import ReservationCoordinator, create_reservation_coordinator
from .resolver import KeyResolver
from .retry import RetryPolicy
from .storage.cache_service import CacheServiceClient
from .storage.object_store import ObjectStoreClient
from .transfer.engine import TransferEngine

logger = logging.getLogger(__name__)


class CacheClient:
    """Remote build-artifact cache client.

    Attributes:
        context: Namespace context
        mode: Reservation mode
        resolver: Key resolver
        reservations: Reservation coordinator
        engine: Transfer engine
        commits: Commit coordinator
    """

    def __init__(
        self,
        context: CacheContext,
        store: ObjectStoreClient,
        service: Optional[CacheServiceClient] = None,
        mode: ReservationMode = ReservationMode.STORAGE_DIRECT,
        upload_options: Optional[UploadOptions] = None,
        download_options: Optional[DownloadOptions] = None,
        retry_policy: Optional[RetryPolicy] = None,
        verbose: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.context = context
        self.mode = mode
        self._service = service
        self.resolver = KeyResolver(store, context, service=service, verbose=verbose)
        self.reservations: ReservationCoordinator = create_reservation_coordinator(
            mode, context, service
        )
        self.engine = TransferEngine(
            store,
            service=service,
            upload_options=upload_options,
            download_options=download_options,
            retry_policy=retry_policy,
            sleep=sleep,
        )
        self.commits: CommitCoordinator = create_commit_coordinator(mode, store, service)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheClient":
        """Build a client from loaded settings.

        Raises:
            ValueError: If required settings are missing
        """
        context = settings.to_context()
        upload_options = settings.upload_options()
        download_options = settings.download_options()

        store = ObjectStoreClient(
            bucket=context.bucket,
            endpoint_url=settings.endpoint_url,
            region=settings.region,
            access_key_id=settings.ACCESS_KEY or None,
            secret_access_key=settings.SECRET_KEY or None,
            max_pool_connections=max(
                upload_options.upload_concurrency, download_options.download_concurrency
            ),
            timeout_seconds=settings.CACHE_REQUEST_TIMEOUT,
        )

        service = None
        if settings.CACHE_RESERVATION_MODE == ReservationMode.NATIVE:
            service = CacheServiceClient(
                settings.ACTIONS_CACHE_URL,
                settings.ACTIONS_RUNTIME_TOKEN,
                timeout=settings.CACHE_REQUEST_TIMEOUT,
            )

        return cls(
            context,
            store,
            service=service,
            mode=settings.CACHE_RESERVATION_MODE,
            upload_options=upload_options,
            download_options=download_options,
            retry_policy=settings.retry_policy(),
            verbose=settings.CACHE_VERBOSE,
        )

    async def __aenter__(self) -> "CacheClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._service is not None:
            await self._service.aclose()

    async def get_cache_entry(
        self,
        keys: Sequence[str],
        paths: Sequence[str],
        options: Optional[CacheOptions] = None,
    ) -> CacheLookup:
        """Resolve keys to an existing entry (see ``KeyResolver.resolve``)."""
        return await self.resolver.resolve(keys, paths, options)

    async def download_cache(
        self,
        object_key: str,
        archive_path: Path,
        options: Optional[DownloadOptions] = None,
    ) -> None:
        """Download a resolved entry's archive."""
        await self.engine.download(object_key, Path(archive_path), options)

    async def reserve_cache(
        self,
        key: str,
        paths: Sequence[str],
        options: Optional[CacheOptions] = None,
    ) -> Reservation:
        """Reserve a slot for a new entry."""
        return await self.reservations.reserve(key, paths, options)

    async def save_cache(
        self,
        reservation: Reservation,
        archive_path: Path,
        options: Optional[UploadOptions] = None,
    ) -> int:
        """Upload an archive to a reservation and commit it.

        The commit is only attempted after the whole upload succeeded.

        Returns:
            Committed archive size in bytes
        """
        logger.debug("Upload cache")
        size = await self.engine.upload(reservation, Path(archive_path), options)

        logger.debug("Committing cache")
        await self.commits.commit(reservation, size)
        return size
