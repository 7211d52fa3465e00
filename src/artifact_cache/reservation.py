"""Reservation of writable cache slots.

Two modes, chosen once by configuration:

NATIVE asks the cache service to reserve (key, version). The service
rejects a second reservation for an open or committed pair, so exactly
one concurrent writer wins.

STORAGE_DIRECT has no service to ask. Every call is granted a fresh id and
concurrent writers may all upload to the same object address; the last
one to complete wins. Callers that need a single writer must use NATIVE.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from .constants import ReservationMode
from .context import CacheContext
from .errors import CacheSizeLimitError, ReservationConflictError
from .models import Reservation
from .options import CacheOptions
from .storage.cache_service import CacheServiceClient
from .utils import check_key, format_size
from .version import get_cache_version

logger = logging.getLogger(__name__)


class ReservationCoordinator(ABC):
    """Claims a writable slot for a new cache entry."""

    mode: ReservationMode

    def __init__(self, context: CacheContext):
        self.context = context

    async def reserve(
        self,
        key: str,
        paths: Sequence[str],
        options: Optional[CacheOptions] = None,
    ) -> Reservation:
        """Reserve a slot for ``key`` under the version derived from ``paths``.

        Args:
            key: Cache key to write
            paths: Cached paths (feed the cache version)
            options: Compression, cross-OS and declared size

        Returns:
            Reservation handle for the transfer engine and commit coordinator

        Raises:
            ValueError: If the key is invalid
            CacheSizeLimitError: If the declared size exceeds the limit
            ReservationConflictError: If another writer holds the slot (native only)
        """
        check_key(key)
        options = options or CacheOptions()

        if options.cache_size is not None and options.cache_size > options.max_cache_size:
            raise CacheSizeLimitError(
                f"Cache size of {format_size(options.cache_size)} is over the "
                f"{format_size(options.max_cache_size)} limit, not saving cache."
            )

        version = get_cache_version(
            paths, options.compression_method, options.enable_cross_os_archive
        )
        cache_id = await self._claim(key, version, options.cache_size)
        logger.debug(f"Reserved cache {key} (id {cache_id}, version {version})")

        return Reservation(
            cache_id=cache_id,
            key=key,
            version=version,
            object_key=self.context.object_key(key),
            mode=self.mode,
            cache_size=options.cache_size,
        )

    @abstractmethod
    async def _claim(self, key: str, version: str, cache_size: Optional[int]) -> str:
        """Obtain a reservation id from the backend."""


class NativeReservationCoordinator(ReservationCoordinator):
    mode = ReservationMode.NATIVE

    def __init__(self, context: CacheContext, service: CacheServiceClient):
        super().__init__(context)
        self.service = service

    async def _claim(self, key: str, version: str, cache_size: Optional[int]) -> str:
        try:
            cache_id = await self.service.reserve_cache(key, version, cache_size)
        except ReservationConflictError:
            logger.warning(
                f"Unable to reserve cache with key {key}, another job may be creating this cache."
            )
            raise
        return str(cache_id)


class StorageDirectReservationCoordinator(ReservationCoordinator):
    mode = ReservationMode.STORAGE_DIRECT

    async def _claim(self, key: str, version: str, cache_size: Optional[int]) -> str:
        return uuid.uuid4().hex


def create_reservation_coordinator(
    mode: ReservationMode,
    context: CacheContext,
    service: Optional[CacheServiceClient] = None,
) -> ReservationCoordinator:
    """Build the coordinator for a reservation mode.

    Raises:
        ValueError: If NATIVE is requested without a service client
    """
    if mode == ReservationMode.NATIVE:
        if service is None:
            raise ValueError("Native reservation mode requires a cache service client")
        return NativeReservationCoordinator(context, service)
    return StorageDirectReservationCoordinator(context)
