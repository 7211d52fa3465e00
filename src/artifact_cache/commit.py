"""Commit of uploaded cache entries."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .constants import ReservationMode
from .errors import CommitError, ObjectNotFoundError, PermanentTransportError
from .models import Reservation
from .storage.cache_service import CacheServiceClient
from .storage.object_store import ObjectStoreClient
from .utils import format_size

logger = logging.getLogger(__name__)


class CommitCoordinator(ABC):
    """Finalizes a reservation so the entry becomes visible to lookups."""

    mode: ReservationMode

    async def commit(self, reservation: Reservation, size: int) -> None:
        """Close a reservation with the final archive size.

        Args:
            reservation: Reservation whose upload has completed
            size: Final archive size in bytes

        Raises:
            CommitError: If the backend rejects the commit or the
                reservation was already committed
            ReservationConflictError: If another writer committed first
        """
        if reservation.committed:
            raise CommitError(f"Reservation {reservation.cache_id} is already committed")
        if reservation.mode != self.mode:
            raise ValueError(
                f"Cannot commit a {reservation.mode.value} reservation "
                f"with a {self.mode.value} coordinator"
            )

        logger.debug(f"Committing cache {reservation.key}")
        await self._finalize(reservation, size)
        reservation.committed = True

        logger.info(f"Cache Size: {format_size(size)}")
        logger.info("Cache saved successfully")

    @abstractmethod
    async def _finalize(self, reservation: Reservation, size: int) -> None:
        """Backend-specific commit."""


class NativeCommitCoordinator(CommitCoordinator):
    mode = ReservationMode.NATIVE

    def __init__(self, service: CacheServiceClient):
        self.service = service

    async def _finalize(self, reservation: Reservation, size: int) -> None:
        try:
            await self.service.commit_cache(int(reservation.cache_id), size)
        except (PermanentTransportError, ObjectNotFoundError) as e:
            raise CommitError(
                f"Cache service rejected commit of {reservation.key}: {e}",
                status_code=e.status_code,
            ) from e


class StorageDirectCommitCoordinator(CommitCoordinator):
    """Verifies the uploaded object landed with the expected size.

    Object storage makes the object visible when the upload completes, so
    there is nothing to close; the commit confirms what was written.
    """

    mode = ReservationMode.STORAGE_DIRECT

    def __init__(self, store: ObjectStoreClient):
        self.store = store

    async def _finalize(self, reservation: Reservation, size: int) -> None:
        try:
            info = await self.store.head_object(reservation.object_key)
        except ObjectNotFoundError as e:
            raise CommitError(
                f"Uploaded cache {reservation.object_key} not found", status_code=404
            ) from e

        if info.content_length != size:
            raise CommitError(
                f"Size mismatch for {reservation.object_key}: expected {size} bytes, "
                f"found {info.content_length}"
            )


def create_commit_coordinator(
    mode: ReservationMode,
    store: ObjectStoreClient,
    service: Optional[CacheServiceClient] = None,
) -> CommitCoordinator:
    """Build the coordinator for a reservation mode.

    Raises:
        ValueError: If NATIVE is requested without a service client
    """
    if mode == ReservationMode.NATIVE:
        if service is None:
            raise ValueError("Native reservation mode requires a cache service client")
        return NativeCommitCoordinator(service)
    return StorageDirectCommitCoordinator(store)
