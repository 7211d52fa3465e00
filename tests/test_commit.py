"""Tests for commit coordinators."""

import logging

import pytest

from artifact_cache.commit import (
    NativeCommitCoordinator,
    StorageDirectCommitCoordinator,
    create_commit_coordinator,
)
from artifact_cache.constants import ReservationMode
from artifact_cache.errors import CommitError
from artifact_cache.models import Reservation


def _reservation(mode, cache_id="1", key="lock-abc"):
    return Reservation(
        cache_id=cache_id,
        key=key,
        version="v1",
        object_key=f"caches/r/main/h/{key}",
        mode=mode,
    )


class TestNativeCommit:
    """Tests for commits through the cache service."""

    @pytest.mark.asyncio
    async def test_commit_after_upload(self, cache_service, fake_service, caplog):
        cache_id = await cache_service.reserve_cache("lock-abc", "v1")
        await cache_service.upload_chunk(cache_id, b"abcdef", 0, 5)
        reservation = _reservation(ReservationMode.NATIVE, cache_id=str(cache_id))
        coordinator = NativeCommitCoordinator(cache_service)

        with caplog.at_level(logging.INFO, logger="artifact_cache"):
            await coordinator.commit(reservation, 6)

        assert reservation.committed
        assert fake_service.committed == {cache_id: 6}
        assert "Cache Size: ~0 MB (6 B)" in caplog.text
        assert "Cache saved successfully" in caplog.text

    @pytest.mark.asyncio
    async def test_second_commit_is_rejected_locally(self, cache_service):
        cache_id = await cache_service.reserve_cache("lock-abc", "v1")
        await cache_service.upload_chunk(cache_id, b"abc", 0, 2)
        reservation = _reservation(ReservationMode.NATIVE, cache_id=str(cache_id))
        coordinator = NativeCommitCoordinator(cache_service)
        await coordinator.commit(reservation, 3)

        with pytest.raises(CommitError, match="already committed"):
            await coordinator.commit(reservation, 3)

    @pytest.mark.asyncio
    async def test_size_mismatch_rejected(self, cache_service, fake_service):
        cache_id = await cache_service.reserve_cache("lock-abc", "v1")
        await cache_service.upload_chunk(cache_id, b"abc", 0, 2)
        reservation = _reservation(ReservationMode.NATIVE, cache_id=str(cache_id))

        with pytest.raises(CommitError) as exc_info:
            await NativeCommitCoordinator(cache_service).commit(reservation, 10)

        assert exc_info.value.status_code == 400
        assert not reservation.committed
        assert fake_service.committed == {}

    @pytest.mark.asyncio
    async def test_mode_mismatch(self, cache_service):
        reservation = _reservation(ReservationMode.STORAGE_DIRECT)

        with pytest.raises(ValueError):
            await NativeCommitCoordinator(cache_service).commit(reservation, 1)


class TestStorageDirectCommit:
    """Tests for commits against object storage."""

    @pytest.mark.asyncio
    async def test_commit_verifies_object(self, object_store, fake_s3):
        fake_s3.put("caches/r/main/h/lock-abc", b"x" * 42)
        reservation = _reservation(ReservationMode.STORAGE_DIRECT)

        await StorageDirectCommitCoordinator(object_store).commit(reservation, 42)

        assert reservation.committed
        assert len(fake_s3.calls_for("head_object")) == 1

    @pytest.mark.asyncio
    async def test_missing_object(self, object_store):
        reservation = _reservation(ReservationMode.STORAGE_DIRECT)

        with pytest.raises(CommitError) as exc_info:
            await StorageDirectCommitCoordinator(object_store).commit(reservation, 42)

        assert exc_info.value.status_code == 404
        assert not reservation.committed

    @pytest.mark.asyncio
    async def test_size_mismatch(self, object_store, fake_s3):
        fake_s3.put("caches/r/main/h/lock-abc", b"x" * 41)
        reservation = _reservation(ReservationMode.STORAGE_DIRECT)

        with pytest.raises(CommitError, match="Size mismatch"):
            await StorageDirectCommitCoordinator(object_store).commit(reservation, 42)

    @pytest.mark.asyncio
    async def test_double_commit(self, object_store, fake_s3):
        fake_s3.put("caches/r/main/h/lock-abc", b"x")
        reservation = _reservation(ReservationMode.STORAGE_DIRECT)
        coordinator = StorageDirectCommitCoordinator(object_store)
        await coordinator.commit(reservation, 1)

        with pytest.raises(CommitError):
            await coordinator.commit(reservation, 1)

        assert len(fake_s3.calls_for("head_object")) == 1


class TestCreateCommitCoordinator:
    """Tests for the coordinator factory."""

    def test_native_requires_service(self, object_store):
        with pytest.raises(ValueError):
            create_commit_coordinator(ReservationMode.NATIVE, object_store)

    def test_storage_direct(self, object_store):
        coordinator = create_commit_coordinator(ReservationMode.STORAGE_DIRECT, object_store)
        assert isinstance(coordinator, StorageDirectCommitCoordinator)
