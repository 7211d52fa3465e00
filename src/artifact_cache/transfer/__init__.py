"""Chunked upload and download of cache archives."""

from .download import (
    ArchiveDownloader,
    ConcurrentRangeDownload,
    DirectStreamDownload,
    NativeSdkDownload,
    create_downloader,
)
from .engine import TransferEngine
from .pool import run_workers
from .upload import (
    CacheServiceUploadSession,
    ChunkRange,
    MultipartUploadSession,
    UploadSession,
    create_upload_session,
    plan_chunks,
    upload_archive,
)

__all__ = [
    "ArchiveDownloader",
    "CacheServiceUploadSession",
    "ChunkRange",
    "ConcurrentRangeDownload",
    "DirectStreamDownload",
    "MultipartUploadSession",
    "NativeSdkDownload",
    "TransferEngine",
    "UploadSession",
    "create_downloader",
    "create_upload_session",
    "plan_chunks",
    "run_workers",
    "upload_archive",
]
