"""Constants shared across the cache client."""

from enum import Enum


class CompressionMethod(str, Enum):
    """Archive compression methods that affect cache compatibility."""

    GZIP = "gzip"
    # zstd without --long so archives restore on older zstd builds
    ZSTD_WITHOUT_LONG = "zstd-without-long"
    ZSTD = "zstd"


class ReservationMode(str, Enum):
    """How a writable cache slot is claimed.

    NATIVE asks the cache service for an exclusive reservation.
    STORAGE_DIRECT talks to object storage only and grants every request.
    """

    NATIVE = "native"
    STORAGE_DIRECT = "storage-direct"


class DownloadStrategy(str, Enum):
    """Download transport variants."""

    NATIVE_SDK = "native-sdk"
    DIRECT_STREAM = "direct-stream"
    CONCURRENT_RANGE = "concurrent-range"


# Bump whenever the cache entry layout changes incompatibly
VERSION_SALT = "1.0"

VERSION_DELIMITER = "|"

WINDOWS_ONLY_MARKER = "windows-only"

CACHE_KEY_PREFIX = "caches"

MEGABYTE = 1024 * 1024

DEFAULT_UPLOAD_CHUNK_SIZE = 32 * MEGABYTE

DEFAULT_DOWNLOAD_CONCURRENCY = 8

DEFAULT_DOWNLOAD_SEGMENT_SIZE = 32 * MEGABYTE

DEFAULT_REQUEST_TIMEOUT_SECONDS = 600.0

DEFAULT_MAX_CACHE_SIZE = 10 * 1024 * MEGABYTE

MAX_KEY_LENGTH = 512

MAX_KEY_COUNT = 10

CACHE_SERVICE_API_VERSION = "6.0-preview.1"

METADATA_CACHE_KEY = "cache-key"

METADATA_CACHE_VERSION = "cache-version"

# S3 rejects non-final multipart parts below this size
MULTIPART_MIN_PART_SIZE = 5 * MEGABYTE

MULTIPART_MAX_PARTS = 10000
