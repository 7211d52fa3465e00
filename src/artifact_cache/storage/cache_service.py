"""HTTP client for the native cache service.

The service owns reservation semantics: a reservation for a (key, version)
pair that is already open or committed is rejected with 409, so only one
concurrent pipeline run gets to write a cache line.
"""

import logging
from typing import Any, Optional

import httpx

from ..constants import CACHE_SERVICE_API_VERSION
from ..errors import (
    CacheError,
    ObjectNotFoundError,
    PermanentTransportError,
    ReservationConflictError,
    TransientTransportError,
)
from ..models import (
    ArtifactCacheList,
    CommitCacheRequest,
    ReserveCacheRequest,
    ReserveCacheResponse,
)

logger = logging.getLogger(__name__)


def classify_status(operation: str, response: httpx.Response) -> CacheError:
    """Map a non-success response onto the cache error taxonomy."""
    status = response.status_code
    message = f"{operation} failed (HTTP {status}): {response.text[:512]}"
    if status == 404:
        return ObjectNotFoundError(message, status_code=status)
    if status == 409:
        return ReservationConflictError(message, status_code=status)
    if status in (408, 429) or status >= 500:
        return TransientTransportError(message, status_code=status)
    return PermanentTransportError(message, status_code=status)


class CacheServiceClient:
    """Async client for the cache service reserve/upload/commit API.

    Attributes:
        base_url: Service root URL
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the cache service client.

        Args:
            base_url: Service root URL (ACTIONS_CACHE_URL)
            token: Bearer token (ACTIONS_RUNTIME_TOKEN)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport override

        Raises:
            ValueError: If the URL or token is empty
        """
        if not base_url:
            raise ValueError("Cache service URL not set. Set ACTIONS_CACHE_URL.")
        if not token:
            raise ValueError("Cache service token not set. Set ACTIONS_RUNTIME_TOKEN.")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/_apis/artifactcache/",
            headers={
                "Accept": f"application/json;api-version={CACHE_SERVICE_API_VERSION}",
                "Authorization": f"Bearer {token}",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CacheServiceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientTransportError(f"{operation} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientTransportError(f"{operation} failed: {e}") from e

        if not response.is_success:
            raise classify_status(operation, response)
        return response

    async def reserve_cache(self, key: str, version: str, cache_size: Optional[int] = None) -> int:
        """Reserve a cache slot for (key, version).

        Returns:
            Backend-issued cache id

        Raises:
            ReservationConflictError: If the slot is already reserved or committed
        """
        body = ReserveCacheRequest(key=key, version=version, cache_size=cache_size)
        response = await self._request(
            f"Reserve cache {key}",
            "POST",
            "caches",
            json=body.model_dump(by_alias=True, exclude_none=True),
        )
        return ReserveCacheResponse.model_validate(response.json()).cache_id

    async def upload_chunk(self, cache_id: int, data: bytes, start: int, end: int) -> None:
        """Upload one byte range of the archive.

        Args:
            cache_id: Reservation id
            data: Chunk bytes
            start: First byte offset (inclusive)
            end: Last byte offset (inclusive)
        """
        await self._request(
            f"Upload chunk bytes {start}-{end}",
            "PATCH",
            f"caches/{cache_id}",
            content=data,
            headers={
                "Content-Type": "application/octet-stream",
                "Content-Range": f"bytes {start}-{end}/*",
            },
        )

    async def commit_cache(self, cache_id: int, size: int) -> None:
        """Close a reservation with the final archive size."""
        await self._request(
            f"Commit cache {cache_id}",
            "POST",
            f"caches/{cache_id}",
            json=CommitCacheRequest(size=size).model_dump(),
        )

    async def list_caches(self, key: str) -> ArtifactCacheList:
        """List entries sharing a key across versions and scopes."""
        response = await self._request(
            f"List caches {key}", "GET", "caches", params={"key": key}
        )
        return ArtifactCacheList.model_validate(response.json())
