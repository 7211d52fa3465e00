"""Cache key resolution against the scoped namespace.

Keys are tried in priority order: the primary key must match exactly,
restore keys match exactly first and then by prefix. The first hit wins
and nothing after it is probed.
"""

import logging
from typing import List, Optional, Sequence

from .constants import CACHE_KEY_PREFIX
from .context import CacheContext
from .errors import CacheError, ObjectNotFoundError, ResolutionError
from .models import ArtifactCacheEntry, CacheHit, CacheLookup, CacheMiss, ObjectInfo
from .options import CacheOptions
from .storage.cache_service import CacheServiceClient
from .storage.object_store import ObjectStoreClient
from .utils import check_keys
from .version import get_cache_version

logger = logging.getLogger(__name__)


def _modified_timestamp(info: ObjectInfo) -> float:
    return info.last_modified.timestamp() if info.last_modified else 0.0


class KeyResolver:
    """Finds the best existing cache entry for an ordered key list.

    Attributes:
        store: Object storage transport used for existence probes
        context: Namespace context
        service: Cache service used for near-miss listings, if available
        verbose: Log near-miss diagnostics on a miss
    """

    def __init__(
        self,
        store: ObjectStoreClient,
        context: CacheContext,
        service: Optional[CacheServiceClient] = None,
        verbose: bool = False,
    ):
        self.store = store
        self.context = context
        self.service = service
        self.verbose = verbose

    async def _probe(self, key: str, allow_prefix: bool) -> Optional[ObjectInfo]:
        object_key = self.context.object_key(key)
        try:
            return await self.store.head_object(object_key)
        except ObjectNotFoundError:
            logger.debug(f"Unable to find cache with key {object_key}.")

        if not allow_prefix:
            return None

        candidates = await self.store.list_objects(object_key)
        if not candidates:
            return None
        return max(candidates, key=_modified_timestamp)

    async def resolve(
        self,
        keys: Sequence[str],
        paths: Sequence[str],
        options: Optional[CacheOptions] = None,
    ) -> CacheLookup:
        """Resolve keys to an existing entry.

        Args:
            keys: Primary key followed by restore keys
            paths: Cached paths (feed the cache version)
            options: Compression and cross-OS settings

        Returns:
            CacheHit for the first matching key, otherwise CacheMiss carrying
            the computed version

        Raises:
            ValueError: If the key list is invalid
            ResolutionError: If the backend fails with anything but "not found"
        """
        check_keys(keys)
        options = options or CacheOptions()
        version = get_cache_version(
            paths, options.compression_method, options.enable_cross_os_archive
        )

        for index, key in enumerate(keys):
            try:
                info = await self._probe(key, allow_prefix=index > 0)
            except CacheError as e:
                raise ResolutionError(
                    f"Failed to resolve cache key {key}: {e}", status_code=e.status_code
                ) from e

            if info is None:
                continue

            entry = ArtifactCacheEntry(
                cache_key=info.key[len(self.context.scope.prefix):],
                scope=str(self.context.scope),
                cache_version=version,
                creation_time=info.last_modified.isoformat() if info.last_modified else None,
                object_key=info.key,
            )
            logger.info(f"Cache hit for key {key} ({entry.object_key})")
            return CacheHit(entry=entry, matched_key=key, is_exact_match=index == 0)

        logger.warning(f"Failed to find cache that matches keys: {', '.join(keys)}")
        if self.verbose:
            await self._report_near_misses(keys[0], version)
        return CacheMiss(cache_version=version, attempted_keys=list(keys))

    async def list_near_misses(self, primary_key: str, version: str) -> List[ArtifactCacheEntry]:
        """List entries sharing the primary key under another version or scope."""
        scope = str(self.context.scope)

        if self.service is not None:
            listing = await self.service.list_caches(primary_key)
            return [
                entry
                for entry in listing.artifact_caches
                if (entry.cache_version, entry.scope) != (version, scope)
            ]

        exact = self.context.object_key(primary_key)
        suffix = f"/{primary_key}"
        near_misses = []
        for info in await self.store.list_objects(self.context.scope.repository_prefix):
            if info.key == exact or not info.key.endswith(suffix):
                continue
            near_misses.append(
                ArtifactCacheEntry(
                    cache_key=primary_key,
                    # caches/{repository}/{ref}/{workflow}/{key} -> {repository}/{ref}/{workflow}
                    scope=info.key[len(CACHE_KEY_PREFIX) + 1 : -len(suffix)],
                    creation_time=info.last_modified.isoformat() if info.last_modified else None,
                    object_key=info.key,
                )
            )
        return near_misses

    async def _report_near_misses(self, primary_key: str, version: str) -> None:
        try:
            near_misses = await self.list_near_misses(primary_key, version)
        except CacheError as e:
            logger.warning(f"Unable to list caches for diagnostics: {e}")
            return

        if not near_misses:
            return

        logger.info(
            f"No matching cache found for cache key '{primary_key}', version '{version}' "
            f"and scope {self.context.scope}. There exist one or more cache(s) with "
            f"similar key but they have different version or scope."
        )
        for entry in near_misses:
            logger.info(
                f"Other cache: key '{entry.cache_key}', version '{entry.cache_version}', "
                f"scope '{entry.scope}', created {entry.creation_time}"
            )
