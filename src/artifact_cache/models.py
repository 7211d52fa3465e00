"""Data model for cache entries, reservations and lookup results."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .constants import ReservationMode


class ArtifactCacheEntry(BaseModel):
    """A cache entry as seen by a single lookup.

    Every field except ``cache_version`` is optional: a miss still carries
    the computed version for diagnostics.
    """

    model_config = ConfigDict(populate_by_name=True)

    cache_key: Optional[str] = Field(default=None, alias="cacheKey")
    scope: Optional[str] = None
    cache_version: Optional[str] = Field(default=None, alias="cacheVersion")
    creation_time: Optional[str] = Field(default=None, alias="creationTime")
    object_key: Optional[str] = Field(default=None, alias="objectKey")


class ArtifactCacheList(BaseModel):
    """Listing returned by the cache service for a key."""

    model_config = ConfigDict(populate_by_name=True)

    total_count: int = Field(default=0, alias="totalCount")
    artifact_caches: List[ArtifactCacheEntry] = Field(
        default_factory=list, alias="artifactCaches"
    )


class ReserveCacheRequest(BaseModel):
    """Body of a native reservation request."""

    model_config = ConfigDict(populate_by_name=True)

    key: str
    version: Optional[str] = None
    cache_size: Optional[int] = Field(default=None, alias="cacheSize")


class ReserveCacheResponse(BaseModel):
    """Body of a successful native reservation."""

    model_config = ConfigDict(populate_by_name=True)

    cache_id: int = Field(alias="cacheId")


class CommitCacheRequest(BaseModel):
    """Body of a native commit request."""

    size: int


@dataclass(frozen=True)
class ObjectInfo:
    """Metadata returned by a ``head`` or listing call.

    Attributes:
        key: Object key
        content_length: Size in bytes
        last_modified: Last modification time, if reported
        metadata: User metadata attached at upload
    """

    key: str
    content_length: int
    last_modified: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class Reservation:
    """A provisional claim on a cache slot.

    Created by a reservation coordinator, consumed once by the transfer
    engine and the commit coordinator.

    Attributes:
        cache_id: Backend-issued id (native) or per-invocation id (storage-direct)
        key: Cache key being written
        version: Cache version the entry is written under
        object_key: Scoped object address the archive lands at
        mode: Reservation mode that issued this handle
        cache_size: Size declared at reservation time, if known
        committed: Set once the commit coordinator finalizes the entry
    """

    cache_id: str
    key: str
    version: str
    object_key: str
    mode: ReservationMode
    cache_size: Optional[int] = None
    committed: bool = False


@dataclass(frozen=True)
class CacheHit:
    """Lookup found an existing entry.

    Attributes:
        entry: The entry bound to the matched key
        matched_key: Key from the request that produced the hit
        is_exact_match: True when the primary key matched
    """

    entry: ArtifactCacheEntry
    matched_key: str
    is_exact_match: bool


@dataclass(frozen=True)
class CacheMiss:
    """Lookup found nothing for any key.

    Attributes:
        cache_version: Version computed for the request
        attempted_keys: Keys probed, in order
    """

    cache_version: str
    attempted_keys: List[str]


CacheLookup = Union[CacheHit, CacheMiss]
