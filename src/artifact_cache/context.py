"""Immutable namespace context for cache object addressing.

The scope identifiers are resolved once at startup (see
``Settings.to_context``) and passed explicitly to every component.
"""

from dataclasses import dataclass

from .constants import CACHE_KEY_PREFIX


@dataclass(frozen=True)
class CacheScope:
    """The (repository, ref, workflow) tuple isolating one cache namespace.

    Attributes:
        repository: Repository identity, e.g. "octo/widgets"
        ref: Branch or tag ref, e.g. "refs/heads/main"
        workflow_digest: Workflow identifier digest
    """

    repository: str
    ref: str
    workflow_digest: str

    @property
    def prefix(self) -> str:
        """Object key prefix shared by every entry in this scope."""
        return f"{CACHE_KEY_PREFIX}/{self.repository}/{self.ref}/{self.workflow_digest}/"

    @property
    def repository_prefix(self) -> str:
        """Object key prefix shared by every scope of this repository."""
        return f"{CACHE_KEY_PREFIX}/{self.repository}/"

    def object_key(self, name: str) -> str:
        """Build the object address for a cache key or reservation id.

        Args:
            name: Cache key or reservation id

        Returns:
            ``caches/{repository}/{ref}/{workflow_digest}/{name}``
        """
        return f"{self.prefix}{name}"

    def __str__(self) -> str:
        return f"{self.repository}/{self.ref}/{self.workflow_digest}"


@dataclass(frozen=True)
class CacheContext:
    """Everything a component needs to address the cache namespace.

    Attributes:
        bucket: Object storage bucket holding cache archives
        scope: Namespace scope for this pipeline run
    """

    bucket: str
    scope: CacheScope

    def object_key(self, name: str) -> str:
        """Shortcut for ``scope.object_key``."""
        return self.scope.object_key(name)
