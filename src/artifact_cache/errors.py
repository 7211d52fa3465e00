"""Error taxonomy for cache resolution and transfer.

Callers only ever see these classes; transport-specific exceptions
(botocore, httpx) are translated at the storage boundary.
"""

from typing import Optional


class CacheError(Exception):
    """Base class for all cache client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ObjectNotFoundError(CacheError):
    """The requested object or cache entry does not exist."""


class ReservationConflictError(CacheError):
    """Another writer already holds or committed this cache slot."""


class TransientTransportError(CacheError):
    """Timeout, throttling, 5xx or connection reset. Safe to retry."""


class PermanentTransportError(CacheError):
    """Authorization failure, malformed request or other non-retryable 4xx."""


class IntegrityError(CacheError):
    """Transferred byte count does not match the declared length."""


class ResolutionError(CacheError):
    """The backend failed while resolving cache keys."""


class CommitError(CacheError):
    """The backend rejected finalizing a reservation."""


class CacheSizeLimitError(CacheError):
    """The archive exceeds the maximum cache entry size."""


class RetryExhaustedError(CacheError):
    """A retryable operation kept failing until the retry budget ran out."""

    def __init__(self, description: str, attempts: int, last_error: Exception):
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{description} failed after {attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )
