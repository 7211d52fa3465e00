"""Cache version fingerprinting.

The version is a SHA-256 digest over the cached paths plus the modifiers
that make an archive unusable elsewhere (compression method, Windows-only
archives). Two runs computing the same version can exchange archives.
"""

import hashlib
import sys
from typing import Optional, Sequence, Union

from .constants import (
    VERSION_DELIMITER,
    VERSION_SALT,
    WINDOWS_ONLY_MARKER,
    CompressionMethod,
)


def get_cache_version(
    paths: Sequence[str],
    compression_method: Optional[Union[CompressionMethod, str]] = None,
    enable_cross_os_archive: bool = False,
    platform: Optional[str] = None,
) -> str:
    """Compute the cache version for a set of paths.

    Components are joined in this order: paths, compression method,
    ``windows-only`` marker, version salt.

    Args:
        paths: Cached paths, order-preserving
        compression_method: Compression method, if any
        enable_cross_os_archive: Allow Windows archives to restore on other OSes
        platform: Platform override (defaults to ``sys.platform``)

    Returns:
        64-character hex digest
    """
    # never mutate the caller's sequence
    components = list(paths)

    if compression_method:
        components.append(getattr(compression_method, "value", compression_method))

    if platform is None:
        platform = sys.platform
    if platform == "win32" and not enable_cross_os_archive:
        components.append(WINDOWS_ONLY_MARKER)

    components.append(VERSION_SALT)

    return hashlib.sha256(VERSION_DELIMITER.join(components).encode("utf-8")).hexdigest()
