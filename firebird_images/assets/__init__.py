"""Upstream asset lookup module.

This module handles:
- Fetching the upstream release listing
- Computing checksums of release tarballs
- Caching both lookups on local storage
"""

from firebird_images.assets.cache import (
    AssetCache,
    CacheStorage,
    FileCacheStorage,
    MemoryCacheStorage,
    OfflineModeError,
)
from firebird_images.assets.fetch import (
    FetchError,
    cached_releases,
    cached_sha256,
    compute_remote_sha256,
    fetch_releases,
)

__all__ = [
    "AssetCache",
    "CacheStorage",
    "FetchError",
    "FileCacheStorage",
    "MemoryCacheStorage",
    "OfflineModeError",
    "cached_releases",
    "cached_sha256",
    "compute_remote_sha256",
    "fetch_releases",
]
