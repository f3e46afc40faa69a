"""Release matrix service module.

This module provides the high-level matrix API:
- refresh_matrix(): fetch upstream releases, resolve, and persist
- load_targets(): read the persisted matrix and enumerate targets
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from firebird_images.assets.cache import AssetCache, FileCacheStorage
from firebird_images.assets.fetch import cached_releases, cached_sha256
from firebird_images.config import get_settings
from firebird_images.matrix.io import read_matrix, write_matrix
from firebird_images.matrix.models import BuildTarget, MatrixEntry
from firebird_images.matrix.resolver import resolve_matrix
from firebird_images.matrix.targets import enumerate_targets

if TYPE_CHECKING:
    from firebird_images.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Outcome of a matrix refresh."""

    entries: list[MatrixEntry]
    path: Path
    changed: bool


def open_cache(settings: Settings) -> AssetCache:
    """Return the filesystem-backed asset cache for the settings."""
    return AssetCache(
        FileCacheStorage(settings.cache_dir), offline=settings.offline
    )


def refresh_matrix(
    settings: Settings | None = None,
    cache: AssetCache | None = None,
    client: httpx.Client | None = None,
) -> RefreshResult:
    """Fetch upstream releases and rewrite the persisted matrix.

    Args:
        settings: Application settings (uses defaults if not provided).
        cache: Asset cache (filesystem cache under settings.cache_dir if
            not provided).
        client: HTTPX client (creates one if not provided).

    Returns:
        RefreshResult with the resolved entries.

    Raises:
        FetchError: If the upstream source cannot be read.
        OfflineModeError: If a lookup is not cached in offline mode.
    """
    if settings is None:
        settings = get_settings()
    if cache is None:
        cache = open_cache(settings)

    own_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True)

    try:
        raw_releases = cached_releases(
            cache,
            client,
            settings.github_api_url,
            settings.github_repository,
            token=settings.github_token,
            timeout=settings.http_timeout,
        )
        entries = resolve_matrix(
            raw_releases,
            hash_lookup=lambda url: cached_sha256(
                cache, client, url, timeout=settings.download_timeout
            ),
            variants=settings.variants,
            default_variant=settings.default_variant,
            exclusions=settings.exclusion_table(),
            min_major_version=settings.min_major_version,
        )
    finally:
        if own_client:
            client.close()

    changed = write_matrix(entries, settings.matrix_path)
    logger.info(
        "Matrix %s: %s (%d entries)",
        "updated" if changed else "unchanged",
        settings.matrix_path,
        len(entries),
    )
    return RefreshResult(entries=entries, path=settings.matrix_path, changed=changed)


def load_targets(
    settings: Settings | None = None,
    version_prefix: str | None = None,
    variant: str | None = None,
) -> list[BuildTarget]:
    """Read the persisted matrix and enumerate matching build targets.

    Raises:
        MatrixFormatError: If the matrix cannot be read.
        NoMatchError: If no target matches the filters.
    """
    if settings is None:
        settings = get_settings()
    entries = read_matrix(settings.matrix_path)
    return enumerate_targets(entries, version_prefix=version_prefix, variant=variant)


__all__ = ["RefreshResult", "load_targets", "open_cache", "refresh_matrix"]
