"""Upstream release fetch module.

This module handles:
- Listing releases from the GitHub releases API (with pagination)
- Streaming remote files to compute their SHA-256 checksum
- Cached wrappers keyed for the asset cache
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from firebird_images.assets.cache import AssetCache

logger = logging.getLogger(__name__)

# Timeout for API requests (seconds)
API_TIMEOUT = 30

# Timeout for file downloads (seconds)
DOWNLOAD_TIMEOUT = 600

# Chunk size for streamed hashing (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# Releases requested per API page (GitHub maximum)
RELEASES_PER_PAGE = 100

RELEASES_CACHE_KEY = "github-releases"


class FetchError(Exception):
    """Raised when the upstream source is unreachable or returns non-200."""

    def __init__(self, message: str, code: str = "fetch_error") -> None:
        """Initialize FetchError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


def releases_url(api_url: str, repository: str) -> str:
    """Build the releases listing URL for a GitHub repository."""
    return f"{api_url.rstrip('/')}/repos/{repository}/releases"


def _api_headers(token: str | None) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def fetch_releases(
    client: httpx.Client,
    api_url: str,
    repository: str,
    token: str | None = None,
    timeout: float = API_TIMEOUT,
) -> list[dict[str, Any]]:
    """Fetch all releases of a repository, following pagination links.

    Args:
        client: HTTPX client instance.
        api_url: GitHub API base URL.
        repository: Repository in 'owner/name' form.
        token: Optional API token.
        timeout: Per-request timeout in seconds.

    Returns:
        Raw release records as returned by the API.

    Raises:
        FetchError: If any page cannot be fetched.
    """
    url: str | None = releases_url(api_url, repository)
    params: dict[str, Any] | None = {"per_page": RELEASES_PER_PAGE}
    releases: list[dict[str, Any]] = []

    while url:
        logger.debug("Fetching releases page %s", url)
        try:
            response = client.get(
                url, params=params, headers=_api_headers(token), timeout=timeout
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"HTTP error fetching releases: {e.response.status_code} "
                f"{e.response.reason_phrase}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Timeout fetching releases from {url}",
                code="timeout",
            ) from e
        except httpx.RequestError as e:
            raise FetchError(
                f"Network error fetching releases: {e}",
                code="network_error",
            ) from e

        try:
            page = response.json()
        except ValueError as e:
            raise FetchError(
                f"Releases payload from {url} is not JSON",
                code="invalid_payload",
            ) from e
        if not isinstance(page, list):
            raise FetchError(
                f"Unexpected releases payload: {type(page).__name__}",
                code="invalid_payload",
            )
        releases.extend(page)

        # The next link already carries the query string
        url = response.links.get("next", {}).get("url")
        params = None

    logger.info("Fetched %d releases from %s", len(releases), repository)
    return releases


def compute_remote_sha256(
    client: httpx.Client,
    url: str,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> str:
    """Stream a remote file and compute its SHA-256 checksum.

    Args:
        client: HTTPX client instance.
        url: URL of the file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to read.

    Returns:
        SHA256 hex digest.

    Raises:
        FetchError: If download fails.
    """
    logger.info("Hashing %s", url)

    try:
        with client.stream(
            "GET", url, timeout=timeout, follow_redirects=True
        ) as response:
            response.raise_for_status()

            sha256 = hashlib.sha256()
            total_bytes = 0
            for chunk in response.iter_bytes(chunk_size):
                sha256.update(chunk)
                total_bytes += len(chunk)

    except httpx.HTTPStatusError as e:
        raise FetchError(
            f"HTTP error downloading {url}: {e.response.status_code} "
            f"{e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise FetchError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise FetchError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e

    checksum = sha256.hexdigest()
    logger.debug(
        "Hashed %s (%d bytes, checksum: %s)", url, total_bytes, checksum[:16] + "..."
    )
    return checksum


def file_name_from_url(url: str) -> str:
    """Return the last path component of a download URL."""
    return url.rstrip("/").rsplit("/", 1)[-1]


def cached_releases(
    cache: AssetCache,
    client: httpx.Client,
    api_url: str,
    repository: str,
    token: str | None = None,
    timeout: float = API_TIMEOUT,
) -> list[dict[str, Any]]:
    """Return the release listing, fetching it only on a cache miss."""
    return cache.get_or_create(
        RELEASES_CACHE_KEY,
        lambda: fetch_releases(client, api_url, repository, token, timeout),
    )


def cached_sha256(
    cache: AssetCache,
    client: httpx.Client,
    url: str,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> str:
    """Return a file's checksum, downloading it once per distinct file name."""
    key = f"sha256/{file_name_from_url(url)}"
    return cache.get_or_create(
        key, lambda: compute_remote_sha256(client, url, timeout=timeout)
    )


__all__ = [
    "FetchError",
    "RELEASES_CACHE_KEY",
    "cached_releases",
    "cached_sha256",
    "compute_remote_sha256",
    "fetch_releases",
    "file_name_from_url",
    "releases_url",
]
