"""Release matrix resolver.

This module handles:
- Filtering upstream releases to stable ones
- Selecting per-architecture download URLs (never debug builds)
- Grouping releases by major version, newest first
- Computing the tag aliases of every (release, variant) pair

Tag rules for a release at index i within its major group and group g
within the matrix (both 0 = newest):
- exact version tag, always present and last
- major alias if i == 0
- matrix-latest alias ('latest' or the bare variant) if g == 0 and i == 0
Non-default variants suffix every tag with '-<variant>', except the
matrix-latest alias, which is the variant name itself.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from itertools import groupby
from typing import Any

from pydantic import ValidationError

from firebird_images.matrix.models import (
    DownloadDescriptor,
    MatrixEntry,
    ReleaseAsset,
    UpstreamReleaseSchema,
)
from firebird_images.matrix.versions import ParseError, Version, is_stable_tag
from firebird_images.types import ARCHITECTURES

logger = logging.getLogger(__name__)

ARCHITECTURE_PATTERNS: dict[str, re.Pattern[str]] = {
    "amd64": re.compile(r"(\.amd64|-linux-x64)\.tar\.gz$"),
    "arm64": re.compile(r"(\.arm64|-linux-arm64)\.tar\.gz$"),
}

DEBUG_PATTERN = re.compile(r"debug", re.IGNORECASE)

LATEST_TAG = "latest"

HashLookup = Callable[[str], str]


def parse_releases(
    raw_releases: Iterable[Mapping[str, Any]],
) -> list[UpstreamReleaseSchema]:
    """Validate raw upstream records, skipping malformed ones.

    Args:
        raw_releases: Release records as returned by the upstream API.

    Returns:
        Validated release records, in input order.
    """
    releases: list[UpstreamReleaseSchema] = []
    for raw in raw_releases:
        try:
            releases.append(UpstreamReleaseSchema.model_validate(raw))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed release record %r: %s",
                raw.get("tag_name") if isinstance(raw, Mapping) else raw,
                e.errors()[0]["msg"],
            )
    return releases


def is_stable_release(release: UpstreamReleaseSchema) -> bool:
    """Return True for non-prerelease releases with a stable tag."""
    return not release.prerelease and is_stable_tag(release.tag_name)


def classify_architecture(url: str) -> str | None:
    """Return the architecture a download URL is built for.

    Debug builds and URLs matching no (or more than one) supported
    architecture return None.
    """
    file_name = url.rsplit("/", 1)[-1]
    if DEBUG_PATTERN.search(file_name):
        return None

    matches = [
        arch
        for arch, pattern in ARCHITECTURE_PATTERNS.items()
        if pattern.search(file_name)
    ]
    if len(matches) != 1:
        return None
    return matches[0]


def select_download_urls(urls: Iterable[str]) -> dict[str, str]:
    """Pick one download URL per supported architecture.

    Args:
        urls: All download URLs of a release.

    Returns:
        Architecture to URL, in architecture order. Architectures without
        an eligible URL are omitted.
    """
    selected: dict[str, str] = {}
    for url in urls:
        arch = classify_architecture(url)
        if arch is None:
            continue
        if arch in selected:
            logger.warning(
                "Multiple %s downloads found, keeping %s (ignoring %s)",
                arch,
                selected[arch],
                url,
            )
            continue
        selected[arch] = url

    return {arch: selected[arch] for arch in ARCHITECTURES if arch in selected}


def build_asset(
    release: UpstreamReleaseSchema,
    version: Version,
    hash_lookup: HashLookup,
) -> ReleaseAsset:
    """Resolve download descriptors of a release into a ReleaseAsset.

    Args:
        release: Validated upstream release.
        version: Version parsed from the release tag.
        hash_lookup: Returns the SHA-256 of a download URL.

    Returns:
        ReleaseAsset, possibly with no descriptors.
    """
    urls = select_download_urls(release.download_urls)
    if not urls:
        logger.warning("Release %s has no eligible downloads", version)

    descriptors = {
        arch: DownloadDescriptor(url=url, sha256=hash_lookup(url))
        for arch, url in urls.items()
    }
    return ReleaseAsset(version=version, descriptors=descriptors)


def collect_assets(
    releases: Iterable[UpstreamReleaseSchema],
    hash_lookup: HashLookup,
    min_major_version: int = 0,
) -> list[ReleaseAsset]:
    """Turn stable upstream releases into release assets.

    Releases whose tag cannot be parsed are skipped with a warning.
    """
    assets: list[ReleaseAsset] = []
    for release in releases:
        if not is_stable_release(release):
            logger.debug("Skipping non-stable release %s", release.tag_name)
            continue

        try:
            version = Version.from_tag(release.tag_name)
        except ParseError as e:
            logger.warning("Skipping release %s: %s", release.tag_name, e)
            continue

        if version.major < min_major_version:
            logger.debug("Skipping unsupported release %s", version)
            continue

        assets.append(build_asset(release, version, hash_lookup))
    return assets


def group_by_major(assets: Iterable[ReleaseAsset]) -> list[list[ReleaseAsset]]:
    """Group assets by major version.

    Returns:
        Groups sorted by major version descending, each sorted by version
        descending.
    """
    ordered = sorted(assets, key=lambda a: a.version, reverse=True)
    return [
        list(group)
        for _, group in groupby(ordered, key=lambda a: a.major_version)
    ]


def variants_for_major(
    major: int,
    variants: Sequence[str],
    exclusions: Mapping[int, Iterable[str]],
) -> list[str]:
    """Return configured variants minus those excluded for a major version."""
    excluded = set(exclusions.get(major, ()))
    return [v for v in variants if v not in excluded]


def compute_tags(
    version: Version,
    variant: str,
    default_variant: str,
    newest_of_major: bool,
    newest_of_matrix: bool,
) -> tuple[str, ...]:
    """Compute the ordered tags of one (release, variant) pair.

    Args:
        version: Release version.
        variant: Distribution variant.
        default_variant: Variant whose tags carry no suffix.
        newest_of_major: Release is the newest of its major version.
        newest_of_matrix: Release is the newest of the whole matrix.

    Returns:
        Tags ordered [matrix-latest alias?, major alias?, exact version].
    """
    is_default = variant == default_variant
    suffix = "" if is_default else f"-{variant}"

    tags: list[str] = []
    if newest_of_matrix and newest_of_major:
        tags.append(LATEST_TAG if is_default else variant)
    if newest_of_major:
        tags.append(f"{version.major}{suffix}")
    tags.append(f"{version}{suffix}")
    return tuple(tags)


def compute_matrix(
    assets: Iterable[ReleaseAsset],
    variants: Sequence[str],
    default_variant: str,
    exclusions: Mapping[int, Iterable[str]] | None = None,
) -> list[MatrixEntry]:
    """Compute the tag matrix for resolved release assets.

    Args:
        assets: Release assets, in any order.
        variants: Configured variants, in tag order.
        default_variant: Variant whose tags carry no suffix.
        exclusions: Major version to excluded variants.

    Returns:
        Matrix entries ordered by version descending.
    """
    if default_variant not in variants:
        raise ValueError(f"Default variant {default_variant!r} not in {variants}")
    exclusions = exclusions or {}

    entries: list[MatrixEntry] = []
    for g, group in enumerate(group_by_major(assets)):
        major = group[0].major_version
        major_variants = variants_for_major(major, variants, exclusions)
        if not major_variants:
            logger.warning("All variants excluded for major version %d", major)

        for i, asset in enumerate(group):
            tags = {
                variant: compute_tags(
                    asset.version,
                    variant,
                    default_variant,
                    newest_of_major=i == 0,
                    newest_of_matrix=g == 0,
                )
                for variant in major_variants
            }
            entries.append(MatrixEntry(asset=asset, tags=tags))

    return entries


def resolve_matrix(
    raw_releases: Iterable[Mapping[str, Any]],
    hash_lookup: HashLookup,
    variants: Sequence[str],
    default_variant: str,
    exclusions: Mapping[int, Iterable[str]] | None = None,
    min_major_version: int = 0,
) -> list[MatrixEntry]:
    """Resolve raw upstream release records into the release matrix.

    This is the main entry point of the resolver. It:
    1. Validates the raw records
    2. Keeps stable releases and resolves their download descriptors
    3. Groups them by major version, newest first
    4. Computes per-variant tags honoring the exclusion table

    Args:
        raw_releases: Release records as returned by the upstream API.
        hash_lookup: Returns the SHA-256 of a download URL.
        variants: Configured variants, in tag order.
        default_variant: Variant whose tags carry no suffix.
        exclusions: Major version to excluded variants.
        min_major_version: Oldest major version to include.

    Returns:
        Matrix entries ordered by version descending.
    """
    releases = parse_releases(raw_releases)
    assets = collect_assets(releases, hash_lookup, min_major_version)
    entries = compute_matrix(assets, variants, default_variant, exclusions)
    logger.info(
        "Resolved %d releases into %d matrix entries",
        len(releases),
        len(entries),
    )
    return entries


def iter_records(
    entries: Iterable[MatrixEntry],
) -> Iterator[tuple[ReleaseAsset, str, tuple[str, ...]]]:
    """Yield one (asset, variant, tags) record per matrix entry variant."""
    for entry in entries:
        for variant, tags in entry.tags.items():
            yield entry.asset, variant, tags


__all__ = [
    "ARCHITECTURE_PATTERNS",
    "LATEST_TAG",
    "classify_architecture",
    "collect_assets",
    "compute_matrix",
    "compute_tags",
    "group_by_major",
    "is_stable_release",
    "iter_records",
    "parse_releases",
    "resolve_matrix",
    "select_download_urls",
    "variants_for_major",
]
