"""Build target enumeration.

Expands matrix entries into (version, variant) build targets, applying
the caller's version-prefix and variant filters.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from firebird_images.matrix.models import BuildTarget, MatrixEntry
from firebird_images.matrix.resolver import iter_records

logger = logging.getLogger(__name__)


class NoMatchError(Exception):
    """Raised when filters select nothing to act upon."""

    def __init__(self, message: str, code: str = "no_match") -> None:
        super().__init__(message)
        self.code = code


def enumerate_targets(
    entries: Iterable[MatrixEntry],
    version_prefix: str | None = None,
    variant: str | None = None,
) -> list[BuildTarget]:
    """Produce the ordered build targets matching the filters.

    Targets follow matrix order (version descending, then variant order).
    Releases without any download descriptor cannot be built and are
    skipped.

    Args:
        entries: Resolved matrix entries.
        version_prefix: Keep versions whose dotted form starts with this
            string ('5' matches '5.0.2').
        variant: Keep only this distribution variant.

    Returns:
        List of BuildTarget, each carrying only its own variant's tags.

    Raises:
        NoMatchError: If no target matches.
    """
    targets: list[BuildTarget] = []

    for asset, target_variant, tags in iter_records(entries):
        if version_prefix and not str(asset.version).startswith(version_prefix):
            continue
        if variant and target_variant != variant:
            continue
        if not asset.descriptors:
            logger.warning(
                "Skipping %s-%s: no downloads available", asset.version, target_variant
            )
            continue
        targets.append(BuildTarget(asset=asset, variant=target_variant, tags=tags))

    if not targets:
        filters = []
        if version_prefix:
            filters.append(f"version '{version_prefix}'")
        if variant:
            filters.append(f"variant '{variant}'")
        described = " and ".join(filters) if filters else "the current matrix"
        raise NoMatchError(f"No build targets match {described}")

    logger.debug("Enumerated %d build targets", len(targets))
    return targets


__all__ = ["NoMatchError", "enumerate_targets"]
