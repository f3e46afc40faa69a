"""Persisted release matrix (assets.json) import/export.

The serialized document is the contract between the resolver and every
downstream consumer, so output is deterministic: identical entries always
produce byte-identical files.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from firebird_images.matrix.models import (
    DownloadDescriptor,
    MatrixEntry,
    MatrixEntrySchema,
    ReleaseAsset,
)
from firebird_images.matrix.versions import ParseError, Version
from firebird_images.types import ARCHITECTURES

_ENTRIES_ADAPTER = TypeAdapter(list[MatrixEntrySchema])


class MatrixFormatError(Exception):
    """Raised when a persisted matrix cannot be read or is malformed."""

    def __init__(self, message: str, code: str = "matrix_format") -> None:
        super().__init__(message)
        self.code = code


def entry_to_dict(entry: MatrixEntry) -> dict[str, Any]:
    """Convert a matrix entry to its serialized form."""
    return {
        "version": str(entry.version),
        "releases": {
            arch: {"url": d.url, "sha256": d.sha256}
            for arch, d in entry.asset.descriptors.items()
        },
        "tags": {variant: list(tags) for variant, tags in entry.tags.items()},
    }


def entry_from_schema(schema: MatrixEntrySchema) -> MatrixEntry:
    """Convert a validated serialized entry back to a MatrixEntry."""
    unknown = set(schema.releases) - set(ARCHITECTURES)
    if unknown:
        raise MatrixFormatError(
            f"Unknown architectures for {schema.version}: {sorted(unknown)}"
        )
    for variant, tags in schema.tags.items():
        if not tags:
            raise MatrixFormatError(
                f"Empty tag list for {schema.version}/{variant}"
            )

    try:
        version = Version.parse(schema.version)
    except ParseError as e:
        raise MatrixFormatError(str(e)) from e

    descriptors = {
        arch: DownloadDescriptor(url=d.url, sha256=d.sha256)
        for arch in ARCHITECTURES
        if (d := schema.releases.get(arch)) is not None
    }
    return MatrixEntry(
        asset=ReleaseAsset(version=version, descriptors=descriptors),
        tags=schema.tags,
    )


def dumps_matrix(entries: list[MatrixEntry]) -> str:
    """Serialize matrix entries to the persisted JSON document."""
    data = [entry_to_dict(e) for e in entries]
    return json.dumps(data, indent=4, ensure_ascii=False) + "\n"


def loads_matrix(content: str) -> list[MatrixEntry]:
    """Parse and validate a persisted JSON matrix document.

    Raises:
        MatrixFormatError: If the content is not a valid matrix.
    """
    try:
        schemas = _ENTRIES_ADAPTER.validate_json(content)
    except ValidationError as e:
        raise MatrixFormatError(f"Invalid matrix document: {e}") from e
    return [entry_from_schema(s) for s in schemas]


def write_matrix(entries: list[MatrixEntry], path: Path) -> bool:
    """Write the matrix to path.

    The file is left untouched when its content would not change.

    Returns:
        True if the file was written.
    """
    content = dumps_matrix(entries)
    if path.exists() and path.read_text(encoding="utf-8") == content:
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return True


def read_matrix(path: Path) -> list[MatrixEntry]:
    """Load the matrix from path.

    Raises:
        MatrixFormatError: If the file is missing or malformed.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MatrixFormatError(
            f"Cannot read matrix {path}: {e}", code="matrix_missing"
        ) from e
    return loads_matrix(content)


__all__ = [
    "MatrixFormatError",
    "dumps_matrix",
    "entry_from_schema",
    "entry_to_dict",
    "loads_matrix",
    "read_matrix",
    "write_matrix",
]
