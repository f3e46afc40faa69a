"""Release matrix module.

This module handles:
- Resolving upstream releases into versions, downloads, and tags
- Persisting the matrix document
- Enumerating build targets with filters
"""

from firebird_images.matrix.io import MatrixFormatError, read_matrix, write_matrix
from firebird_images.matrix.models import (
    BuildTarget,
    DownloadDescriptor,
    MatrixEntry,
    ReleaseAsset,
)
from firebird_images.matrix.resolver import resolve_matrix
from firebird_images.matrix.targets import NoMatchError, enumerate_targets
from firebird_images.matrix.versions import ParseError, Version

__all__ = [
    "BuildTarget",
    "DownloadDescriptor",
    "MatrixEntry",
    "MatrixFormatError",
    "NoMatchError",
    "ParseError",
    "ReleaseAsset",
    "Version",
    "enumerate_targets",
    "read_matrix",
    "resolve_matrix",
    "write_matrix",
]
