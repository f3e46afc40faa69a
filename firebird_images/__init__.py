"""Firebird container images - release matrix and build tooling.

This package resolves upstream Firebird releases into a matrix of
version/distribution/architecture image targets and orchestrates
building, testing, and publishing those images.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
