"""Shared type definitions for firebird_images.

This module contains enums and type aliases shared across subpackages
to avoid circular imports.
"""

from enum import Enum

# Architectures with upstream Linux tarballs, in serialization order.
ARCHITECTURES: tuple[str, ...] = ("amd64", "arm64")


class JobAction(str, Enum):
    """Per-target action executed by the orchestrator."""

    BUILD = "build"
    TEST = "test"
    PUBLISH = "publish"


class JobStatus(str, Enum):
    """Status of an orchestrated job."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SessionState(str, Enum):
    """Lifecycle state of a test container session."""

    STARTING = "starting"
    AWAITING_PORT = "awaiting_port"
    READY = "ready"
    RUNNING = "running"
    TIMED_OUT = "timed_out"
    TEARING_DOWN = "tearing_down"
    CLOSED = "closed"


__all__ = [
    "ARCHITECTURES",
    "JobAction",
    "JobStatus",
    "SessionState",
]
