"""Container runtime and test session management."""

from firebird_images.containers.runtime import (
    ContainerRuntimeError,
    DockerRuntime,
    ExecResult,
)
from firebird_images.containers.session import (
    ContainerLifecycle,
    ContainerSession,
    ContainerStartError,
    ReadinessTimeout,
    TeardownError,
)

__all__ = [
    "ContainerLifecycle",
    "ContainerRuntimeError",
    "ContainerSession",
    "ContainerStartError",
    "DockerRuntime",
    "ExecResult",
    "ReadinessTimeout",
    "TeardownError",
]
