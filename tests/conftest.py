"""Shared fixtures for firebird_images tests."""

import itertools
import threading

import pytest

from firebird_images.containers.runtime import ExecResult
from firebird_images.matrix.models import BuildTarget, DownloadDescriptor, ReleaseAsset
from firebird_images.matrix.versions import Version


@pytest.fixture
def make_target():
    """Factory for build targets with fake download descriptors."""

    def _make(
        version: str = "5.0.2",
        variant: str = "bookworm",
        tags: tuple[str, ...] | None = None,
        architectures: tuple[str, ...] = ("amd64", "arm64"),
    ) -> BuildTarget:
        descriptors = {
            arch: DownloadDescriptor(
                url=f"https://example.com/Firebird-{version}-{arch}.tar.gz",
                sha256="0" * 64,
            )
            for arch in architectures
        }
        asset = ReleaseAsset(version=Version.parse(version), descriptors=descriptors)
        if tags is None:
            tags = (version,) if variant == "bookworm" else (f"{version}-{variant}",)
        return BuildTarget(asset=asset, variant=variant, tags=tags)

    return _make


@pytest.fixture
def target(make_target):
    """The newest default-variant target."""
    return make_target(tags=("latest", "5", "5.0.2"))


class FakeRuntime:
    """In-memory stand-in for DockerRuntime.

    Attributes:
        containers: Container id to its image, env and running flag.
        removed: Ids of removed containers, in order.
        exec_handler: Returns the ExecResult of an exec call.
    """

    def __init__(self) -> None:
        self.containers: dict[str, dict] = {}
        self._ids = itertools.count()
        self._lock = threading.Lock()
        self.removed: list[str] = []
        self.stopped: list[str] = []
        self.execs: list[tuple[str, list[str], str | None]] = []
        self.host_port: int | None = 49153
        self.log_output = "firebird: starting server\n"
        self.start_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.remove_error: Exception | None = None
        self.logs_error: Exception | None = None
        self.exit_on_start = False
        self.exec_handler = lambda cid, command, input_text: ExecResult(0, "", "")

    def run_detached(self, image, env=None, tmpfs=(), publish=()):
        if self.start_error is not None:
            raise self.start_error
        with self._lock:
            container_id = f"c{next(self._ids):063d}"
        self.containers[container_id] = {
            "image": image,
            "env": dict(env or {}),
            "tmpfs": list(tmpfs),
            "publish": list(publish),
            "running": not self.exit_on_start,
        }
        return container_id

    def port(self, container_id, container_port):
        return self.host_port

    def is_running(self, container_id):
        return self.containers[container_id]["running"]

    def logs(self, container_id):
        if self.logs_error is not None:
            raise self.logs_error
        return self.log_output

    def exec(self, container_id, command, input_text=None):
        self.execs.append((container_id, list(command), input_text))
        return self.exec_handler(container_id, list(command), input_text)

    def stop(self, container_id, timeout):
        if self.stop_error is not None:
            raise self.stop_error
        self.stopped.append(container_id)
        self.containers[container_id]["running"] = False

    def remove(self, container_id):
        if self.remove_error is not None:
            raise self.remove_error
        self.removed.append(container_id)

    @property
    def live(self) -> list[str]:
        """Containers created but not removed."""
        return [cid for cid in self.containers if cid not in self.removed]


@pytest.fixture
def fake_runtime():
    """A fresh FakeRuntime."""
    return FakeRuntime()
