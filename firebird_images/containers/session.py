"""Test container lifecycle management.

This module handles:
- Starting a detached container with an ephemeral data mount
- Polling until the server listens inside the container and the
  published port accepts connections
- Running a verification block against the ready container
- Stopping and removing the container on every exit path

Session states:
    starting -> awaiting_port -> ready -> running -> tearing_down -> closed
    starting -> awaiting_port -> timed_out -> tearing_down -> closed
"""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from firebird_images.builds.orchestrator import JobFailure
from firebird_images.containers.runtime import ContainerRuntimeError, DockerRuntime
from firebird_images.types import SessionState

logger = logging.getLogger(__name__)

# Firebird server port inside the container
SERVER_PORT = 3050

# Database directory; mounted as tmpfs so sessions leave nothing behind
DATA_DIR = "/var/lib/firebird/data"

# Maximum captured log size attached to readiness failures (characters)
MAX_DIAGNOSTIC_LOG = 20_000


class ContainerStartError(JobFailure):
    """Raised when the runtime cannot start the container."""

    def __init__(self, image: str, reason: str, code: str = "container_start") -> None:
        super().__init__(f"Cannot start container from {image}: {reason}", code=code)
        self.image = image


class ReadinessTimeout(JobFailure):
    """Raised when a container never accepted connections.

    Attributes:
        logs: Container output captured before teardown.
    """

    def __init__(
        self, image: str, reason: str, logs: str, code: str = "readiness_timeout"
    ) -> None:
        message = f"Container from {image} not ready: {reason}"
        if logs:
            message += f"\n--- container logs ---\n{logs[-MAX_DIAGNOSTIC_LOG:]}"
        super().__init__(message, code=code)
        self.image = image
        self.logs = logs


class TeardownError(Exception):
    """A container could not be stopped or removed."""

    def __init__(self, container_id: str, reason: str, code: str = "teardown") -> None:
        super().__init__(f"Teardown of container {container_id[:12]} failed: {reason}")
        self.container_id = container_id
        self.code = code


@dataclass
class ContainerSession:
    """A single test container, from start to removal."""

    image: str
    container_id: str | None = None
    host_port: int | None = None
    state: SessionState = SessionState.STARTING
    history: list[SessionState] = field(default_factory=list)
    teardown_error: TeardownError | None = None

    def __post_init__(self) -> None:
        self.history.append(self.state)

    def transition(self, state: SessionState) -> None:
        logger.debug(
            "Container %s: %s -> %s",
            (self.container_id or self.image)[:12],
            self.state.value,
            state.value,
        )
        self.state = state
        self.history.append(state)


def is_port_open(host: str, port: int, timeout: float = 1.0) -> bool:
    """Return True if a TCP connection to host:port succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def listener_check_command(port: int) -> list[str]:
    """Command that succeeds once something listens on port in the container."""
    return ["bash", "-c", f"exec 3<>/dev/tcp/127.0.0.1/{port}"]


PortProbe = Callable[[str, int], bool]
VerifyFn = Callable[[str], None]


class ContainerLifecycle:
    """Run verification blocks against short-lived containers.

    A container counts as ready once the published host port accepts a
    connection and a connection to the server port from inside the
    container also succeeds. The host side alone is not enough: the
    userland proxy accepts connections before the server listens.

    Args:
        runtime: Container runtime wrapper.
        readiness_timeout: Maximum wait for the port to open (seconds).
        poll_interval: Wait between readiness probes (seconds).
        stop_timeout: Grace period before the container is killed.
        port: Container port to wait for.
        host: Host address the port is published on.
        probe: Host port check, replaceable in tests.
    """

    def __init__(
        self,
        runtime: DockerRuntime,
        readiness_timeout: float = 30.0,
        poll_interval: float = 0.5,
        stop_timeout: int = 10,
        port: int = SERVER_PORT,
        host: str = "127.0.0.1",
        probe: PortProbe = is_port_open,
    ) -> None:
        self.runtime = runtime
        self.readiness_timeout = readiness_timeout
        self.poll_interval = poll_interval
        self.stop_timeout = stop_timeout
        self.port = port
        self.host = host
        self.probe = probe

    def run(
        self,
        image: str,
        verify: VerifyFn,
        env: Mapping[str, str] | None = None,
        session: ContainerSession | None = None,
    ) -> ContainerSession:
        """Start a container, wait for readiness, verify, and tear down.

        Teardown runs whatever happens after the container started,
        including when verify raises.

        Args:
            image: Image reference to run.
            verify: Called with the container id once the port is open.
            env: Environment passed to the container.
            session: Session object to track; lets callers inspect the
                final state even when an exception is raised.

        Returns:
            The closed session.

        Raises:
            ContainerStartError: If the container cannot be started.
            ReadinessTimeout: If the port never opened.
            Exception: Anything raised by verify.
        """
        if session is None:
            session = ContainerSession(image=image)
        container_id = self._start(image, env)
        session.container_id = container_id

        try:
            session.transition(SessionState.AWAITING_PORT)
            ready, reason = self._await_port(session, container_id)
            if not ready:
                session.transition(SessionState.TIMED_OUT)
                logs = self.runtime.logs(container_id)
                raise ReadinessTimeout(image, reason, logs)

            session.transition(SessionState.READY)
            session.transition(SessionState.RUNNING)
            verify(container_id)
        finally:
            self._teardown(session, container_id)

        return session

    def _start(self, image: str, env: Mapping[str, str] | None) -> str:
        try:
            container_id = self.runtime.run_detached(
                image,
                env=env,
                tmpfs=[DATA_DIR],
                publish=[f"{self.host}::{self.port}"],
            )
        except ContainerRuntimeError as e:
            raise ContainerStartError(image, str(e)) from e
        logger.info("Started container %s from %s", container_id[:12], image)
        return container_id

    def _await_port(
        self, session: ContainerSession, container_id: str
    ) -> tuple[bool, str]:
        deadline = time.monotonic() + self.readiness_timeout

        while True:
            if not self.runtime.is_running(container_id):
                return False, "container exited"

            if session.host_port is None:
                session.host_port = self.runtime.port(container_id, f"{self.port}/tcp")
            if (
                session.host_port is not None
                and self.probe(self.host, session.host_port)
                and self._server_listening(container_id)
            ):
                logger.debug(
                    "Container %s ready on port %d",
                    container_id[:12],
                    session.host_port,
                )
                return True, ""

            if time.monotonic() >= deadline:
                reason = f"port {self.port} closed after {self.readiness_timeout}s"
                return False, reason
            time.sleep(self.poll_interval)

    def _server_listening(self, container_id: str) -> bool:
        try:
            result = self.runtime.exec(container_id, listener_check_command(self.port))
        except ContainerRuntimeError as e:
            logger.debug("Listener check in %s failed: %s", container_id[:12], e)
            return False
        return result.ok

    def _teardown(self, session: ContainerSession, container_id: str) -> None:
        session.transition(SessionState.TEARING_DOWN)

        errors: list[str] = []
        try:
            self.runtime.stop(container_id, timeout=self.stop_timeout)
        except ContainerRuntimeError as e:
            errors.append(f"stop: {e}")
        try:
            self.runtime.remove(container_id)
        except ContainerRuntimeError as e:
            errors.append(f"remove: {e}")

        if errors:
            session.teardown_error = TeardownError(container_id, "; ".join(errors))
            logger.warning("%s", session.teardown_error)

        session.transition(SessionState.CLOSED)


__all__ = [
    "ContainerLifecycle",
    "ContainerSession",
    "ContainerStartError",
    "DATA_DIR",
    "ReadinessTimeout",
    "SERVER_PORT",
    "TeardownError",
    "is_port_open",
    "listener_check_command",
]
