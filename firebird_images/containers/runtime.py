"""Container runtime wrapper.

Thin wrapper around the docker CLI used by test sessions. Every call is a
subprocess with list arguments (never shell=True) and a timeout.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Timeout for short runtime commands (seconds)
COMMAND_TIMEOUT = 120


class ContainerRuntimeError(Exception):
    """Raised when a container runtime command fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "runtime_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


@dataclass
class ExecResult:
    """Result of a command executed inside a container."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class DockerRuntime:
    """Run containers through the docker CLI.

    Args:
        executable: Runtime executable (docker or a compatible CLI).
        timeout: Timeout for each runtime command in seconds.
    """

    def __init__(self, executable: str = "docker", timeout: float = COMMAND_TIMEOUT):
        self.executable = executable
        self.timeout = timeout

    def _run(
        self,
        args: Sequence[str],
        input_text: str | None = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        cmd = [self.executable, *args]
        logger.debug("Running: %s", shlex.join(cmd))
        try:
            result = subprocess.run(
                cmd,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ContainerRuntimeError(
                f"'{shlex.join(cmd)}' timed out after {self.timeout}s",
                code="timeout",
            ) from e
        except OSError as e:
            raise ContainerRuntimeError(
                f"Failed to run {self.executable}: {e}",
                code="execution_error",
            ) from e

        if check and result.returncode != 0:
            raise ContainerRuntimeError(
                f"'{shlex.join(cmd)}' failed with exit code {result.returncode}: "
                f"{result.stderr.strip()}",
                exit_code=result.returncode,
            )
        return result

    def run_detached(
        self,
        image: str,
        env: Mapping[str, str] | None = None,
        tmpfs: Sequence[str] = (),
        publish: Sequence[str] = (),
    ) -> str:
        """Start a detached container and return its identifier."""
        args = ["run", "--detach"]
        for key, value in (env or {}).items():
            args.extend(["--env", f"{key}={value}"])
        for path in tmpfs:
            args.extend(["--tmpfs", path])
        for mapping in publish:
            args.extend(["--publish", mapping])
        args.append(image)

        result = self._run(args)
        container_id = result.stdout.strip()
        if not container_id:
            raise ContainerRuntimeError(f"No container id returned for {image}")
        return container_id

    def port(self, container_id: str, container_port: str) -> int | None:
        """Return the host port published for a container port, if any."""
        result = self._run(["port", container_id, container_port], check=False)
        if result.returncode != 0:
            return None
        for line in result.stdout.splitlines():
            # e.g. '127.0.0.1:49153' or '[::]:49153'
            _, _, port = line.strip().rpartition(":")
            if port.isdigit():
                return int(port)
        return None

    def is_running(self, container_id: str) -> bool:
        """Return True while the container process is running."""
        result = self._run(
            ["inspect", "--format", "{{.State.Running}}", container_id], check=False
        )
        return result.returncode == 0 and result.stdout.strip() == "true"

    def logs(self, container_id: str) -> str:
        """Return combined stdout/stderr output of a container."""
        result = self._run(["logs", container_id], check=False)
        return result.stdout + result.stderr

    def exec(
        self,
        container_id: str,
        command: Sequence[str],
        input_text: str | None = None,
    ) -> ExecResult:
        """Execute a command inside a running container."""
        args = ["exec"]
        if input_text is not None:
            args.append("--interactive")
        args.extend([container_id, *command])
        result = self._run(args, input_text=input_text, check=False)
        return ExecResult(
            exit_code=result.returncode, stdout=result.stdout, stderr=result.stderr
        )

    def stop(self, container_id: str, timeout: int) -> None:
        """Stop a container, killing it after the grace period."""
        self._run(["stop", "--time", str(timeout), container_id])

    def remove(self, container_id: str) -> None:
        """Force-remove a container and its anonymous volumes."""
        self._run(["rm", "--force", "--volumes", container_id])


__all__ = ["COMMAND_TIMEOUT", "ContainerRuntimeError", "DockerRuntime", "ExecResult"]
