"""Image build and publish command runner.

This module handles:
- Composing `docker build` commands per target and architecture
- Composing push and multi-arch manifest commands for publishing
- Executing commands with output appended to a job log file
- Enforcing command timeouts
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from firebird_images.matrix.models import BuildTarget

logger = logging.getLogger(__name__)

IMAGE_DESCRIPTION = "Firebird Database Server"
IMAGE_SOURCE = "https://github.com/FirebirdSQL/firebird-docker"
IMAGE_LICENSES = "IPL-1.0 OR IDPL-1.0"


class CommandExecutionError(Exception):
    """Raised when a command cannot be executed or times out."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "command_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


@dataclass
class CommandResult:
    """Result of a logged command execution.

    Attributes:
        success: Whether the command exited with code 0.
        exit_code: Process exit code.
        command: The command that was executed.
        started_at: Start time.
        finished_at: Finish time.
    """

    success: bool
    exit_code: int
    command: str
    started_at: datetime
    finished_at: datetime


def image_reference(image_name: str, tag: str, architecture: str | None = None) -> str:
    """Return '<image>:<tag>' or the per-architecture '<image>:<tag>-<arch>'."""
    if architecture is None:
        return f"{image_name}:{tag}"
    return f"{image_name}:{tag}-{architecture}"


def build_context_dir(generated_dir: Path, target: BuildTarget) -> Path:
    """Return the generated Dockerfile directory of a target."""
    return generated_dir / str(target.version) / target.variant


def compose_labels(target: BuildTarget) -> dict[str, str]:
    """Return the OCI labels applied to every image of a target."""
    return {
        "org.opencontainers.image.title": f"Firebird {target.version}",
        "org.opencontainers.image.description": (
            f"{IMAGE_DESCRIPTION} {target.version} on {target.variant}"
        ),
        "org.opencontainers.image.version": str(target.version),
        "org.opencontainers.image.source": IMAGE_SOURCE,
        "org.opencontainers.image.licenses": IMAGE_LICENSES,
    }


def compose_build_command(
    target: BuildTarget,
    architecture: str,
    image_name: str,
    context_dir: Path,
    verbose: bool = False,
) -> list[str]:
    """Compose the `docker build` command for one architecture of a target.

    Args:
        target: Build target.
        architecture: Architecture to build (must have a descriptor).
        image_name: Image repository name.
        context_dir: Build context containing the Dockerfile.
        verbose: Use plain progress output.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    if architecture not in target.asset.descriptors:
        raise ValueError(f"{target.label} has no {architecture} download")

    cmd = ["docker", "build", "--platform", f"linux/{architecture}"]
    if verbose:
        cmd.append("--progress=plain")

    # The generated Dockerfile selects the arm64 tarball when this is set
    if architecture == "arm64":
        cmd.extend(["--build-arg", "ARCH_ARM64=1"])

    for key, value in compose_labels(target).items():
        cmd.extend(["--label", f"{key}={value}"])

    for tag in target.tags:
        cmd.extend(["--tag", image_reference(image_name, tag, architecture)])

    cmd.append(str(context_dir))
    return cmd


def compose_push_commands(target: BuildTarget, image_name: str) -> list[list[str]]:
    """Compose `docker push` commands for every per-architecture image."""
    return [
        ["docker", "push", image_reference(image_name, tag, arch)]
        for arch in target.asset.architectures
        for tag in target.tags
    ]


def compose_manifest_commands(
    target: BuildTarget, image_name: str
) -> list[list[str]]:
    """Compose multi-arch manifest commands joining per-architecture images."""
    commands: list[list[str]] = []
    for tag in target.tags:
        manifest = image_reference(image_name, tag)
        commands.append(
            [
                "docker",
                "manifest",
                "create",
                "--amend",
                manifest,
                *(
                    image_reference(image_name, tag, arch)
                    for arch in target.asset.architectures
                ),
            ]
        )
        commands.append(["docker", "manifest", "push", manifest])
    return commands


def run_logged(
    cmd: list[str],
    log_path: Path,
    cwd: Path | None = None,
    timeout: int | None = None,
    env_override: dict[str, str] | None = None,
) -> CommandResult:
    """Execute a command, appending its output to a log file.

    Args:
        cmd: Command to run.
        log_path: Log file; output is appended.
        cwd: Working directory.
        timeout: Timeout in seconds (None = no timeout).
        env_override: Optional environment variable overrides.

    Returns:
        CommandResult with execution details.

    Raises:
        CommandExecutionError: If the command cannot start or times out.
    """
    cmd_str = shlex.join(cmd)
    logger.debug("Executing: %s", cmd_str)

    started_at = datetime.now(timezone.utc)

    env: dict[str, str] | None = None
    if env_override:
        env = dict(os.environ)
        env.update(env_override)

    try:
        with log_path.open("a", encoding="utf-8") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write("# " + "=" * 70 + "\n")
            log_file.flush()

            result = subprocess.run(
                cmd,
                cwd=cwd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                env=env,
                check=False,
            )
            exit_code = result.returncode

    except subprocess.TimeoutExpired as e:
        with log_path.open("a", encoding="utf-8") as log_file:
            log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
        raise CommandExecutionError(
            f"Command timed out after {timeout} seconds: {cmd_str}",
            exit_code=-1,
            code="timeout",
        ) from e

    except OSError as e:
        raise CommandExecutionError(
            f"Failed to execute {cmd[0]}: {e}",
            code="execution_error",
        ) from e

    finished_at = datetime.now(timezone.utc)

    with log_path.open("a", encoding="utf-8") as log_file:
        duration = (finished_at - started_at).total_seconds()
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {exit_code}\n")
        log_file.write(f"# Duration: {duration:.1f}s\n\n")

    return CommandResult(
        success=exit_code == 0,
        exit_code=exit_code,
        command=cmd_str,
        started_at=started_at,
        finished_at=finished_at,
    )


__all__ = [
    "CommandExecutionError",
    "CommandResult",
    "build_context_dir",
    "compose_build_command",
    "compose_labels",
    "compose_manifest_commands",
    "compose_push_commands",
    "image_reference",
    "run_logged",
]
