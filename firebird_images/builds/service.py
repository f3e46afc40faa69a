"""Build service module.

This module provides the high-level per-target actions:
- make_build_action(): build one image per available architecture
- make_publish_action(): push images and multi-arch manifests
- make_test_action(): run named checks against the built image
- run_action(): fan an action out over build targets
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from firebird_images.builds.orchestrator import (
    JobContext,
    JobFailure,
    JobFn,
    RunSummary,
    plan_jobs,
    run_jobs,
)
from firebird_images.builds.runner import (
    CommandExecutionError,
    build_context_dir,
    compose_build_command,
    compose_manifest_commands,
    compose_push_commands,
    image_reference,
    run_logged,
)
from firebird_images.config import get_settings
from firebird_images.containers.runtime import ContainerRuntimeError, DockerRuntime
from firebird_images.containers.session import (
    ContainerLifecycle,
    ContainerSession,
    PortProbe,
    is_port_open,
)
from firebird_images.types import JobAction

if TYPE_CHECKING:
    from firebird_images.checks.suite import Check
    from firebird_images.config import Settings
    from firebird_images.matrix.models import BuildTarget

logger = logging.getLogger(__name__)


def _run_step(context: JobContext, cmd: list[str], timeout: int | None = None) -> None:
    """Run one command of a job, raising JobFailure if it fails."""
    try:
        result = run_logged(cmd, context.log_path, timeout=timeout)
    except CommandExecutionError as e:
        raise JobFailure(str(e), code=e.code) from e

    if not result.success:
        raise JobFailure(
            f"'{result.command}' exited with code {result.exit_code}",
            code="command_failed",
        )


def make_build_action(settings: Settings) -> JobFn:
    """Return an action building every architecture image of a target."""

    def build(context: JobContext) -> None:
        target = context.target
        context_dir = build_context_dir(settings.generated_dir, target)
        if not (context_dir / "Dockerfile").is_file():
            raise JobFailure(
                f"Build context not found: {context_dir}", code="missing_context"
            )

        for architecture in target.asset.architectures:
            context.log(f"Building {target.label} for {architecture}")
            cmd = compose_build_command(
                target,
                architecture,
                settings.image_name,
                context_dir,
                verbose=context.verbose,
            )
            _run_step(context, cmd, timeout=settings.build_timeout)

    return build


def make_publish_action(settings: Settings) -> JobFn:
    """Return an action pushing a target's images and manifests."""

    def publish(context: JobContext) -> None:
        target = context.target
        for cmd in compose_push_commands(target, settings.image_name):
            _run_step(context, cmd)
        for cmd in compose_manifest_commands(target, settings.image_name):
            _run_step(context, cmd)

    return publish


def _log_container_output(
    context: JobContext, runtime: DockerRuntime, container_id: str
) -> None:
    # Runs inside the verify cleanup; raising here would hide the check error
    try:
        output = runtime.logs(container_id)
    except ContainerRuntimeError as e:
        context.log(f"Container output unavailable: {e}")
        return
    context.log(f"Container output:\n{output}")


def make_test_action(
    settings: Settings,
    checks: Sequence[Check],
    runtime_factory: Callable[[], DockerRuntime] = DockerRuntime,
    probe: PortProbe = is_port_open,
) -> JobFn:
    """Return an action running checks against a target's image.

    Every check gets its own container. All checks run; the job fails
    listing the names of the checks that did not pass.
    """

    def test(context: JobContext) -> None:
        target = context.target
        architecture = settings.test_architecture
        if architecture not in target.asset.descriptors:
            raise JobFailure(
                f"{target.label} has no {architecture} image to test",
                code="architecture_unavailable",
            )

        runtime = runtime_factory()
        lifecycle = ContainerLifecycle(
            runtime,
            readiness_timeout=settings.readiness_timeout,
            poll_interval=settings.readiness_poll_interval,
            stop_timeout=settings.stop_timeout,
            probe=probe,
        )
        image = image_reference(settings.image_name, target.primary_tag, architecture)

        failures: list[str] = []
        for chk in checks:
            context.log(f"Check {chk.name}: {chk.description}")
            session = ContainerSession(image=image)

            def verify(container_id: str, chk: Check = chk) -> None:
                try:
                    chk.verify(runtime, container_id)
                finally:
                    if context.verbose:
                        _log_container_output(context, runtime, container_id)

            try:
                lifecycle.run(image, verify, env=chk.env, session=session)
            except (JobFailure, ContainerRuntimeError) as e:
                failures.append(chk.name)
                context.log(f"Check {chk.name} FAILED: {e}")
            else:
                context.log(f"Check {chk.name} passed")

            if session.teardown_error is not None:
                context.log(f"WARNING: {session.teardown_error}")

        if failures:
            raise JobFailure(
                f"{len(failures)} of {len(checks)} check(s) failed: "
                f"{', '.join(failures)}",
                code="checks_failed",
            )

    return test


def run_action(
    action: JobAction,
    targets: Sequence[BuildTarget],
    settings: Settings | None = None,
    verbose: bool = False,
    checks: Sequence[Check] | None = None,
    runtime_factory: Callable[[], DockerRuntime] = DockerRuntime,
    probe: PortProbe = is_port_open,
) -> RunSummary:
    """Run an action over all targets concurrently.

    Args:
        action: Action to run.
        targets: Targets to act upon.
        settings: Application settings.
        verbose: Verbosity flag passed to every job.
        checks: Checks for the test action (all registered checks if None).
        runtime_factory: Container runtime factory for the test action.
        probe: Readiness port probe for the test action.

    Returns:
        RunSummary of all jobs.

    Raises:
        OrchestratorError: If job logs cannot be prepared.
    """
    if settings is None:
        settings = get_settings()

    run: JobFn
    if action == JobAction.BUILD:
        run = make_build_action(settings)
    elif action == JobAction.PUBLISH:
        run = make_publish_action(settings)
    else:
        if checks is None:
            from firebird_images.checks.suite import select_checks

            checks = select_checks()
        run = make_test_action(
            settings, checks, runtime_factory=runtime_factory, probe=probe
        )

    jobs = plan_jobs(targets, action, run, settings.logs_dir)
    logger.info("Running %s for %d target(s)", action.value, len(jobs))
    return run_jobs(jobs, verbose=verbose, max_workers=settings.max_parallel_jobs)


__all__ = [
    "make_build_action",
    "make_publish_action",
    "make_test_action",
    "run_action",
]
