"""Parallel job orchestrator.

This module handles:
- Planning one job per build target, each with its own log file
- Running all jobs concurrently on a thread pool
- Recording per-job success/failure without cancelling siblings
- Summarizing the run into an overall exit status

A failing job never stops other jobs. Only infrastructure problems found
before dispatch (unusable log destinations) abort the whole run.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from firebird_images.matrix.models import BuildTarget
from firebird_images.types import JobAction, JobStatus

logger = logging.getLogger(__name__)


class JobFailure(Exception):
    """Raised by a job action to report that the job failed."""

    def __init__(self, message: str, code: str = "job_failed") -> None:
        super().__init__(message)
        self.code = code


class OrchestratorError(Exception):
    """Raised when a run cannot start (e.g. log files cannot be created)."""

    def __init__(self, message: str, code: str = "orchestrator_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class JobContext:
    """Per-job state handed to a job action.

    Attributes:
        target: Build target of the job.
        log_path: Log file dedicated to this job.
        verbose: Whether the action should log extra detail.
    """

    target: BuildTarget
    log_path: Path
    verbose: bool = False

    def log(self, message: str) -> None:
        """Append a timestamped line to the job log."""
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(f"[{stamp}] {message}\n")


JobFn = Callable[[JobContext], None]


@dataclass
class Job:
    """A per-target action with a dedicated log destination."""

    target: BuildTarget
    action: JobAction
    run: JobFn
    log_path: Path

    @property
    def label(self) -> str:
        return self.target.label


@dataclass
class JobResult:
    """Outcome of a single job."""

    label: str
    action: JobAction
    status: JobStatus
    log_path: Path
    started_at: datetime
    finished_at: datetime
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class RunSummary:
    """Aggregated results of an orchestrator run, in job order."""

    results: list[JobResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[JobResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failed(self) -> list[JobResult]:
        return [r for r in self.results if not r.succeeded]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


def job_log_path(logs_dir: Path, action: JobAction, target: BuildTarget) -> Path:
    """Return the log file of a job: <logs_dir>/<action>/<label>.log."""
    return logs_dir / action.value / f"{target.label}.log"


def plan_jobs(
    targets: Sequence[BuildTarget],
    action: JobAction,
    run: JobFn,
    logs_dir: Path,
) -> list[Job]:
    """Create one job per target, all running the same action."""
    return [
        Job(
            target=target,
            action=action,
            run=run,
            log_path=job_log_path(logs_dir, action, target),
        )
        for target in targets
    ]


def prepare_logs(jobs: Sequence[Job]) -> None:
    """Create (truncate) every job log before anything runs.

    Raises:
        OrchestratorError: If two jobs share a log file or one cannot be
            created.
    """
    seen: set[Path] = set()
    for job in jobs:
        if job.log_path in seen:
            raise OrchestratorError(
                f"Log destination shared by several jobs: {job.log_path}",
                code="duplicate_log",
            )
        seen.add(job.log_path)

        try:
            job.log_path.parent.mkdir(parents=True, exist_ok=True)
            with job.log_path.open("w", encoding="utf-8") as f:
                f.write(f"# Job: {job.action.value} {job.label}\n")
                f.write(f"# Tags: {', '.join(job.target.tags)}\n\n")
        except OSError as e:
            raise OrchestratorError(
                f"Cannot create log file {job.log_path}: {e}",
                code="log_unavailable",
            ) from e


def _write_job_log(context: JobContext, message: str, trailer: str = "") -> None:
    # The job outcome is already decided; a log write must not change it
    try:
        context.log(message)
        if trailer:
            with context.log_path.open("a", encoding="utf-8") as f:
                f.write(trailer)
    except OSError as e:
        logger.warning("Cannot write job log %s: %s", context.log_path, e)


def execute_job(job: Job, verbose: bool = False) -> JobResult:
    """Run one job, converting any failure into a failed JobResult."""
    context = JobContext(target=job.target, log_path=job.log_path, verbose=verbose)
    started_at = datetime.now(timezone.utc)
    error: str | None = None

    logger.info("Starting %s %s", job.action.value, job.label)
    try:
        job.run(context)
    except JobFailure as e:
        error = str(e)
        _write_job_log(context, f"FAILED: {error}")
    except Exception as e:
        # Unexpected errors stay isolated to this job
        error = f"{type(e).__name__}: {e}"
        _write_job_log(
            context,
            f"FAILED with unexpected error: {error}",
            traceback.format_exc(),
        )
        logger.debug("Job %s raised", job.label, exc_info=True)

    finished_at = datetime.now(timezone.utc)
    status = JobStatus.FAILED if error is not None else JobStatus.SUCCEEDED
    if error is None:
        _write_job_log(context, "SUCCEEDED")
        logger.info("Finished %s %s", job.action.value, job.label)
    else:
        logger.error(
            "%s %s failed: %s (log: %s)",
            job.action.value,
            job.label,
            error,
            job.log_path,
        )

    return JobResult(
        label=job.label,
        action=job.action,
        status=status,
        log_path=job.log_path,
        started_at=started_at,
        finished_at=finished_at,
        error=error,
    )


def run_jobs(
    jobs: Sequence[Job],
    verbose: bool = False,
    max_workers: int | None = None,
) -> RunSummary:
    """Run all jobs concurrently and collect their results.

    Args:
        jobs: Jobs to run; they must not share mutable state.
        verbose: Verbosity flag passed to every job.
        max_workers: Optional cap on concurrent jobs (default: one
            worker per job).

    Returns:
        RunSummary with one result per job, in job order.

    Raises:
        OrchestratorError: If log files cannot be prepared. No job runs.
    """
    if not jobs:
        return RunSummary()

    prepare_logs(jobs)

    workers = min(max_workers or len(jobs), len(jobs))
    results: dict[int, JobResult] = {}

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="job") as executor:
        futures = {
            executor.submit(execute_job, job, verbose): index
            for index, job in enumerate(jobs)
        }
        for future in as_completed(futures):
            results[futures[future]] = future.result()

    summary = RunSummary(results=[results[i] for i in range(len(jobs))])
    logger.info(
        "%d job(s) succeeded, %d failed", len(summary.succeeded), len(summary.failed)
    )
    return summary


__all__ = [
    "Job",
    "JobContext",
    "JobFailure",
    "JobFn",
    "JobResult",
    "OrchestratorError",
    "RunSummary",
    "execute_job",
    "job_log_path",
    "plan_jobs",
    "prepare_logs",
    "run_jobs",
]
