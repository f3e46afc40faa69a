"""Tests for the parallel job orchestrator."""

import threading

import pytest

from firebird_images.builds.orchestrator import (
    Job,
    JobContext,
    JobFailure,
    OrchestratorError,
    RunSummary,
    execute_job,
    job_log_path,
    plan_jobs,
    run_jobs,
)
from firebird_images.types import JobAction, JobStatus


@pytest.fixture
def targets(make_target):
    """Four targets across two versions and two variants."""
    return [
        make_target("5.0.2", "bookworm", ("latest", "5", "5.0.2")),
        make_target("5.0.2", "jammy", ("jammy", "5-jammy", "5.0.2-jammy")),
        make_target("5.0.1", "bookworm", ("5.0.1",)),
        make_target("4.0.5", "bookworm", ("4", "4.0.5")),
    ]


def succeed(context: JobContext) -> None:
    context.log(f"building {context.target.label}")


class TestPlanJobs:
    """Tests for plan_jobs and job_log_path."""

    def test_one_job_per_target(self, targets, tmp_path):
        """Should plan a job per target with its own log file."""
        jobs = plan_jobs(targets, JobAction.BUILD, succeed, tmp_path)

        assert [j.label for j in jobs] == [t.label for t in targets]
        assert len({j.log_path for j in jobs}) == len(jobs)

    def test_log_layout(self, target, tmp_path):
        """Should place logs under <logs_dir>/<action>/<label>.log."""
        path = job_log_path(tmp_path, JobAction.TEST, target)

        assert path == tmp_path / "test" / "5.0.2-bookworm.log"


class TestExecuteJob:
    """Tests for execute_job function."""

    def _job(self, target, run, tmp_path):
        log_path = tmp_path / "job.log"
        log_path.write_text("")
        return Job(target=target, action=JobAction.BUILD, run=run, log_path=log_path)

    def test_success(self, target, tmp_path):
        """Should record a successful job."""
        result = execute_job(self._job(target, succeed, tmp_path))

        assert result.status == JobStatus.SUCCEEDED
        assert result.error is None
        assert result.duration >= 0
        assert "SUCCEEDED" in result.log_path.read_text()

    def test_job_failure(self, target, tmp_path):
        """Should record a JobFailure message."""

        def fail(context):
            raise JobFailure("docker build exited with 1")

        result = execute_job(self._job(target, fail, tmp_path))

        assert result.status == JobStatus.FAILED
        assert result.error == "docker build exited with 1"
        assert "FAILED: docker build exited with 1" in result.log_path.read_text()

    def test_unexpected_exception(self, target, tmp_path):
        """Should isolate unexpected errors and log the traceback."""

        def crash(context):
            raise KeyError("boom")

        result = execute_job(self._job(target, crash, tmp_path))

        assert result.status == JobStatus.FAILED
        assert result.error.startswith("KeyError")
        assert "Traceback" in result.log_path.read_text()

    def test_unwritable_log_keeps_result(self, target, tmp_path):
        """A log write error after the job ran should not lose its result."""

        def clobber_log(context):
            context.log_path.unlink()
            context.log_path.mkdir()
            raise JobFailure("docker build exited with 1")

        result = execute_job(self._job(target, clobber_log, tmp_path))

        assert result.status == JobStatus.FAILED
        assert result.error == "docker build exited with 1"

    def test_verbose_passed_to_context(self, target, tmp_path):
        """Should hand the verbosity flag to the action."""
        seen = []

        result = execute_job(
            self._job(target, lambda ctx: seen.append(ctx.verbose), tmp_path),
            verbose=True,
        )

        assert result.succeeded
        assert seen == [True]


class TestRunJobs:
    """Tests for run_jobs function."""

    def test_all_succeed(self, targets, tmp_path):
        """Should succeed with exit code 0 when every job succeeds."""
        summary = run_jobs(plan_jobs(targets, JobAction.BUILD, succeed, tmp_path))

        assert summary.ok is True
        assert summary.exit_code == 0
        assert len(summary.succeeded) == len(targets)

    def test_one_failure_does_not_cancel_others(self, targets, tmp_path):
        """N jobs with one failure give N-1 successes and exit code 1."""

        def run(context):
            if context.target.label == "5.0.1-bookworm":
                raise JobFailure("broken")
            succeed(context)

        summary = run_jobs(plan_jobs(targets, JobAction.BUILD, run, tmp_path))

        assert summary.exit_code == 1
        assert len(summary.succeeded) == len(targets) - 1
        assert [r.label for r in summary.failed] == ["5.0.1-bookworm"]
        for result in summary.results:
            assert result.log_path.exists()
            assert result.log_path.read_text().startswith("# Job: build")

    def test_results_in_job_order(self, targets, tmp_path):
        """Should return results in job order regardless of completion order."""
        release = threading.Event()

        def run(context):
            # The first job finishes last
            if context.target.label == targets[0].label:
                release.wait(timeout=5)
            elif context.target.label == targets[-1].label:
                release.set()

        summary = run_jobs(plan_jobs(targets, JobAction.BUILD, run, tmp_path))

        assert [r.label for r in summary.results] == [t.label for t in targets]

    def test_jobs_run_concurrently(self, targets, tmp_path):
        """Every job should be in flight at the same time."""
        barrier = threading.Barrier(len(targets), timeout=5)

        def run(context):
            barrier.wait()

        summary = run_jobs(plan_jobs(targets, JobAction.TEST, run, tmp_path))

        assert summary.ok

    def test_max_workers(self, targets, tmp_path):
        """Should honor a cap on concurrent jobs."""
        lock = threading.Lock()
        active = []
        peak = []

        def run(context):
            with lock:
                active.append(context.target.label)
                peak.append(len(active))
            threading.Event().wait(0.05)
            with lock:
                active.remove(context.target.label)

        summary = run_jobs(
            plan_jobs(targets, JobAction.BUILD, run, tmp_path), max_workers=1
        )

        assert summary.ok
        assert max(peak) == 1

    def test_logs_truncated_per_run(self, target, tmp_path):
        """A new run should replace the previous log content."""
        jobs = plan_jobs([target], JobAction.BUILD, succeed, tmp_path)
        run_jobs(jobs)
        run_jobs(jobs)

        assert jobs[0].log_path.read_text().count("# Job:") == 1

    def test_log_write_error_isolated(self, targets, tmp_path):
        """A job whose log vanishes still reports; the others are unaffected."""
        broken = targets[1].label

        def run(context):
            if context.target.label == broken:
                context.log_path.unlink()
                context.log_path.mkdir()
                # Logging now fails with an OSError
                context.log("unreachable")
            context.log("built")

        summary = run_jobs(plan_jobs(targets, JobAction.BUILD, run, tmp_path))

        assert len(summary.results) == len(targets)
        assert [r.label for r in summary.failed] == [broken]
        assert len(summary.succeeded) == len(targets) - 1
        assert summary.exit_code == 1

    def test_empty(self):
        """Should return an empty successful summary for no jobs."""
        summary = run_jobs([])

        assert summary == RunSummary()
        assert summary.exit_code == 0

    def test_unwritable_logs_abort_run(self, targets, tmp_path):
        """Should raise OrchestratorError before running any job."""
        blocker = tmp_path / "logs"
        blocker.write_text("not a directory")
        ran = []

        jobs = plan_jobs(targets, JobAction.BUILD, ran.append, blocker)

        with pytest.raises(OrchestratorError) as exc_info:
            run_jobs(jobs)

        assert exc_info.value.code == "log_unavailable"
        assert ran == []

    def test_duplicate_log_destination(self, target, tmp_path):
        """Should refuse jobs sharing a log file."""
        jobs = plan_jobs([target, target], JobAction.BUILD, succeed, tmp_path)

        with pytest.raises(OrchestratorError) as exc_info:
            run_jobs(jobs)

        assert exc_info.value.code == "duplicate_log"
