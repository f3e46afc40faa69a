"""Build orchestration module.

This module handles:
- Running per-target jobs concurrently with isolated logs
- Composing and running docker build/push/manifest commands
- Build, test, and publish actions over build targets
"""

from firebird_images.builds.orchestrator import (
    Job,
    JobContext,
    JobFailure,
    JobResult,
    OrchestratorError,
    RunSummary,
    run_jobs,
)

__all__ = [
    "Job",
    "JobContext",
    "JobFailure",
    "JobResult",
    "OrchestratorError",
    "RunSummary",
    "run_jobs",
]

# Lazy imports for submodules to avoid circular imports
# Access via firebird_images.builds.service, etc.
