"""
Jobs component - Tracked bulk stage moves, publishes and unpublishes.

Invariants:
- Terminal jobs are immutable
- Every item of a finished job has exactly one outcome
- succeeded = all items succeeded, failed = none, else partially_failed
"""

from __future__ import annotations

from content_lifecycle.components.transitions import TransitionEngine
from content_lifecycle.rules.models import JobsRules

from ._impl import JobsConfig, JobTracker
from .models import JobOutput, SubmitJobInput, WaitJobInput
from .ports import BulkJobRepoPort, TimePort


def build_config(rules: JobsRules | None) -> JobsConfig:
    """Build tracker config from the jobs rules section."""
    if rules is None:
        return JobsConfig()
    return JobsConfig(
        max_workers=rules.max_workers,
        item_retry_attempts=rules.item_retry_attempts,
        item_retry_backoff_seconds=rules.item_retry_backoff_seconds,
        wait_poll_interval_seconds=rules.wait_poll_interval_seconds,
        max_wait_seconds=rules.max_wait_seconds,
    )


# --- Component Entry Points ---


def run_submit(
    inp: SubmitJobInput,
    *,
    tracker: JobTracker,
) -> JobOutput:
    """
    Submit a bulk job.

    Returns:
        JobOutput with the pending job or INVALID_JOB errors.
    """
    job, errors = tracker.submit(inp.kind, inp.item_ids, inp.params)
    return JobOutput(job=job, errors=errors, success=len(errors) == 0)


def run_wait(
    inp: WaitJobInput,
    *,
    tracker: JobTracker,
) -> JobOutput:
    """Get a job, long-polling up to the timeout for a terminal status."""
    if inp.timeout_seconds > 0:
        job, errors = tracker.wait(inp.job_id, inp.timeout_seconds)
    else:
        job, errors = tracker.get(inp.job_id)
    return JobOutput(job=job, errors=errors, success=len(errors) == 0)


def create_tracker(
    repo: BulkJobRepoPort,
    engine: TransitionEngine,
    time_port: TimePort | None = None,
    rules: JobsRules | None = None,
) -> JobTracker:
    return JobTracker(repo=repo, engine=engine, time_port=time_port, config=build_config(rules))
