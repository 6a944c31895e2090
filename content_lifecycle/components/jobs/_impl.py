"""
JobTracker - Asynchronous bulk operations with per-item outcomes.

Key behaviors:
- submit() persists a pending job and returns at once
- Jobs run on a bounded thread pool; items of one job run in order
- Each item gets its own outcome; one failure never aborts the batch
- Transient item failures are retried a fixed number of times
- Terminal jobs are immutable; resubmission creates a new job id
- wait() only reads; a timeout never cancels server-side work
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from content_lifecycle.components.schedules import validate_scope
from content_lifecycle.components.transitions import TransitionEngine, TransitionOutput
from content_lifecycle.core.entities import BulkJob, BulkJobStatus, ItemOutcome, LocaleScope
from content_lifecycle.core.errors import (
    INTERNAL_ERROR,
    INVALID_JOB,
    JOB_NOT_FOUND,
    TRANSIENT_FAILURE,
    LifecycleError,
    TransientError,
    lifecycle_error,
)

from .models import BULK_JOB_KINDS
from .ports import BulkJobRepoPort, TimePort

logger = logging.getLogger(__name__)

# --- Configuration ---


@dataclass(frozen=True)
class JobsConfig:
    """Job tracker configuration from rules."""

    max_workers: int = 4
    item_retry_attempts: int = 3
    item_retry_backoff_seconds: float = 0.5
    wait_poll_interval_seconds: float = 0.1
    max_wait_seconds: float = 30.0


DEFAULT_CONFIG = JobsConfig()


# --- Validation ---


def normalize_params(
    kind: str,
    params: dict[str, Any],
    available_locales: Iterable[str] = (),
) -> tuple[dict[str, Any], list[LifecycleError]]:
    """Validate job params and return their stored form."""
    if kind == "bulk_stage_move":
        target = params.get("target_stage_id")
        if not isinstance(target, str) or not target:
            return {}, [lifecycle_error(INVALID_JOB, "bulk_stage_move requires target_stage_id")]
        return {"target_stage_id": target}, []

    try:
        scope = LocaleScope.parse(params.get("locale_scope"))
    except (TypeError, ValueError) as e:
        return {}, [lifecycle_error(INVALID_JOB, f"Invalid locale_scope: {e}")]
    scope_errors = validate_scope(scope, available_locales)
    if scope_errors:
        return {}, scope_errors

    normalized: dict[str, Any] = {"locale_scope": scope.to_wire()}
    if kind == "bulk_publish":
        normalized["non_localized"] = bool(params.get("non_localized", True))
    return normalized, []


def final_status(job: BulkJob) -> BulkJobStatus:
    succeeded, failed = job.succeeded_count, job.failed_count
    if failed == 0:
        return "succeeded"
    if succeeded == 0:
        return "failed"
    return "partially_failed"


def _outcome(output: TransitionOutput) -> ItemOutcome:
    if output.success:
        message = "" if output.changed else ("; ".join(output.warnings) or "No change")
        return ItemOutcome(status="succeeded", message=message)
    first = output.errors[0]
    return ItemOutcome(status="failed", code=first.code, message=first.message)


# --- JobTracker ---


class JobTracker:
    """
    Bulk job tracker.

    recover() treats jobs found in "running" as orphaned by a previous
    process, so one tracker instance must own a job store at a time.
    """

    def __init__(
        self,
        repo: BulkJobRepoPort,
        engine: TransitionEngine,
        time_port: TimePort | None = None,
        config: JobsConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._repo = repo
        self._engine = engine
        self._time = time_port
        self._config = config or DEFAULT_CONFIG
        self._sleep = sleep

        self._executor: ThreadPoolExecutor | None = None
        self._active: set[UUID] = set()
        self._active_lock = threading.Lock()

    def _now_utc(self) -> datetime:
        if self._time:
            return self._time.now_utc()
        return datetime.now(UTC)

    # --- Submission and inspection ---

    def submit(
        self,
        kind: str,
        item_ids: Sequence[str],
        params: dict[str, Any] | None = None,
    ) -> tuple[BulkJob | None, list[LifecycleError]]:
        """
        Accept a bulk job.

        Returns:
            Tuple of (job, errors). The job is pending when returned.
        """
        if kind not in BULK_JOB_KINDS:
            return None, [lifecycle_error(INVALID_JOB, f"Unknown job kind '{kind}'")]
        ids = list(dict.fromkeys(item_ids))
        if not ids:
            return None, [lifecycle_error(INVALID_JOB, "item_ids must not be empty")]
        normalized, errors = normalize_params(
            kind, params or {}, self._engine.available_locales()
        )
        if errors:
            return None, errors

        now = self._now_utc()
        job = BulkJob(
            kind=kind,  # type: ignore[arg-type]
            item_ids=ids,
            params=normalized,
            created_at=now,
            updated_at=now,
        )
        self._repo.insert(job)
        logger.info("Accepted %s job %s for %d item(s)", kind, job.id, len(ids))

        executor = self._executor
        if executor is not None:
            try:
                executor.submit(self._run_safely, job.id)
            except RuntimeError:
                # Pool shut down concurrently; the job stays pending for recover()
                logger.warning("Job %s left pending: workers shutting down", job.id)
        return job, []

    def get(self, job_id: UUID) -> tuple[BulkJob | None, list[LifecycleError]]:
        job = self._repo.get_by_id(job_id)
        if job is None:
            return None, [lifecycle_error(JOB_NOT_FOUND, f"Job {job_id} not found")]
        return job, []

    def list_jobs(self, statuses: Sequence[str] | None = None) -> list[BulkJob]:
        return self._repo.list_by_status(statuses)

    def wait(
        self, job_id: UUID, timeout: float
    ) -> tuple[BulkJob | None, list[LifecycleError]]:
        """
        Poll until the job is terminal or the timeout elapses.

        Returns the latest snapshot either way; the job is never mutated.
        """
        budget = max(0.0, min(timeout, self._config.max_wait_seconds))
        deadline = time.monotonic() + budget
        while True:
            job, errors = self.get(job_id)
            if job is None or job.is_terminal:
                return job, errors
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return job, []
            self._sleep(min(self._config.wait_poll_interval_seconds, remaining))

    # --- Execution ---

    def process(self, job_id: UUID) -> BulkJob | None:
        """
        Run a job to completion on the calling thread.

        Pending jobs are claimed; running jobs are resumed, skipping items
        that already have an outcome. Terminal jobs are returned untouched.
        """
        with self._active_lock:
            if job_id in self._active:
                return self._repo.get_by_id(job_id)
            self._active.add(job_id)
        try:
            job = self._repo.claim_pending(job_id, self._now_utc())
            if job is None:
                job = self._repo.get_by_id(job_id)
                if job is None or job.status != "running":
                    return job
                logger.info("Resuming job %s (%d item(s) done)", job.id, len(job.per_item_results))
            return self._execute(job)
        finally:
            with self._active_lock:
                self._active.discard(job_id)

    def drain(self) -> list[BulkJob]:
        """Synchronously process every pending or running job."""
        processed: list[BulkJob] = []
        for job in self._repo.list_by_status(["pending", "running"]):
            result = self.process(job.id)
            if result is not None:
                processed.append(result)
        return processed

    def recover(self) -> list[UUID]:
        """Hand unfinished jobs to the worker pool. Returns their ids."""
        if self._executor is None:
            return []
        job_ids = [j.id for j in self._repo.list_by_status(["pending", "running"])]
        for job_id in job_ids:
            self._executor.submit(self._run_safely, job_id)
        if job_ids:
            logger.info("Recovered %d unfinished job(s)", len(job_ids))
        return job_ids

    # --- Worker pool ---

    def start(self) -> None:
        if self._executor is not None:
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self._config.max_workers,
            thread_name_prefix="bulk-job",
        )
        logger.info("Job workers started (max_workers=%d)", self._config.max_workers)
        self.recover()

    def stop(self) -> None:
        """Stop accepting work; queued jobs stay pending for the next start."""
        if self._executor is None:
            return
        executor, self._executor = self._executor, None
        executor.shutdown(wait=True, cancel_futures=True)
        logger.info("Job workers stopped")

    @property
    def is_running(self) -> bool:
        return self._executor is not None

    # --- Internals ---

    def _run_safely(self, job_id: UUID) -> None:
        try:
            self.process(job_id)
        except Exception:
            # Job stays running in the store and is resumed by recover()
            logger.exception("Job %s worker crashed", job_id)

    def _execute(self, job: BulkJob) -> BulkJob:
        for item_id in job.item_ids:
            if item_id in job.per_item_results:
                continue
            job.per_item_results[item_id] = self._process_item(job, item_id)
            job.updated_at = self._now_utc()
            self._repo.update(job)

        now = self._now_utc()
        job.status = final_status(job)
        job.completed_at = now
        job.updated_at = now
        self._repo.update(job)
        logger.info(
            "Job %s %s: %d succeeded, %d failed",
            job.id,
            job.status,
            job.succeeded_count,
            job.failed_count,
        )
        return job

    def _process_item(self, job: BulkJob, item_id: str) -> ItemOutcome:
        attempts = self._config.item_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return _outcome(self._apply(job, item_id))
            except TransientError as e:
                if attempt >= attempts:
                    logger.warning("Job %s item %s gave up: %s", job.id, item_id, e)
                    return ItemOutcome(status="failed", code=TRANSIENT_FAILURE, message=str(e))
                logger.info(
                    "Job %s item %s attempt %d failed (%s); retrying", job.id, item_id, attempt, e
                )
                self._sleep(self._config.item_retry_backoff_seconds)
            except Exception as e:
                logger.exception("Job %s item %s failed", job.id, item_id)
                return ItemOutcome(status="failed", code=INTERNAL_ERROR, message=str(e))
        return ItemOutcome(status="failed", code=TRANSIENT_FAILURE, message="Retries exhausted")

    def _apply(self, job: BulkJob, item_id: str) -> TransitionOutput:
        if job.kind == "bulk_stage_move":
            return self._engine.move_stage(item_id, job.params["target_stage_id"])
        scope = LocaleScope.parse(job.params.get("locale_scope"))
        if job.kind == "bulk_publish":
            return self._engine.apply_publish(
                item_id, scope, bool(job.params.get("non_localized", True))
            )
        return self._engine.apply_unpublish(item_id, scope)
