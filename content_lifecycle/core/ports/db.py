"""
Repository Interfaces.

Protocol-based interfaces for the three stores the lifecycle core owns.
Implementations: SQLite (durable), in-memory (dev/test).

Every method documented as atomic must be a single compare-and-swap against
the store so that several dispatcher instances can share it safely.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol
from uuid import UUID

from content_lifecycle.core.entities import (
    BulkJob,
    ScheduleKind,
    ScheduleRecord,
    ScheduleStatus,
    StageAssignment,
    Workflow,
)

# Keyset cursor for due scans: (fire_at, item_id, kind) of the last record seen.
DueCursor = tuple[datetime, str, str]


# -----------------------------------------------------------------------------
# Schedules
# -----------------------------------------------------------------------------


class ScheduleRepoPort(Protocol):
    """
    Repository for scheduled publications and unpublishings.

    Invariants:
    - at most one pending record per (item_id, kind)
    - a record is deleted only by the worker holding its claim, or by
      cancellation while unclaimed
    """

    def get_by_id(self, schedule_id: UUID) -> ScheduleRecord | None:
        """Get record by ID."""
        ...

    def get_pending(self, item_id: str, kind: ScheduleKind) -> ScheduleRecord | None:
        """Get the pending record for an item and kind."""
        ...

    def insert_if_absent(self, record: ScheduleRecord) -> bool:
        """Atomically insert unless a pending record exists for (item_id, kind)."""
        ...

    def list_due(
        self,
        now_utc: datetime,
        after: DueCursor | None = None,
        limit: int = 100,
    ) -> list[ScheduleRecord]:
        """
        List due records ordered by (fire_at, item_id, kind).

        Due means pending, fire_at <= now, not backing off, and not claimed
        (or claim expired). Only records strictly after `after` are returned.
        """
        ...

    def claim(
        self,
        schedule_id: UUID,
        worker_id: str,
        now_utc: datetime,
        claimed_until: datetime,
    ) -> ScheduleRecord | None:
        """Atomically claim a record. Returns None if already claimed or gone."""
        ...

    def release(
        self,
        schedule_id: UUID,
        worker_id: str,
        attempts: int,
        next_attempt_at: datetime | None,
        error: str | None,
        now_utc: datetime,
    ) -> bool:
        """Release a claim after a retryable failure."""
        ...

    def complete(self, schedule_id: UUID, worker_id: str) -> bool:
        """Delete a record held by worker_id. The delete is the commit point."""
        ...

    def mark_fire_failed(
        self,
        schedule_id: UUID,
        worker_id: str,
        attempts: int,
        error: str,
        now_utc: datetime,
    ) -> bool:
        """Move a claimed record to fire_failed."""
        ...

    def delete_unclaimed(self, item_id: str, kind: ScheduleKind, now_utc: datetime) -> bool:
        """Atomically delete the pending record unless it is currently claimed."""
        ...

    def requeue_failed(self, schedule_id: UUID, now_utc: datetime) -> bool:
        """Move a fire_failed record back to pending with attempts reset."""
        ...

    def list_in_range(
        self,
        start_utc: datetime,
        end_utc: datetime,
        kinds: Sequence[str] | None = None,
    ) -> list[ScheduleRecord]:
        """List records with fire_at in range, ordered by fire_at."""
        ...

    def list_by_status(self, status: ScheduleStatus) -> list[ScheduleRecord]:
        """List records in a status."""
        ...

    def list_for_item(self, item_id: str) -> list[ScheduleRecord]:
        """List all records for an item."""
        ...


# -----------------------------------------------------------------------------
# Workflows
# -----------------------------------------------------------------------------


class WorkflowRepoPort(Protocol):
    """Repository for workflows, model assignments and item stages."""

    def get_by_id(self, workflow_id: UUID) -> Workflow | None:
        ...

    def get_by_api_key(self, api_key: str) -> Workflow | None:
        ...

    def list_all(self) -> list[Workflow]:
        ...

    def insert(self, workflow: Workflow) -> bool:
        """Insert. Returns False if the api_key is taken."""
        ...

    def update(self, workflow: Workflow) -> bool:
        """Update. Returns False if the new api_key is taken by another workflow."""
        ...

    def delete(self, workflow_id: UUID) -> None:
        ...

    def assign_model(self, model_id: str, workflow_id: UUID | None) -> None:
        """Assign (or clear with None) the workflow of a model."""
        ...

    def workflow_id_for_model(self, model_id: str) -> UUID | None:
        ...

    def unassign_workflow(self, workflow_id: UUID) -> list[str]:
        """Clear the workflow from every model using it. Returns model ids."""
        ...

    def get_assignment(self, item_id: str) -> StageAssignment | None:
        ...

    def set_assignment(self, assignment: StageAssignment) -> None:
        ...

    def list_assignments(self, workflow_id: UUID | None = None) -> list[StageAssignment]:
        ...


# -----------------------------------------------------------------------------
# Bulk Jobs
# -----------------------------------------------------------------------------


class BulkJobRepoPort(Protocol):
    """
    Repository for bulk jobs.

    Invariants:
    - terminal jobs are never overwritten
    """

    def get_by_id(self, job_id: UUID) -> BulkJob | None:
        ...

    def insert(self, job: BulkJob) -> BulkJob:
        ...

    def update(self, job: BulkJob) -> bool:
        """Persist job state. Returns False if the stored job is terminal."""
        ...

    def claim_pending(self, job_id: UUID, now_utc: datetime) -> BulkJob | None:
        """Atomically move a pending job to running."""
        ...

    def list_by_status(self, statuses: Sequence[str] | None = None) -> list[BulkJob]:
        ...
