"""
In-memory repositories for development and testing.

Implements the same ports as the SQLite adapter. Every operation runs under
one store lock, which makes the claim/insert primitives atomic across
threads. Records are copied on the way in and out so callers never share
mutable state with the store.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from content_lifecycle.core.entities import (
    TERMINAL_JOB_STATUSES,
    BulkJob,
    ItemState,
    LocaleScope,
    ScheduleKind,
    ScheduleRecord,
    ScheduleStatus,
    StageAssignment,
    Workflow,
)
from content_lifecycle.core.errors import ItemNotFoundError
from content_lifecycle.core.ports.db import DueCursor

# -----------------------------------------------------------------------------
# Schedules
# -----------------------------------------------------------------------------


class InMemoryScheduleRepo:
    """In-memory implementation of ScheduleRepoPort."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[UUID, ScheduleRecord] = {}

    def get_by_id(self, schedule_id: UUID) -> ScheduleRecord | None:
        with self._lock:
            record = self._records.get(schedule_id)
            return replace(record) if record else None

    def get_pending(self, item_id: str, kind: ScheduleKind) -> ScheduleRecord | None:
        with self._lock:
            record = self._find_pending(item_id, kind)
            return replace(record) if record else None

    def insert_if_absent(self, record: ScheduleRecord) -> bool:
        with self._lock:
            if self._find_pending(record.item_id, record.kind) is not None:
                return False
            self._records[record.id] = replace(record)
            return True

    def list_due(
        self,
        now_utc: datetime,
        after: DueCursor | None = None,
        limit: int = 100,
    ) -> list[ScheduleRecord]:
        with self._lock:
            due = [r for r in self._records.values() if r.is_due(now_utc)]
        due.sort(key=lambda r: r.sort_key)
        if after is not None:
            due = [r for r in due if r.sort_key > after]
        return [replace(r) for r in due[:limit]]

    def claim(
        self,
        schedule_id: UUID,
        worker_id: str,
        now_utc: datetime,
        claimed_until: datetime,
    ) -> ScheduleRecord | None:
        with self._lock:
            record = self._records.get(schedule_id)
            if record is None or record.status != "pending" or record.is_claimed(now_utc):
                return None
            record.claimed_by = worker_id
            record.claimed_until = claimed_until
            record.updated_at = now_utc
            return replace(record)

    def release(
        self,
        schedule_id: UUID,
        worker_id: str,
        attempts: int,
        next_attempt_at: datetime | None,
        error: str | None,
        now_utc: datetime,
    ) -> bool:
        with self._lock:
            record = self._records.get(schedule_id)
            if record is None or record.claimed_by != worker_id:
                return False
            record.claimed_by = None
            record.claimed_until = None
            record.attempts = attempts
            record.next_attempt_at = next_attempt_at
            record.last_error = error
            record.updated_at = now_utc
            return True

    def complete(self, schedule_id: UUID, worker_id: str) -> bool:
        with self._lock:
            record = self._records.get(schedule_id)
            if record is None or record.claimed_by != worker_id:
                return False
            del self._records[schedule_id]
            return True

    def mark_fire_failed(
        self,
        schedule_id: UUID,
        worker_id: str,
        attempts: int,
        error: str,
        now_utc: datetime,
    ) -> bool:
        with self._lock:
            record = self._records.get(schedule_id)
            if record is None or record.claimed_by != worker_id:
                return False
            record.status = "fire_failed"
            record.attempts = attempts
            record.last_error = error
            record.claimed_by = None
            record.claimed_until = None
            record.next_attempt_at = None
            record.updated_at = now_utc
            return True

    def delete_unclaimed(self, item_id: str, kind: ScheduleKind, now_utc: datetime) -> bool:
        with self._lock:
            record = self._find_pending(item_id, kind)
            if record is None or record.is_claimed(now_utc):
                return False
            del self._records[record.id]
            return True

    def requeue_failed(self, schedule_id: UUID, now_utc: datetime) -> bool:
        with self._lock:
            record = self._records.get(schedule_id)
            if record is None or record.status != "fire_failed":
                return False
            if self._find_pending(record.item_id, record.kind) is not None:
                return False
            record.status = "pending"
            record.attempts = 0
            record.next_attempt_at = None
            record.updated_at = now_utc
            return True

    def list_in_range(
        self,
        start_utc: datetime,
        end_utc: datetime,
        kinds: Sequence[str] | None = None,
    ) -> list[ScheduleRecord]:
        with self._lock:
            result = [
                replace(r)
                for r in self._records.values()
                if start_utc <= r.fire_at <= end_utc and (kinds is None or r.kind in kinds)
            ]
        result.sort(key=lambda r: r.sort_key)
        return result

    def list_by_status(self, status: ScheduleStatus) -> list[ScheduleRecord]:
        with self._lock:
            result = [replace(r) for r in self._records.values() if r.status == status]
        result.sort(key=lambda r: r.sort_key)
        return result

    def list_for_item(self, item_id: str) -> list[ScheduleRecord]:
        with self._lock:
            result = [replace(r) for r in self._records.values() if r.item_id == item_id]
        result.sort(key=lambda r: r.sort_key)
        return result

    def _find_pending(self, item_id: str, kind: str) -> ScheduleRecord | None:
        for record in self._records.values():
            if record.item_id == item_id and record.kind == kind and record.status == "pending":
                return record
        return None


# -----------------------------------------------------------------------------
# Workflows
# -----------------------------------------------------------------------------


class InMemoryWorkflowRepo:
    """In-memory implementation of WorkflowRepoPort."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._workflows: dict[UUID, Workflow] = {}
        self._model_workflows: dict[str, UUID] = {}
        self._assignments: dict[str, StageAssignment] = {}

    def get_by_id(self, workflow_id: UUID) -> Workflow | None:
        with self._lock:
            wf = self._workflows.get(workflow_id)
            return wf.model_copy(deep=True) if wf else None

    def get_by_api_key(self, api_key: str) -> Workflow | None:
        with self._lock:
            for wf in self._workflows.values():
                if wf.api_key == api_key:
                    return wf.model_copy(deep=True)
            return None

    def list_all(self) -> list[Workflow]:
        with self._lock:
            result = [wf.model_copy(deep=True) for wf in self._workflows.values()]
        result.sort(key=lambda w: w.created_at)
        return result

    def insert(self, workflow: Workflow) -> bool:
        with self._lock:
            if any(wf.api_key == workflow.api_key for wf in self._workflows.values()):
                return False
            self._workflows[workflow.id] = workflow.model_copy(deep=True)
            return True

    def update(self, workflow: Workflow) -> bool:
        with self._lock:
            for wf in self._workflows.values():
                if wf.api_key == workflow.api_key and wf.id != workflow.id:
                    return False
            self._workflows[workflow.id] = workflow.model_copy(deep=True)
            return True

    def delete(self, workflow_id: UUID) -> None:
        with self._lock:
            self._workflows.pop(workflow_id, None)

    def assign_model(self, model_id: str, workflow_id: UUID | None) -> None:
        with self._lock:
            if workflow_id is None:
                self._model_workflows.pop(model_id, None)
            else:
                self._model_workflows[model_id] = workflow_id

    def workflow_id_for_model(self, model_id: str) -> UUID | None:
        with self._lock:
            return self._model_workflows.get(model_id)

    def unassign_workflow(self, workflow_id: UUID) -> list[str]:
        with self._lock:
            models = [m for m, w in self._model_workflows.items() if w == workflow_id]
            for model_id in models:
                del self._model_workflows[model_id]
            return sorted(models)

    def get_assignment(self, item_id: str) -> StageAssignment | None:
        with self._lock:
            return self._assignments.get(item_id)

    def set_assignment(self, assignment: StageAssignment) -> None:
        with self._lock:
            self._assignments[assignment.item_id] = assignment

    def list_assignments(self, workflow_id: UUID | None = None) -> list[StageAssignment]:
        with self._lock:
            result = [
                a
                for a in self._assignments.values()
                if workflow_id is None or a.workflow_id == workflow_id
            ]
        result.sort(key=lambda a: a.item_id)
        return result


# -----------------------------------------------------------------------------
# Bulk Jobs
# -----------------------------------------------------------------------------


class InMemoryBulkJobRepo:
    """In-memory implementation of BulkJobRepoPort."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[UUID, BulkJob] = {}

    def get_by_id(self, job_id: UUID) -> BulkJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def insert(self, job: BulkJob) -> BulkJob:
        with self._lock:
            self._jobs[job.id] = copy.deepcopy(job)
            return job

    def update(self, job: BulkJob) -> bool:
        with self._lock:
            stored = self._jobs.get(job.id)
            if stored is not None and stored.status in TERMINAL_JOB_STATUSES:
                return False
            self._jobs[job.id] = copy.deepcopy(job)
            return True

    def claim_pending(self, job_id: UUID, now_utc: datetime) -> BulkJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != "pending":
                return None
            job.status = "running"
            job.started_at = job.started_at or now_utc
            job.updated_at = now_utc
            return copy.deepcopy(job)

    def list_by_status(self, statuses: Sequence[str] | None = None) -> list[BulkJob]:
        with self._lock:
            result = [
                copy.deepcopy(j)
                for j in self._jobs.values()
                if statuses is None or j.status in statuses
            ]
        result.sort(key=lambda j: j.created_at)
        return result


# -----------------------------------------------------------------------------
# Content Repository (dev stand-in for the external collaborator)
# -----------------------------------------------------------------------------


class InMemoryContentRepo:
    """In-memory implementation of ContentRepositoryPort."""

    def __init__(self, locales: Iterable[str] = ("en",)) -> None:
        self._lock = threading.Lock()
        self._locales = list(locales)
        self._items: dict[str, ItemState] = {}

    def add_item(
        self,
        item_id: str,
        model_id: str,
        published_locales: Iterable[str] = (),
        non_localized_published: bool = False,
    ) -> ItemState:
        published = set(published_locales)
        state = ItemState(
            item_id=item_id,
            model_id=model_id,
            publication={
                loc: ("published" if loc in published else "unpublished") for loc in self._locales
            },
            non_localized_published=non_localized_published,
        )
        with self._lock:
            self._items[item_id] = state
        return state.model_copy(deep=True)

    def remove_item(self, item_id: str) -> None:
        with self._lock:
            self._items.pop(item_id, None)

    def get_item_state(self, item_id: str) -> ItemState | None:
        with self._lock:
            state = self._items.get(item_id)
            return state.model_copy(deep=True) if state else None

    def set_publication_state(
        self,
        item_id: str,
        locale_scope: LocaleScope,
        published: bool,
        non_localized: bool = False,
    ) -> None:
        with self._lock:
            state = self._items.get(item_id)
            if state is None:
                raise ItemNotFoundError(item_id)
            target = "published" if published else "unpublished"
            publication = dict(state.publication)
            for loc in locale_scope.resolve(publication):
                publication[loc] = target
            updates: dict[str, object] = {"publication": publication}
            if non_localized:
                updates["non_localized_published"] = published
            self._items[item_id] = state.model_copy(update=updates)

    def item_exists(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._items

    def available_locales(self) -> list[str]:
        return list(self._locales)
