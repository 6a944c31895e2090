"""
WorkflowStore - Workflow definitions, model assignments and item stages.

Key behaviors:
- api_key is unique; uniqueness is enforced by the repository insert/update
- Removing a stage or deleting a workflow never blocks: items keep their
  stored stage reference, which then reads as "no stage"
- reconcile_dangling() rewrites such references to the explicit
  "no stage" value, one item at a time under that item's lock
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from content_lifecycle.core.entities import Stage, StageAssignment, Workflow
from content_lifecycle.core.errors import (
    DUPLICATE_API_KEY,
    DUPLICATE_STAGE_ID,
    EMPTY_STAGES,
    INVALID_API_KEY,
    WORKFLOW_NOT_FOUND,
    ItemBusyError,
    LifecycleError,
    lifecycle_error,
)

from .models import DanglingStageWarning, WorkflowPatch
from .ports import ContentRepositoryPort, ItemLockPort, TimePort, WorkflowRepoPort

logger = logging.getLogger(__name__)

DEFAULT_API_KEY_PATTERN = r"^[a-z][a-z0-9_]*$"


@dataclass(frozen=True)
class WorkflowConfig:
    api_key_pattern: str = DEFAULT_API_KEY_PATTERN


# --- Validation ---


def validate_stages(stages: Sequence[Stage]) -> list[LifecycleError]:
    if not stages:
        return [lifecycle_error(EMPTY_STAGES, "A workflow needs at least one stage")]
    seen: set[str] = set()
    dupes: list[str] = []
    for stage in stages:
        if stage.id in seen and stage.id not in dupes:
            dupes.append(stage.id)
        seen.add(stage.id)
    if dupes:
        return [
            lifecycle_error(DUPLICATE_STAGE_ID, f"Duplicate stage ids: {', '.join(dupes)}")
        ]
    return []


def validate_api_key(api_key: str, pattern: str = DEFAULT_API_KEY_PATTERN) -> list[LifecycleError]:
    if not re.fullmatch(pattern, api_key):
        return [
            lifecycle_error(
                INVALID_API_KEY,
                f"api_key '{api_key}' must match {pattern}",
            )
        ]
    return []


def _not_found(workflow_id: UUID) -> list[LifecycleError]:
    return [lifecycle_error(WORKFLOW_NOT_FOUND, f"Workflow {workflow_id} not found")]


def _duplicate_key(api_key: str) -> list[LifecycleError]:
    return [lifecycle_error(DUPLICATE_API_KEY, f"api_key '{api_key}' already exists")]


# --- WorkflowStore ---


class WorkflowStore:
    """Workflow store."""

    def __init__(
        self,
        repo: WorkflowRepoPort,
        content: ContentRepositoryPort,
        time_port: TimePort | None = None,
        config: WorkflowConfig | None = None,
        locks: ItemLockPort | None = None,
    ) -> None:
        self._repo = repo
        self._content = content
        self._time = time_port
        self._config = config or WorkflowConfig()
        self._locks = locks

    def _now_utc(self) -> datetime:
        if self._time:
            return self._time.now_utc()
        return datetime.now(UTC)

    # --- Workflow CRUD ---

    def create_workflow(
        self,
        name: str,
        api_key: str,
        stages: Sequence[Stage],
    ) -> tuple[Workflow | None, list[LifecycleError]]:
        errors = validate_stages(stages) + validate_api_key(api_key, self._config.api_key_pattern)
        if errors:
            return None, errors

        now = self._now_utc()
        workflow = Workflow(
            name=name,
            api_key=api_key,
            stages=list(stages),
            created_at=now,
            updated_at=now,
        )
        if not self._repo.insert(workflow):
            return None, _duplicate_key(api_key)

        logger.info("Created workflow %s (%s) with %d stages", api_key, workflow.id, len(stages))
        return workflow, []

    def update_workflow(
        self,
        workflow_id: UUID,
        patch: WorkflowPatch,
    ) -> tuple[Workflow | None, list[DanglingStageWarning], list[LifecycleError]]:
        """
        Apply a partial update.

        Removing stages still referenced by items is allowed; each such
        stage is reported as a DanglingStageWarning.

        Returns:
            Tuple of (workflow, warnings, errors).
        """
        current = self._repo.get_by_id(workflow_id)
        if current is None:
            return None, [], _not_found(workflow_id)

        errors: list[LifecycleError] = []
        if patch.stages is not None:
            errors += validate_stages(patch.stages)
        if patch.api_key is not None:
            errors += validate_api_key(patch.api_key, self._config.api_key_pattern)
        if errors:
            return None, [], errors

        updated = current.model_copy(
            update={
                "name": patch.name if patch.name is not None else current.name,
                "api_key": patch.api_key if patch.api_key is not None else current.api_key,
                "stages": list(patch.stages) if patch.stages is not None else current.stages,
                "updated_at": self._now_utc(),
            }
        )
        if not self._repo.update(updated):
            return None, [], _duplicate_key(updated.api_key)

        warnings = self._dangling_warnings(current, updated)
        for w in warnings:
            logger.warning("Workflow %s: %s", updated.api_key, w.message)
        return updated, warnings, []

    def delete_workflow(self, workflow_id: UUID) -> tuple[list[str], list[LifecycleError]]:
        """
        Delete a workflow and unassign it from every model.

        Returns:
            Tuple of (unassigned model ids, errors).
        """
        workflow = self._repo.get_by_id(workflow_id)
        if workflow is None:
            return [], _not_found(workflow_id)

        models = self._repo.unassign_workflow(workflow_id)
        self._repo.delete(workflow_id)
        logger.info(
            "Deleted workflow %s; unassigned from models %s", workflow.api_key, models or "[]"
        )
        return models, []

    def get_workflow(self, workflow_id: UUID) -> tuple[Workflow | None, list[LifecycleError]]:
        workflow = self._repo.get_by_id(workflow_id)
        if workflow is None:
            return None, _not_found(workflow_id)
        return workflow, []

    def list_workflows(self) -> list[Workflow]:
        return self._repo.list_all()

    # --- Model assignment ---

    def assign_to_model(
        self, model_id: str, workflow_id: UUID | None
    ) -> tuple[bool, list[LifecycleError]]:
        if workflow_id is not None and self._repo.get_by_id(workflow_id) is None:
            return False, _not_found(workflow_id)
        self._repo.assign_model(model_id, workflow_id)
        logger.info("Model %s workflow set to %s", model_id, workflow_id)
        return True, []

    def workflow_for_model(self, model_id: str) -> Workflow | None:
        workflow_id = self._repo.workflow_id_for_model(model_id)
        if workflow_id is None:
            return None
        return self._repo.get_by_id(workflow_id)

    # --- Item stages ---

    def get_current_stage(self, item_id: str) -> Stage | None:
        """Stage the item occupies, or None if unassigned or dangling."""
        assignment = self._repo.get_assignment(item_id)
        if assignment is None:
            return None
        return self._resolve(assignment)

    def set_item_stage(
        self, item_id: str, workflow_id: UUID | None, stage_id: str | None
    ) -> StageAssignment:
        assignment = StageAssignment(
            item_id=item_id,
            workflow_id=workflow_id,
            stage_id=stage_id,
            updated_at=self._now_utc(),
        )
        self._repo.set_assignment(assignment)
        return assignment

    def reconcile_dangling(self) -> list[str]:
        """
        Sweep stage references that no longer resolve and clear them.

        Each clear re-reads the assignment under the item's lock, so a
        stage move that lands during the sweep is kept. Items still busy
        after the lock timeout are left for the next sweep.

        Returns:
            Item ids whose assignment was cleared.
        """
        cleared: list[str] = []
        workflows: dict[UUID, Workflow | None] = {}
        for assignment in self._repo.list_assignments():
            if assignment.stage_id is None:
                continue
            if self._resolve(assignment, workflows) is not None:
                continue
            try:
                if self._clear_if_dangling(assignment.item_id):
                    cleared.append(assignment.item_id)
            except ItemBusyError:
                logger.warning("Skipped dangling stage of %s: item busy", assignment.item_id)

        if cleared:
            logger.info("Cleared %d dangling stage reference(s)", len(cleared))
        return cleared

    # --- Internals ---

    def _hold(self, item_id: str) -> AbstractContextManager[None]:
        if self._locks is None:
            return nullcontext()
        return self._locks.hold(item_id)

    def _clear_if_dangling(self, item_id: str) -> bool:
        with self._hold(item_id):
            current = self._repo.get_assignment(item_id)
            if current is None or current.stage_id is None:
                return False
            if self._resolve(current) is not None:
                return False
            wf_id = current.workflow_id
            live_wf = wf_id if wf_id is not None and self._repo.get_by_id(wf_id) else None
            self.set_item_stage(item_id, live_wf, None)
            return True

    def _resolve(
        self,
        assignment: StageAssignment,
        cache: dict[UUID, Workflow | None] | None = None,
    ) -> Stage | None:
        if assignment.stage_id is None or assignment.workflow_id is None:
            return None

        if cache is not None and assignment.workflow_id in cache:
            workflow = cache[assignment.workflow_id]
        else:
            workflow = self._repo.get_by_id(assignment.workflow_id)
            if cache is not None:
                cache[assignment.workflow_id] = workflow
        if workflow is None:
            return None

        # A stage from a workflow the model no longer uses does not count
        item = self._content.get_item_state(assignment.item_id)
        if item is not None and self._repo.workflow_id_for_model(item.model_id) != workflow.id:
            return None

        return workflow.stage(assignment.stage_id)

    def _dangling_warnings(
        self, before: Workflow, after: Workflow
    ) -> list[DanglingStageWarning]:
        removed = set(before.stage_ids) - set(after.stage_ids)
        if not removed:
            return []
        by_stage: dict[str, list[str]] = {}
        for assignment in self._repo.list_assignments(before.id):
            if assignment.stage_id in removed:
                by_stage.setdefault(assignment.stage_id, []).append(assignment.item_id)
        return [
            DanglingStageWarning(stage_id=stage_id, item_ids=tuple(sorted(items)))
            for stage_id, items in sorted(by_stage.items())
        ]
