"""
Workflows component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from content_lifecycle.core.entities import Stage, Workflow
from content_lifecycle.core.errors import LifecycleError

# --- Warnings ---


@dataclass(frozen=True)
class DanglingStageWarning:
    """A removed stage still referenced by items."""

    stage_id: str
    item_ids: tuple[str, ...]

    @property
    def message(self) -> str:
        return (
            f"Stage '{self.stage_id}' was removed while {len(self.item_ids)} item(s) "
            "still reference it; they now have no stage"
        )


# --- Input Models ---


@dataclass(frozen=True)
class CreateWorkflowInput:
    name: str
    api_key: str
    stages: tuple[Stage, ...]


@dataclass(frozen=True)
class WorkflowPatch:
    """Partial update. None leaves a field unchanged."""

    name: str | None = None
    api_key: str | None = None
    stages: tuple[Stage, ...] | None = None


@dataclass(frozen=True)
class UpdateWorkflowInput:
    workflow_id: UUID
    patch: WorkflowPatch


@dataclass(frozen=True)
class DeleteWorkflowInput:
    workflow_id: UUID


@dataclass(frozen=True)
class AssignWorkflowInput:
    model_id: str
    workflow_id: UUID | None


# --- Output Models ---


@dataclass(frozen=True)
class WorkflowOutput:
    """Output for create/update operations."""

    workflow: Workflow | None
    warnings: list[DanglingStageWarning] = field(default_factory=list)
    errors: list[LifecycleError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class DeleteWorkflowOutput:
    unassigned_models: tuple[str, ...]
    errors: list[LifecycleError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class AssignOutput:
    errors: list[LifecycleError] = field(default_factory=list)
    success: bool = True
