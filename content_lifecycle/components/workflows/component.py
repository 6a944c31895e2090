"""
Workflows component - Ordered approval stages assignable to content models.

Invariants:
- api_key unique across workflows
- Stage ids unique within a workflow; a workflow has at least one stage
- A model has at most one workflow
- A stage reference that no longer resolves reads as "no stage"
"""

from __future__ import annotations

from content_lifecycle.rules.models import WorkflowRules

from ._impl import WorkflowConfig, WorkflowStore
from .models import (
    AssignOutput,
    AssignWorkflowInput,
    CreateWorkflowInput,
    DeleteWorkflowInput,
    DeleteWorkflowOutput,
    UpdateWorkflowInput,
    WorkflowOutput,
)
from .ports import ContentRepositoryPort, TimePort, WorkflowRepoPort


def build_config(rules: WorkflowRules | None) -> WorkflowConfig:
    if rules is None:
        return WorkflowConfig()
    return WorkflowConfig(api_key_pattern=rules.api_key_pattern)


def _create_store(
    repo: WorkflowRepoPort,
    content: ContentRepositoryPort,
    time_port: TimePort | None,
    rules: WorkflowRules | None,
) -> WorkflowStore:
    return WorkflowStore(repo=repo, content=content, time_port=time_port, config=build_config(rules))


# --- Component Entry Points ---


def run_create(
    inp: CreateWorkflowInput,
    *,
    repo: WorkflowRepoPort,
    content: ContentRepositoryPort,
    time_port: TimePort | None = None,
    rules: WorkflowRules | None = None,
) -> WorkflowOutput:
    """
    Create a workflow.

    Returns:
        WorkflowOutput with the workflow or EMPTY_STAGES, DUPLICATE_STAGE_ID,
        INVALID_API_KEY or DUPLICATE_API_KEY errors.
    """
    store = _create_store(repo, content, time_port, rules)
    workflow, errors = store.create_workflow(inp.name, inp.api_key, inp.stages)
    return WorkflowOutput(workflow=workflow, errors=errors, success=len(errors) == 0)


def run_update(
    inp: UpdateWorkflowInput,
    *,
    repo: WorkflowRepoPort,
    content: ContentRepositoryPort,
    time_port: TimePort | None = None,
    rules: WorkflowRules | None = None,
) -> WorkflowOutput:
    """Patch a workflow; removed stages still in use come back as warnings."""
    store = _create_store(repo, content, time_port, rules)
    workflow, warnings, errors = store.update_workflow(inp.workflow_id, inp.patch)
    return WorkflowOutput(
        workflow=workflow, warnings=warnings, errors=errors, success=len(errors) == 0
    )


def run_delete(
    inp: DeleteWorkflowInput,
    *,
    repo: WorkflowRepoPort,
    content: ContentRepositoryPort,
) -> DeleteWorkflowOutput:
    store = _create_store(repo, content, None, None)
    models, errors = store.delete_workflow(inp.workflow_id)
    return DeleteWorkflowOutput(
        unassigned_models=tuple(models), errors=errors, success=len(errors) == 0
    )


def run_assign(
    inp: AssignWorkflowInput,
    *,
    repo: WorkflowRepoPort,
    content: ContentRepositoryPort,
) -> AssignOutput:
    store = _create_store(repo, content, None, None)
    ok, errors = store.assign_to_model(inp.model_id, inp.workflow_id)
    return AssignOutput(errors=errors, success=ok)
