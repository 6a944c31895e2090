"""
Workflow API Routes.

Workflow CRUD, model assignment and the dangling-stage sweep.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status

from content_lifecycle.api.deps import get_workflow_store
from content_lifecycle.api.schemas import (
    AssignWorkflowRequest,
    CreateWorkflowRequest,
    DanglingStageModel,
    PatchWorkflowRequest,
    UpdateWorkflowResponse,
    WorkflowResponse,
    raise_for_errors,
    workflow_to_response,
)
from content_lifecycle.components.workflows import WorkflowPatch, WorkflowStore

router = APIRouter()


@router.post("/workflows", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
def create_workflow(
    request: CreateWorkflowRequest,
    store: WorkflowStore = Depends(get_workflow_store),
) -> Any:
    workflow, errors = store.create_workflow(
        request.name, request.api_key, [s.to_entity() for s in request.stages]
    )
    raise_for_errors(errors)
    assert workflow is not None
    return workflow_to_response(workflow)


@router.get("/workflows", response_model=list[WorkflowResponse])
def list_workflows(store: WorkflowStore = Depends(get_workflow_store)) -> Any:
    return [workflow_to_response(w) for w in store.list_workflows()]


@router.post("/workflows/reconcile")
def reconcile_stages(store: WorkflowStore = Depends(get_workflow_store)) -> dict[str, Any]:
    """Clear stage references left dangling by workflow or stage deletion."""
    cleared = store.reconcile_dangling()
    return {"cleared": cleared, "count": len(cleared)}


@router.get("/workflows/{workflow_id}", response_model=WorkflowResponse)
def get_workflow(
    workflow_id: UUID,
    store: WorkflowStore = Depends(get_workflow_store),
) -> Any:
    workflow, errors = store.get_workflow(workflow_id)
    raise_for_errors(errors)
    assert workflow is not None
    return workflow_to_response(workflow)


@router.patch("/workflows/{workflow_id}", response_model=UpdateWorkflowResponse)
def update_workflow(
    workflow_id: UUID,
    request: PatchWorkflowRequest,
    store: WorkflowStore = Depends(get_workflow_store),
) -> Any:
    """
    Patch a workflow.

    Removing a stage that items still occupy succeeds; those stages are
    listed under warnings.
    """
    patch = WorkflowPatch(
        name=request.name,
        api_key=request.api_key,
        stages=tuple(s.to_entity() for s in request.stages) if request.stages is not None else None,
    )
    workflow, warnings, errors = store.update_workflow(workflow_id, patch)
    raise_for_errors(errors)
    assert workflow is not None
    return UpdateWorkflowResponse(
        workflow=workflow_to_response(workflow),
        warnings=[
            DanglingStageModel(stage_id=w.stage_id, item_ids=list(w.item_ids), message=w.message)
            for w in warnings
        ],
    )


@router.delete("/workflows/{workflow_id}")
def delete_workflow(
    workflow_id: UUID,
    store: WorkflowStore = Depends(get_workflow_store),
) -> dict[str, Any]:
    models, errors = store.delete_workflow(workflow_id)
    raise_for_errors(errors)
    return {"deleted": True, "workflow_id": str(workflow_id), "unassigned_models": models}


@router.put("/models/{model_id}/workflow")
def assign_workflow(
    model_id: str,
    request: AssignWorkflowRequest,
    store: WorkflowStore = Depends(get_workflow_store),
) -> dict[str, Any]:
    """Assign a workflow to a model, or clear it with workflow_id null."""
    _, errors = store.assign_to_model(model_id, request.workflow_id)
    raise_for_errors(errors)
    return {
        "model_id": model_id,
        "workflow_id": str(request.workflow_id) if request.workflow_id else None,
    }
