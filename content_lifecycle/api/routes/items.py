"""
Item API Routes.

Manual transitions (stage move, publish, unpublish) and per-item views.
Manual calls take the same per-item lock as the dispatcher and job
workers, so they never interleave with a firing on the same item.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from content_lifecycle.api.deps import get_engine, get_schedule_store, get_workflow_store
from content_lifecycle.api.schemas import (
    ItemStageResponse,
    MoveStageRequest,
    PublishNowRequest,
    ScheduleResponse,
    StageModel,
    TransitionResponse,
    UnpublishNowRequest,
    parse_scope,
    raise_for_errors,
    schedule_to_response,
    transient_as_503,
)
from content_lifecycle.components.schedules import ScheduleStore
from content_lifecycle.components.transitions import TransitionEngine, TransitionOutput
from content_lifecycle.components.workflows import WorkflowStore
from content_lifecycle.core.entities import Stage

router = APIRouter()


def _stage(stage: Stage | None) -> StageModel | None:
    return StageModel(**stage.model_dump()) if stage else None


def _transition_response(item_id: str, output: TransitionOutput) -> TransitionResponse:
    raise_for_errors(output.errors)
    return TransitionResponse(
        item_id=item_id,
        changed=output.changed,
        warnings=output.warnings,
        stage=_stage(output.stage),
    )


@router.post("/items/{item_id}/stage", response_model=TransitionResponse)
def move_stage(
    item_id: str,
    request: MoveStageRequest,
    engine: TransitionEngine = Depends(get_engine),
) -> Any:
    """Move an item to a stage. 422 with the validator's reason on rejection."""
    with transient_as_503():
        output = engine.move_stage(item_id, request.target_stage_id)
    return _transition_response(item_id, output)


@router.get("/items/{item_id}/stage", response_model=ItemStageResponse)
def get_stage(
    item_id: str,
    store: WorkflowStore = Depends(get_workflow_store),
) -> Any:
    """Current stage; null when unassigned or dangling."""
    return ItemStageResponse(item_id=item_id, stage=_stage(store.get_current_stage(item_id)))


@router.post("/items/{item_id}/publish", response_model=TransitionResponse)
def publish_now(
    item_id: str,
    request: PublishNowRequest,
    engine: TransitionEngine = Depends(get_engine),
) -> Any:
    with transient_as_503():
        output = engine.apply_publish(
            item_id, parse_scope(request.locale_scope), request.non_localized
        )
    return _transition_response(item_id, output)


@router.post("/items/{item_id}/unpublish", response_model=TransitionResponse)
def unpublish_now(
    item_id: str,
    request: UnpublishNowRequest,
    engine: TransitionEngine = Depends(get_engine),
) -> Any:
    with transient_as_503():
        output = engine.apply_unpublish(item_id, parse_scope(request.locale_scope))
    return _transition_response(item_id, output)


@router.get("/items/{item_id}/schedules", response_model=list[ScheduleResponse])
def list_item_schedules(
    item_id: str,
    store: ScheduleStore = Depends(get_schedule_store),
) -> Any:
    return [schedule_to_response(r) for r in store.list_for_item(item_id)]
