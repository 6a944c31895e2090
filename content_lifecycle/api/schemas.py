"""
Request/response models and error mapping shared by the API routes.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from fastapi import HTTPException
from pydantic import BaseModel, Field

from content_lifecycle.core.entities import BulkJob, LocaleScope, ScheduleRecord, Stage, Workflow
from content_lifecycle.core.errors import (
    TRANSIENT_FAILURE,
    ErrorCategory,
    LifecycleError,
    TransientError,
)

# Wire form of a locale scope
LocaleScopeField = Literal["all"] | list[str]

STATUS_BY_CATEGORY: dict[ErrorCategory, int] = {
    "validation": 400,
    "not_found": 404,
    "conflict": 409,
    "rejection": 422,
    "fatal": 410,
    "transient": 503,
}


# --- Errors ---


def serialize_errors(errors: Sequence[LifecycleError]) -> list[dict[str, Any]]:
    """Serialize errors for JSON response."""
    return [{"code": e.code, "message": e.message, "item_id": e.item_id} for e in errors]


def raise_for_errors(errors: Sequence[LifecycleError]) -> None:
    """Raise an HTTPException for the first error's category; no-op when empty."""
    if not errors:
        return
    raise HTTPException(
        status_code=STATUS_BY_CATEGORY.get(errors[0].category, 400),
        detail={"errors": serialize_errors(errors)},
    )


@contextmanager
def transient_as_503() -> Iterator[None]:
    """Report store or lock unavailability as 503 instead of a server error."""
    try:
        yield
    except TransientError as e:
        raise HTTPException(
            status_code=503,
            detail={
                "errors": [
                    {
                        "code": TRANSIENT_FAILURE,
                        "message": str(e),
                        "item_id": getattr(e, "item_id", None),
                    }
                ]
            },
        ) from e


def parse_scope(value: LocaleScopeField) -> LocaleScope:
    return LocaleScope.parse(value)


# --- Schedules ---


class SchedulePublishRequest(BaseModel):
    item_id: str
    fire_at: datetime = Field(..., description="ISO-8601 UTC fire time")
    locale_scope: LocaleScopeField = "all"
    non_localized: bool = True


class ScheduleUnpublishRequest(BaseModel):
    item_id: str
    fire_at: datetime = Field(..., description="ISO-8601 UTC fire time")
    locale_scope: LocaleScopeField = "all"


class ScheduleResponse(BaseModel):
    id: UUID
    item_id: str
    kind: str
    fire_at: datetime
    locale_scope: LocaleScopeField
    non_localized: bool
    status: str
    attempts: int
    created_at: datetime
    updated_at: datetime
    next_attempt_at: datetime | None = None
    claimed_by: str | None = None
    last_error: str | None = None


def schedule_to_response(record: ScheduleRecord) -> ScheduleResponse:
    return ScheduleResponse(
        id=record.id,
        item_id=record.item_id,
        kind=record.kind,
        fire_at=record.fire_at,
        locale_scope=record.locale_scope.to_wire(),
        non_localized=record.non_localized,
        status=record.status,
        attempts=record.attempts,
        created_at=record.created_at,
        updated_at=record.updated_at,
        next_attempt_at=record.next_attempt_at,
        claimed_by=record.claimed_by,
        last_error=record.last_error,
    )


class CalendarEvent(BaseModel):
    """A schedule as a calendar event."""

    id: UUID
    item_id: str
    title: str
    start: datetime
    kind: str
    status: str


class CalendarResponse(BaseModel):
    events: list[CalendarEvent]
    start_date: datetime
    end_date: datetime
    total_count: int


# --- Workflows ---


class StageModel(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    color: str = "#9e9e9e"
    description: str | None = None

    def to_entity(self) -> Stage:
        return Stage(id=self.id, name=self.name, color=self.color, description=self.description)


class CreateWorkflowRequest(BaseModel):
    name: str = Field(..., min_length=1)
    api_key: str
    stages: list[StageModel]


class PatchWorkflowRequest(BaseModel):
    name: str | None = None
    api_key: str | None = None
    stages: list[StageModel] | None = None


class WorkflowResponse(BaseModel):
    id: UUID
    name: str
    api_key: str
    stages: list[StageModel]
    created_at: datetime
    updated_at: datetime


def workflow_to_response(workflow: Workflow) -> WorkflowResponse:
    return WorkflowResponse(
        id=workflow.id,
        name=workflow.name,
        api_key=workflow.api_key,
        stages=[StageModel(**s.model_dump()) for s in workflow.stages],
        created_at=workflow.created_at,
        updated_at=workflow.updated_at,
    )


class DanglingStageModel(BaseModel):
    stage_id: str
    item_ids: list[str]
    message: str


class UpdateWorkflowResponse(BaseModel):
    workflow: WorkflowResponse
    warnings: list[DanglingStageModel] = Field(default_factory=list)


class AssignWorkflowRequest(BaseModel):
    workflow_id: UUID | None = None


# --- Items ---


class MoveStageRequest(BaseModel):
    target_stage_id: str


class PublishNowRequest(BaseModel):
    locale_scope: LocaleScopeField = "all"
    non_localized: bool = True


class UnpublishNowRequest(BaseModel):
    locale_scope: LocaleScopeField = "all"


class TransitionResponse(BaseModel):
    item_id: str
    changed: bool
    warnings: list[str] = Field(default_factory=list)
    stage: StageModel | None = None


class ItemStageResponse(BaseModel):
    item_id: str
    stage: StageModel | None = None


# --- Jobs ---


class BulkStageMoveRequest(BaseModel):
    item_ids: list[str]
    target_stage_id: str


class BulkPublishRequest(BaseModel):
    item_ids: list[str]
    locale_scope: LocaleScopeField = "all"
    non_localized: bool = True


class BulkUnpublishRequest(BaseModel):
    item_ids: list[str]
    locale_scope: LocaleScopeField = "all"


class ItemOutcomeModel(BaseModel):
    status: str
    code: str | None = None
    message: str = ""


class JobResponse(BaseModel):
    id: UUID
    kind: str
    status: str
    item_ids: list[str]
    params: dict[str, Any]
    per_item_results: dict[str, ItemOutcomeModel]
    succeeded_count: int
    failed_count: int
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


def job_to_response(job: BulkJob) -> JobResponse:
    return JobResponse(
        id=job.id,
        kind=job.kind,
        status=job.status,
        item_ids=list(job.item_ids),
        params=dict(job.params),
        per_item_results={
            item_id: ItemOutcomeModel(**outcome.to_dict())
            for item_id, outcome in job.per_item_results.items()
        },
        succeeded_count=job.succeeded_count,
        failed_count=job.failed_count,
        created_at=job.created_at,
        updated_at=job.updated_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )
