"""
Bulk Job API Routes.

Submission returns 202 with the pending job; GET long-polls with ?wait=.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from content_lifecycle.api.deps import get_job_tracker
from content_lifecycle.api.schemas import (
    BulkPublishRequest,
    BulkStageMoveRequest,
    BulkUnpublishRequest,
    JobResponse,
    job_to_response,
    raise_for_errors,
)
from content_lifecycle.components.jobs import JobTracker

router = APIRouter()


def _submit(tracker: JobTracker, kind: str, item_ids: list[str], params: dict[str, Any]) -> Any:
    job, errors = tracker.submit(kind, item_ids, params)
    raise_for_errors(errors)
    assert job is not None
    return job_to_response(job)


@router.post(
    "/jobs/bulk-stage-move", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED
)
def bulk_stage_move(
    request: BulkStageMoveRequest,
    tracker: JobTracker = Depends(get_job_tracker),
) -> Any:
    return _submit(
        tracker, "bulk_stage_move", request.item_ids, {"target_stage_id": request.target_stage_id}
    )


@router.post(
    "/jobs/bulk-publish", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED
)
def bulk_publish(
    request: BulkPublishRequest,
    tracker: JobTracker = Depends(get_job_tracker),
) -> Any:
    return _submit(
        tracker,
        "bulk_publish",
        request.item_ids,
        {"locale_scope": request.locale_scope, "non_localized": request.non_localized},
    )


@router.post(
    "/jobs/bulk-unpublish", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED
)
def bulk_unpublish(
    request: BulkUnpublishRequest,
    tracker: JobTracker = Depends(get_job_tracker),
) -> Any:
    return _submit(
        tracker, "bulk_unpublish", request.item_ids, {"locale_scope": request.locale_scope}
    )


@router.get("/jobs", response_model=list[JobResponse])
def list_jobs(
    status_filter: str | None = Query(default=None, alias="status"),
    tracker: JobTracker = Depends(get_job_tracker),
) -> Any:
    statuses = [status_filter] if status_filter else None
    return [job_to_response(j) for j in tracker.list_jobs(statuses)]


@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(
    job_id: UUID,
    wait: float = Query(default=0.0, ge=0.0, description="Seconds to long-poll"),
    tracker: JobTracker = Depends(get_job_tracker),
) -> Any:
    """
    Job status and per-item results.

    With wait > 0, blocks until the job is terminal or the wait elapses;
    the job keeps running after a timeout.
    """
    if wait > 0:
        job, errors = tracker.wait(job_id, wait)
    else:
        job, errors = tracker.get(job_id)
    raise_for_errors(errors)
    assert job is not None
    return job_to_response(job)
