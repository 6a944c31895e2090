"""
Scheduling API Routes.

Schedule and cancel publications and unpublishings, inspect the calendar
and failed firings, and trigger a dispatcher tick by hand.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from content_lifecycle.api.deps import get_dispatcher, get_schedule_store
from content_lifecycle.api.schemas import (
    CalendarEvent,
    CalendarResponse,
    SchedulePublishRequest,
    ScheduleResponse,
    ScheduleUnpublishRequest,
    parse_scope,
    raise_for_errors,
    schedule_to_response,
    serialize_errors,
)
from content_lifecycle.components.dispatcher import Dispatcher
from content_lifecycle.components.schedules import ScheduleStore
from content_lifecycle.core.errors import NOT_SCHEDULED, lifecycle_error
from content_lifecycle.core.timeutil import ensure_utc

router = APIRouter()


def _not_scheduled(item_id: str, kind: str) -> HTTPException:
    error = lifecycle_error(NOT_SCHEDULED, f"Item {item_id} has no pending {kind} schedule", item_id)
    return HTTPException(status_code=404, detail={"errors": serialize_errors([error])})


# --- Publication ---


@router.post(
    "/schedule/publish", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED
)
def schedule_publication(
    request: SchedulePublishRequest,
    store: ScheduleStore = Depends(get_schedule_store),
) -> Any:
    """Schedule a publication. 409 if one is already pending."""
    record, errors = store.set_publication(
        request.item_id,
        request.fire_at,
        parse_scope(request.locale_scope),
        request.non_localized,
    )
    raise_for_errors(errors)
    assert record is not None
    return schedule_to_response(record)


@router.get("/schedule/publish/{item_id}", response_model=ScheduleResponse)
def get_publication(
    item_id: str,
    store: ScheduleStore = Depends(get_schedule_store),
) -> Any:
    record = store.get_publication(item_id)
    if record is None:
        raise _not_scheduled(item_id, "publish")
    return schedule_to_response(record)


@router.delete("/schedule/publish/{item_id}")
def cancel_publication(
    item_id: str,
    store: ScheduleStore = Depends(get_schedule_store),
) -> dict[str, Any]:
    """Cancel a pending publication. 409 ALREADY_FIRING if a dispatcher holds it."""
    cancelled, errors = store.cancel_publication(item_id)
    raise_for_errors(errors)
    return {"cancelled": cancelled, "item_id": item_id}


# --- Unpublishing ---


@router.post(
    "/schedule/unpublish", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED
)
def schedule_unpublishing(
    request: ScheduleUnpublishRequest,
    store: ScheduleStore = Depends(get_schedule_store),
) -> Any:
    """Schedule an unpublishing. 409 if the item is not published in scope."""
    record, errors = store.set_unpublishing(
        request.item_id, request.fire_at, parse_scope(request.locale_scope)
    )
    raise_for_errors(errors)
    assert record is not None
    return schedule_to_response(record)


@router.get("/schedule/unpublish/{item_id}", response_model=ScheduleResponse)
def get_unpublishing(
    item_id: str,
    store: ScheduleStore = Depends(get_schedule_store),
) -> Any:
    record = store.get_unpublishing(item_id)
    if record is None:
        raise _not_scheduled(item_id, "unpublish")
    return schedule_to_response(record)


@router.delete("/schedule/unpublish/{item_id}")
def cancel_unpublishing(
    item_id: str,
    store: ScheduleStore = Depends(get_schedule_store),
) -> dict[str, Any]:
    cancelled, errors = store.cancel_unpublishing(item_id)
    raise_for_errors(errors)
    return {"cancelled": cancelled, "item_id": item_id}


# --- Calendar ---


@router.get("/schedule/calendar", response_model=CalendarResponse)
def get_calendar(
    start: datetime,
    end: datetime,
    kind: Literal["publish", "unpublish"] | None = None,
    store: ScheduleStore = Depends(get_schedule_store),
) -> CalendarResponse:
    """
    Schedules with fire_at in [start, end] as calendar events.

    Naive query timestamps are taken as UTC.
    """
    start, end = ensure_utc(start), ensure_utc(end)
    records, errors = store.calendar(start, end, [kind] if kind else None)
    raise_for_errors(errors)

    events = [
        CalendarEvent(
            id=r.id,
            item_id=r.item_id,
            title=f"{r.kind.capitalize()}: {r.item_id} ({r.locale_scope})",
            start=r.fire_at,
            kind=r.kind,
            status=r.status,
        )
        for r in records
    ]
    return CalendarResponse(
        events=events, start_date=start, end_date=end, total_count=len(events)
    )


# --- Operator surface ---


@router.get("/schedule/failed", response_model=list[ScheduleResponse])
def list_failed(store: ScheduleStore = Depends(get_schedule_store)) -> Any:
    """Schedules that exhausted their retry budget."""
    return [schedule_to_response(r) for r in store.list_failed()]


@router.post("/schedule/failed/{schedule_id}/retry", response_model=ScheduleResponse)
def retry_failed(
    schedule_id: UUID,
    store: ScheduleStore = Depends(get_schedule_store),
) -> Any:
    """Requeue a failed schedule with its attempt count reset."""
    record, errors = store.retry_failed(schedule_id)
    raise_for_errors(errors)
    assert record is not None
    return schedule_to_response(record)


@router.post("/schedule/run-due")
def run_due(dispatcher: Dispatcher = Depends(get_dispatcher)) -> dict[str, Any]:
    """
    Run one dispatcher tick now.

    For testing and manual intervention.
    """
    result = dispatcher.trigger_now()
    return {
        "processed": result.processed,
        "fired": result.fired,
        "failed": result.failed,
        "results": [
            {
                "schedule_id": str(r.schedule_id),
                "item_id": r.item_id,
                "kind": r.kind,
                "outcome": r.outcome,
                "message": r.message,
            }
            for r in result.results
        ],
    }
