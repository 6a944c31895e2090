"""
Schedules component - Scheduled publication and unpublishing.

Invariants:
- At most one pending record per item and kind
- fire_at strictly in the future at creation time
- Scheduling and cancelling never change item publication state
- A claimed record cannot be cancelled (ALREADY_FIRING)
"""

from __future__ import annotations

from content_lifecycle.rules.models import SchedulingRules

from ._impl import ScheduleConfig, ScheduleStore
from .models import (
    CalendarInput,
    CalendarOutput,
    CancelOutput,
    CancelScheduleInput,
    RetryFailedInput,
    ScheduleOutput,
    SetPublicationInput,
    SetUnpublishingInput,
)
from .ports import ContentRepositoryPort, ScheduleRepoPort, TimePort


def build_config(rules: SchedulingRules | None, page_size: int | None = None) -> ScheduleConfig:
    """Build store config from the scheduling rules section."""
    if rules is None:
        return ScheduleConfig()
    return ScheduleConfig(
        max_scheduled_days_ahead=rules.max_scheduled_days_ahead,
        page_size=page_size or rules.batch_size,
    )


def _create_store(
    repo: ScheduleRepoPort,
    content: ContentRepositoryPort,
    time_port: TimePort | None,
    rules: SchedulingRules | None,
) -> ScheduleStore:
    return ScheduleStore(repo=repo, content=content, time_port=time_port, config=build_config(rules))


# --- Component Entry Points ---


def run_set_publication(
    inp: SetPublicationInput,
    *,
    repo: ScheduleRepoPort,
    content: ContentRepositoryPort,
    time_port: TimePort | None = None,
    rules: SchedulingRules | None = None,
) -> ScheduleOutput:
    """
    Schedule a publication.

    Args:
        inp: Item, fire time, locale scope and non-localized flag.
        repo: Schedule repository port.
        content: Content repository port (validation only).
        time_port: Optional time port.
        rules: Optional scheduling rules.

    Returns:
        ScheduleOutput with the record or errors.
    """
    store = _create_store(repo, content, time_port, rules)
    record, errors = store.set_publication(
        inp.item_id, inp.fire_at, inp.locale_scope, inp.non_localized
    )
    return ScheduleOutput(record=record, errors=errors, success=len(errors) == 0)


def run_set_unpublishing(
    inp: SetUnpublishingInput,
    *,
    repo: ScheduleRepoPort,
    content: ContentRepositoryPort,
    time_port: TimePort | None = None,
    rules: SchedulingRules | None = None,
) -> ScheduleOutput:
    """Schedule an unpublishing."""
    store = _create_store(repo, content, time_port, rules)
    record, errors = store.set_unpublishing(inp.item_id, inp.fire_at, inp.locale_scope)
    return ScheduleOutput(record=record, errors=errors, success=len(errors) == 0)


def run_cancel(
    inp: CancelScheduleInput,
    *,
    repo: ScheduleRepoPort,
    content: ContentRepositoryPort,
    time_port: TimePort | None = None,
) -> CancelOutput:
    """Cancel the pending schedule of the given kind."""
    store = _create_store(repo, content, time_port, None)
    if inp.kind == "publish":
        cancelled, errors = store.cancel_publication(inp.item_id)
    else:
        cancelled, errors = store.cancel_unpublishing(inp.item_id)
    return CancelOutput(cancelled=cancelled, errors=errors, success=cancelled)


def run_calendar(
    inp: CalendarInput,
    *,
    repo: ScheduleRepoPort,
    content: ContentRepositoryPort,
) -> CalendarOutput:
    store = _create_store(repo, content, None, None)
    records, errors = store.calendar(inp.start_utc, inp.end_utc, inp.kinds)
    return CalendarOutput(records=tuple(records), errors=errors, success=len(errors) == 0)


def run_retry_failed(
    inp: RetryFailedInput,
    *,
    repo: ScheduleRepoPort,
    content: ContentRepositoryPort,
    time_port: TimePort | None = None,
) -> ScheduleOutput:
    store = _create_store(repo, content, time_port, None)
    record, errors = store.retry_failed(inp.schedule_id)
    return ScheduleOutput(record=record, errors=errors, success=len(errors) == 0)
