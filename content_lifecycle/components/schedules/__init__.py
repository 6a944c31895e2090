"""
Schedules component - Scheduled publication and unpublishing records.
"""

from ._impl import (
    ScheduleConfig,
    ScheduleStore,
    scope_has_published,
    validate_fire_at,
    validate_scope,
)
from .component import (
    build_config,
    run_calendar,
    run_cancel,
    run_retry_failed,
    run_set_publication,
    run_set_unpublishing,
)
from .models import (
    CalendarInput,
    CalendarOutput,
    CancelOutput,
    CancelScheduleInput,
    DueSchedule,
    RetryFailedInput,
    ScheduleOutput,
    SetPublicationInput,
    SetUnpublishingInput,
)

__all__ = [
    # Service
    "ScheduleConfig",
    "ScheduleStore",
    "build_config",
    # Entry points
    "run_calendar",
    "run_cancel",
    "run_retry_failed",
    "run_set_publication",
    "run_set_unpublishing",
    # Models
    "CalendarInput",
    "CalendarOutput",
    "CancelOutput",
    "CancelScheduleInput",
    "DueSchedule",
    "RetryFailedInput",
    "ScheduleOutput",
    "SetPublicationInput",
    "SetUnpublishingInput",
    # Helpers
    "scope_has_published",
    "validate_fire_at",
    "validate_scope",
]
