"""
Schedules component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from content_lifecycle.core.entities import LocaleScope, ScheduleKind, ScheduleRecord
from content_lifecycle.core.errors import LifecycleError

# --- Due Iteration ---


@dataclass(frozen=True)
class DueSchedule:
    """One element of the due sequence."""

    item_id: str
    kind: ScheduleKind
    record: ScheduleRecord

    @property
    def cursor(self) -> tuple[datetime, str, str]:
        """Keyset position; pass as `after` to resume past this element."""
        return self.record.sort_key


# --- Input Models ---


@dataclass(frozen=True)
class SetPublicationInput:
    """Input for scheduling a publication."""

    item_id: str
    fire_at: datetime
    locale_scope: LocaleScope = field(default_factory=LocaleScope.everything)
    non_localized: bool = True


@dataclass(frozen=True)
class SetUnpublishingInput:
    """Input for scheduling an unpublishing."""

    item_id: str
    fire_at: datetime
    locale_scope: LocaleScope = field(default_factory=LocaleScope.everything)


@dataclass(frozen=True)
class CancelScheduleInput:
    """Input for cancelling the pending schedule of one kind."""

    item_id: str
    kind: ScheduleKind


@dataclass(frozen=True)
class CalendarInput:
    """Input for listing schedules in a date range."""

    start_utc: datetime
    end_utc: datetime
    kinds: tuple[ScheduleKind, ...] | None = None


@dataclass(frozen=True)
class RetryFailedInput:
    schedule_id: UUID


# --- Output Models ---


@dataclass(frozen=True)
class ScheduleOutput:
    """Output for set/retry operations."""

    record: ScheduleRecord | None
    errors: list[LifecycleError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class CancelOutput:
    """Output for cancel operations."""

    cancelled: bool
    errors: list[LifecycleError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class CalendarOutput:
    records: tuple[ScheduleRecord, ...]
    errors: list[LifecycleError] = field(default_factory=list)
    success: bool = True
