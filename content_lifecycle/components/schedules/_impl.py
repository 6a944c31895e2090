"""
ScheduleStore - Scheduled publication and unpublishing records.

Key behaviors:
- At most one pending record per (item_id, kind); a second set is a
  conflict, never an overwrite
- fire_at must be strictly in the future (naive timestamps are UTC)
- Scheduling and cancelling never touch item publication state
- due_before() pages through the repository with a keyset cursor, so a
  long due-set is never loaded at once and iteration can be resumed
- Cancelling a record claimed by a dispatcher fails with ALREADY_FIRING
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from content_lifecycle.core.entities import (
    ItemState,
    LocaleScope,
    ScheduleKind,
    ScheduleRecord,
)
from content_lifecycle.core.errors import (
    ALREADY_FIRING,
    ALREADY_SCHEDULED,
    INVALID_LOCALE_SCOPE,
    INVALID_SCHEDULE,
    ITEM_NOT_FOUND,
    ITEM_NOT_PUBLISHED,
    NOT_SCHEDULED,
    SCHEDULE_NOT_FOUND,
    LifecycleError,
    lifecycle_error,
)
from content_lifecycle.core.ports.db import DueCursor
from content_lifecycle.core.timeutil import ensure_utc

from .models import DueSchedule
from .ports import ContentRepositoryPort, ScheduleRepoPort, TimePort

logger = logging.getLogger(__name__)

# --- Configuration ---


@dataclass(frozen=True)
class ScheduleConfig:
    """Schedule store configuration from rules."""

    max_scheduled_days_ahead: int = 365
    page_size: int = 100


DEFAULT_CONFIG = ScheduleConfig()


# --- Validation ---


def validate_fire_at(
    fire_at: datetime,
    now_utc: datetime,
    config: ScheduleConfig = DEFAULT_CONFIG,
) -> list[LifecycleError]:
    """fire_at must be strictly after now and within the scheduling horizon."""
    fire_at = ensure_utc(fire_at)
    if fire_at <= now_utc:
        return [
            lifecycle_error(
                INVALID_SCHEDULE,
                f"fire_at {fire_at.isoformat()} must be in the future",
            )
        ]
    horizon = now_utc + timedelta(days=config.max_scheduled_days_ahead)
    if fire_at > horizon:
        return [
            lifecycle_error(
                INVALID_SCHEDULE,
                f"fire_at is more than {config.max_scheduled_days_ahead} days ahead",
            )
        ]
    return []


def validate_scope(scope: LocaleScope, available: Iterable[str]) -> list[LifecycleError]:
    """An explicit scope must be non-empty and drawn from the configured locales."""
    if scope.is_all:
        return []
    if not scope.locales:
        return [lifecycle_error(INVALID_LOCALE_SCOPE, "Locale scope must not be empty")]
    unknown = sorted(scope.locales - frozenset(available))
    if unknown:
        return [
            lifecycle_error(
                INVALID_LOCALE_SCOPE,
                f"Unknown locales: {', '.join(unknown)}",
            )
        ]
    return []


def scope_has_published(item: ItemState, scope: LocaleScope) -> bool:
    """True if at least one locale in scope is currently published."""
    if item.published_locales & scope.resolve(item.locales):
        return True
    # Items without localized content are only reachable through "all"
    return scope.is_all and item.non_localized_published


def build_record(
    item_id: str,
    kind: ScheduleKind,
    fire_at: datetime,
    scope: LocaleScope,
    non_localized: bool,
    now_utc: datetime,
) -> ScheduleRecord:
    return ScheduleRecord(
        item_id=item_id,
        kind=kind,
        fire_at=ensure_utc(fire_at),
        locale_scope=scope,
        non_localized=non_localized,
        created_at=now_utc,
        updated_at=now_utc,
    )


# --- ScheduleStore ---


class ScheduleStore:
    """
    Schedule store.

    Owns ScheduledPublication and ScheduledUnpublishing records and exposes
    the atomic claim primitives the dispatcher builds on.
    """

    def __init__(
        self,
        repo: ScheduleRepoPort,
        content: ContentRepositoryPort,
        time_port: TimePort | None = None,
        config: ScheduleConfig | None = None,
    ) -> None:
        self._repo = repo
        self._content = content
        self._time = time_port
        self._config = config or DEFAULT_CONFIG

    def _now_utc(self) -> datetime:
        if self._time:
            return ensure_utc(self._time.now_utc())
        return datetime.now(UTC)

    # --- Publication ---

    def set_publication(
        self,
        item_id: str,
        fire_at: datetime,
        scope: LocaleScope | None = None,
        non_localized: bool = True,
    ) -> tuple[ScheduleRecord | None, list[LifecycleError]]:
        """
        Schedule a publication.

        Returns:
            Tuple of (record, errors). Record is None if errors.
        """
        return self._set(item_id, "publish", fire_at, scope, non_localized)

    def cancel_publication(self, item_id: str) -> tuple[bool, list[LifecycleError]]:
        return self._cancel(item_id, "publish")

    def get_publication(self, item_id: str) -> ScheduleRecord | None:
        return self._repo.get_pending(item_id, "publish")

    # --- Unpublishing ---

    def set_unpublishing(
        self,
        item_id: str,
        fire_at: datetime,
        scope: LocaleScope | None = None,
    ) -> tuple[ScheduleRecord | None, list[LifecycleError]]:
        """
        Schedule an unpublishing.

        Fails with ITEM_NOT_PUBLISHED if no scoped locale is published now.
        The check is repeated at fire time, where it is a no-op warning.
        """
        return self._set(item_id, "unpublish", fire_at, scope, False)

    def cancel_unpublishing(self, item_id: str) -> tuple[bool, list[LifecycleError]]:
        return self._cancel(item_id, "unpublish")

    def get_unpublishing(self, item_id: str) -> ScheduleRecord | None:
        return self._repo.get_pending(item_id, "unpublish")

    # --- Queries ---

    def list_for_item(self, item_id: str) -> list[ScheduleRecord]:
        return self._repo.list_for_item(item_id)

    def due_before(
        self,
        timestamp: datetime,
        after: DueCursor | None = None,
    ) -> Iterator[DueSchedule]:
        """
        Lazy sequence of due records, ascending by (fire_at, item_id, kind).

        Restart from any element by passing its `cursor` as `after`.
        """
        ts = ensure_utc(timestamp)
        cursor = after
        page_size = self._config.page_size
        while True:
            page = self._repo.list_due(ts, after=cursor, limit=page_size)
            for record in page:
                yield DueSchedule(item_id=record.item_id, kind=record.kind, record=record)
            if len(page) < page_size:
                return
            cursor = page[-1].sort_key

    def calendar(
        self,
        start_utc: datetime,
        end_utc: datetime,
        kinds: Sequence[ScheduleKind] | None = None,
    ) -> tuple[list[ScheduleRecord], list[LifecycleError]]:
        start, end = ensure_utc(start_utc), ensure_utc(end_utc)
        if end < start:
            return [], [lifecycle_error(INVALID_SCHEDULE, "Calendar end is before start")]
        return self._repo.list_in_range(start, end, kinds), []

    def list_failed(self) -> list[ScheduleRecord]:
        return self._repo.list_by_status("fire_failed")

    def retry_failed(
        self, schedule_id: UUID
    ) -> tuple[ScheduleRecord | None, list[LifecycleError]]:
        """Requeue a fire_failed record with its attempt count reset."""
        record = self._repo.get_by_id(schedule_id)
        if record is None or record.status != "fire_failed":
            return None, [
                lifecycle_error(
                    SCHEDULE_NOT_FOUND,
                    f"No failed schedule {schedule_id}",
                    item_id=record.item_id if record else None,
                )
            ]
        if not self._repo.requeue_failed(schedule_id, self._now_utc()):
            return None, [
                lifecycle_error(
                    ALREADY_SCHEDULED,
                    f"Item {record.item_id} already has a pending {record.kind} schedule",
                    item_id=record.item_id,
                )
            ]
        logger.info("Requeued failed %s schedule %s", record.kind, schedule_id)
        return self._repo.get_by_id(schedule_id), []

    # --- Claim primitives (used by the dispatcher) ---

    def claim(
        self,
        schedule_id: UUID,
        worker_id: str,
        ttl_seconds: int,
        now_utc: datetime | None = None,
    ) -> ScheduleRecord | None:
        now = ensure_utc(now_utc) if now_utc else self._now_utc()
        return self._repo.claim(
            schedule_id, worker_id, now, now + timedelta(seconds=ttl_seconds)
        )

    def release(
        self,
        schedule_id: UUID,
        worker_id: str,
        attempts: int,
        next_attempt_at: datetime | None,
        error: str | None,
        now_utc: datetime | None = None,
    ) -> bool:
        return self._repo.release(
            schedule_id, worker_id, attempts, next_attempt_at, error, now_utc or self._now_utc()
        )

    def complete(self, schedule_id: UUID, worker_id: str) -> bool:
        return self._repo.complete(schedule_id, worker_id)

    def mark_fire_failed(
        self,
        schedule_id: UUID,
        worker_id: str,
        attempts: int,
        error: str,
        now_utc: datetime | None = None,
    ) -> bool:
        return self._repo.mark_fire_failed(
            schedule_id, worker_id, attempts, error, now_utc or self._now_utc()
        )

    # --- Internals ---

    def _set(
        self,
        item_id: str,
        kind: ScheduleKind,
        fire_at: datetime,
        scope: LocaleScope | None,
        non_localized: bool,
    ) -> tuple[ScheduleRecord | None, list[LifecycleError]]:
        now = self._now_utc()
        scope = scope or LocaleScope.everything()

        errors = validate_fire_at(fire_at, now, self._config)
        if errors:
            return None, errors

        errors = validate_scope(scope, self._content.available_locales())
        if errors:
            return None, errors

        item = self._content.get_item_state(item_id)
        if item is None:
            return None, [
                lifecycle_error(ITEM_NOT_FOUND, f"Item {item_id} not found", item_id=item_id)
            ]

        if kind == "unpublish" and not scope_has_published(item, scope):
            return None, [
                lifecycle_error(
                    ITEM_NOT_PUBLISHED,
                    f"Item {item_id} is not published in scope {scope}",
                    item_id=item_id,
                )
            ]

        record = build_record(item_id, kind, fire_at, scope, non_localized, now)
        if not self._repo.insert_if_absent(record):
            return None, [
                lifecycle_error(
                    ALREADY_SCHEDULED,
                    f"Item {item_id} already has a pending {kind} schedule",
                    item_id=item_id,
                )
            ]

        logger.info(
            "Scheduled %s of %s at %s (scope=%s)",
            kind,
            item_id,
            record.fire_at.isoformat(),
            scope,
        )
        return record, []

    def _cancel(self, item_id: str, kind: ScheduleKind) -> tuple[bool, list[LifecycleError]]:
        now = self._now_utc()
        if self._repo.delete_unclaimed(item_id, kind, now):
            logger.info("Cancelled %s schedule of %s", kind, item_id)
            return True, []

        pending = self._repo.get_pending(item_id, kind)
        if pending is None:
            return False, [
                lifecycle_error(
                    NOT_SCHEDULED,
                    f"Item {item_id} has no pending {kind} schedule",
                    item_id=item_id,
                )
            ]
        # Claim expired or a new record appeared between the two calls
        if not pending.is_claimed(now) and self._repo.delete_unclaimed(item_id, kind, now):
            logger.info("Cancelled %s schedule of %s", kind, item_id)
            return True, []
        return False, [
            lifecycle_error(
                ALREADY_FIRING,
                f"The {kind} schedule of {item_id} is being fired",
                item_id=item_id,
            )
        ]
