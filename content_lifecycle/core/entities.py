"""
Domain entities for the content lifecycle scheduler.

- ItemState: publication state of an external content item (read-only view)
- LocaleScope: "all" or an explicit set of locales
- ScheduleRecord: scheduled publication / unpublishing
- Workflow + Stage: ordered approval stages
- StageAssignment: the stage an item currently occupies
- BulkJob + ItemOutcome: tracked asynchronous bulk operations
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

__all__ = [
    "BulkJob",
    "BulkJobKind",
    "BulkJobStatus",
    "ItemOutcome",
    "ItemState",
    "LocaleScope",
    "PublicationStatus",
    "ScheduleKind",
    "ScheduleRecord",
    "ScheduleStatus",
    "Stage",
    "StageAssignment",
    "Workflow",
    "TERMINAL_JOB_STATUSES",
]


def _utcnow() -> datetime:
    return datetime.now(UTC)


# --- Literals ---

PublicationStatus = Literal["published", "unpublished"]
ScheduleKind = Literal["publish", "unpublish"]
ScheduleStatus = Literal["pending", "fire_failed"]
BulkJobKind = Literal["bulk_stage_move", "bulk_publish", "bulk_unpublish"]
BulkJobStatus = Literal["pending", "running", "succeeded", "partially_failed", "failed"]

TERMINAL_JOB_STATUSES: frozenset[str] = frozenset({"succeeded", "partially_failed", "failed"})


# --- Locale Scope ---


@dataclass(frozen=True)
class LocaleScope:
    """
    Locales a publish/unpublish action applies to.

    Either every locale of the item (``all_locales``) or an explicit set.
    An explicit empty set is representable but never valid for scheduling.
    """

    locales: frozenset[str] = frozenset()
    all_locales: bool = False

    @classmethod
    def everything(cls) -> LocaleScope:
        return cls(all_locales=True)

    @classmethod
    def of(cls, locales: Iterable[str]) -> LocaleScope:
        return cls(locales=frozenset(locales))

    @classmethod
    def parse(cls, value: str | Iterable[str] | None) -> LocaleScope:
        """
        Parse the wire form: the literal ``"all"``, a list of codes, or None.

        Raises ValueError for any other string.
        """
        if value is None or value == "all":
            return cls.everything()
        if isinstance(value, str):
            raise ValueError(f"Locale scope must be 'all' or a list of locales, got {value!r}")
        return cls.of(value)

    @property
    def is_all(self) -> bool:
        return self.all_locales

    def resolve(self, available: Iterable[str]) -> frozenset[str]:
        """Concrete locale set against the given available locales."""
        if self.all_locales:
            return frozenset(available)
        return self.locales

    def to_wire(self) -> str | list[str]:
        if self.all_locales:
            return "all"
        return sorted(self.locales)

    def __str__(self) -> str:
        if self.all_locales:
            return "all"
        return ",".join(sorted(self.locales))


# --- Content Item View ---


class ItemState(BaseModel):
    """
    Publication state of a content item as reported by the content repository.

    Stage assignment is not part of this view; it is owned by the workflow store.
    """

    item_id: str
    model_id: str
    publication: dict[str, PublicationStatus] = Field(default_factory=dict)
    non_localized_published: bool = False

    @property
    def locales(self) -> frozenset[str]:
        return frozenset(self.publication)

    @property
    def published_locales(self) -> frozenset[str]:
        return frozenset(loc for loc, st in self.publication.items() if st == "published")

    @property
    def status(self) -> PublicationStatus:
        return "published" if self.published_locales else "unpublished"


# --- Schedules ---


@dataclass(frozen=False)
class ScheduleRecord:
    """
    Scheduled publication or unpublishing of one item.

    Invariants:
    - at most one pending record per (item_id, kind)
    - fire_at strictly after created_at
    - a pending record is fired at most once (claim + delete)

    Lifecycle:
    - pending (unclaimed) -> pending (claimed) -> deleted
    - pending (claimed) -> pending (released, backing off)
    - pending (claimed) -> fire_failed (retry budget exhausted)
    """

    item_id: str
    kind: ScheduleKind
    fire_at: datetime
    locale_scope: LocaleScope = field(default_factory=LocaleScope.everything)
    non_localized: bool = False
    id: UUID = field(default_factory=uuid4)
    status: ScheduleStatus = "pending"
    attempts: int = 0
    next_attempt_at: datetime | None = None
    claimed_by: str | None = None
    claimed_until: datetime | None = None
    last_error: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def is_claimed(self, now: datetime) -> bool:
        return self.claimed_until is not None and self.claimed_until > now

    def is_due(self, now: datetime) -> bool:
        if self.status != "pending" or self.fire_at > now:
            return False
        if self.next_attempt_at is not None and self.next_attempt_at > now:
            return False
        return not self.is_claimed(now)

    @property
    def sort_key(self) -> tuple[datetime, str, str]:
        return (self.fire_at, self.item_id, self.kind)


# --- Workflows ---


class Stage(BaseModel):
    id: str
    name: str
    color: str = "#9e9e9e"
    description: str | None = None


class Workflow(BaseModel):
    """
    Ordered list of stages assignable to content models.

    Stage order is informational; any stage-to-stage move is allowed.
    """

    id: UUID = Field(default_factory=uuid4)
    name: str
    api_key: str
    stages: list[Stage]
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def stage(self, stage_id: str) -> Stage | None:
        for s in self.stages:
            if s.id == stage_id:
                return s
        return None

    @property
    def stage_ids(self) -> list[str]:
        return [s.id for s in self.stages]


@dataclass(frozen=True)
class StageAssignment:
    """Stage currently occupied by an item. stage_id None means "no stage"."""

    item_id: str
    workflow_id: UUID | None
    stage_id: str | None
    updated_at: datetime = field(default_factory=_utcnow)


# --- Bulk Jobs ---


@dataclass(frozen=True)
class ItemOutcome:
    status: Literal["succeeded", "failed"]
    code: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "code": self.code, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemOutcome:
        return cls(status=data["status"], code=data.get("code"), message=data.get("message", ""))


@dataclass(frozen=False)
class BulkJob:
    """
    Tracked asynchronous bulk operation.

    State machine:
    - pending -> running -> succeeded | partially_failed | failed
    Terminal jobs are immutable.
    """

    kind: BulkJobKind
    item_ids: list[str]
    params: dict[str, Any] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    status: BulkJobStatus = "pending"
    per_item_results: dict[str, ItemOutcome] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def succeeded_count(self) -> int:
        return sum(1 for o in self.per_item_results.values() if o.status == "succeeded")

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.per_item_results.values() if o.status == "failed")
