"""
Dispatcher component models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal
from uuid import UUID

from content_lifecycle.core.entities import ScheduleKind

# fired:       transition applied, record deleted
# noop:        transition already in effect, record deleted
# dropped:     item gone, record deleted
# retry:       retryable failure, claim released with backoff
# fire_failed: retry budget exhausted, record parked and alert raised
# skipped:     claimed by another dispatcher
# deferred:    item busy, claim released untouched for the next tick
FireOutcome = Literal[
    "fired", "noop", "dropped", "retry", "fire_failed", "skipped", "deferred"
]


@dataclass(frozen=True)
class FireResult:
    """Outcome of one due record."""

    schedule_id: UUID
    item_id: str
    kind: ScheduleKind
    outcome: FireOutcome
    message: str = ""


@dataclass(frozen=True)
class TickResult:
    """Outcome of one dispatcher tick."""

    started_at: datetime
    results: tuple[FireResult, ...] = field(default_factory=tuple)

    @property
    def processed(self) -> int:
        return len(self.results)

    def count(self, outcome: FireOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def fired(self) -> int:
        return self.count("fired")

    @property
    def failed(self) -> int:
        return self.count("fire_failed")
