"""
Logging Alert Sink.

Surfaces schedules whose retry budget is exhausted. Production deployments
would page an operator; this adapter logs at ERROR and keeps raised alerts
in memory for inspection and test assertions.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from content_lifecycle.core.entities import ScheduleRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RaisedAlert:
    """Record of a raised alert."""

    schedule_id: UUID
    item_id: str
    kind: str
    attempts: int
    error: str
    raised_at: datetime


@dataclass
class LoggingAlertSink:
    """Alert sink that logs instead of paging."""

    alerts: list[RaisedAlert] = field(default_factory=list)
    log_level: int = logging.ERROR
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def fire_failed(self, record: ScheduleRecord, error: str) -> None:
        alert = RaisedAlert(
            schedule_id=record.id,
            item_id=record.item_id,
            kind=record.kind,
            attempts=record.attempts,
            error=error,
            raised_at=datetime.now(UTC),
        )
        with self._lock:
            self.alerts.append(alert)
        logger.log(
            self.log_level,
            "ALERT fire_failed: %s schedule %s for item %s after %d attempts: %s",
            record.kind,
            record.id,
            record.item_id,
            record.attempts,
            error,
        )

    def clear(self) -> None:
        with self._lock:
            self.alerts.clear()
