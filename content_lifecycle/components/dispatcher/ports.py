"""
Dispatcher component port definitions.
"""

from __future__ import annotations

from typing import Protocol

from content_lifecycle.core.entities import ScheduleRecord
from content_lifecycle.core.ports import TimePort


class AlertPort(Protocol):
    """Operator alerting for schedules that exhausted their retries."""

    def fire_failed(self, record: ScheduleRecord, error: str) -> None:
        ...


__all__ = ["AlertPort", "TimePort"]
