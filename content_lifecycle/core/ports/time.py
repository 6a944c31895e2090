"""
Time Interface.

All timestamps are UTC. Components take an optional TimePort so tests can
pin the clock; without one they read the system clock.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """Time source."""

    def now_utc(self) -> datetime:
        """Get current UTC time (timezone-aware)."""
        ...
