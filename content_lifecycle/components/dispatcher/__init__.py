"""
Dispatcher component - Background firing of due schedules.
"""

from ._impl import (
    Dispatcher,
    DispatcherConfig,
    calculate_next_attempt,
    shard_of,
)
from .component import build_config, run_tick
from .models import FireOutcome, FireResult, TickResult
from .ports import AlertPort

__all__ = [
    "AlertPort",
    "Dispatcher",
    "DispatcherConfig",
    "FireOutcome",
    "FireResult",
    "TickResult",
    "build_config",
    "calculate_next_attempt",
    "run_tick",
    "shard_of",
]
