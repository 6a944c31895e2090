"""
Dispatcher component - Exactly-once firing of due schedules.

Invariants:
- A record is fired only by the dispatcher holding its claim
- A record is deleted only after success, no-op or gone item
- Retries are bounded; exhaustion parks the record as fire_failed
"""

from __future__ import annotations

from datetime import datetime

from content_lifecycle.components.schedules import ScheduleStore
from content_lifecycle.components.transitions import TransitionEngine
from content_lifecycle.rules.models import SchedulingRules

from ._impl import Dispatcher, DispatcherConfig
from .models import TickResult
from .ports import AlertPort, TimePort


def build_config(rules: SchedulingRules | None) -> DispatcherConfig:
    """Build dispatcher config from the scheduling rules section."""
    if rules is None:
        return DispatcherConfig()
    return DispatcherConfig(
        tick_interval_seconds=rules.tick_interval_seconds,
        claim_ttl_seconds=rules.claim_ttl_seconds,
        max_attempts=rules.max_attempts,
        backoff_seconds=tuple(rules.backoff_seconds) or DispatcherConfig.backoff_seconds,
        batch_size=rules.batch_size,
        shard_index=rules.shard_index,
        shard_count=rules.shard_count,
    )


# --- Component Entry Points ---


def run_tick(
    *,
    schedules: ScheduleStore,
    engine: TransitionEngine,
    alerts: AlertPort,
    time_port: TimePort | None = None,
    rules: SchedulingRules | None = None,
    now: datetime | None = None,
) -> TickResult:
    """
    Run a single dispatcher tick.

    Args:
        schedules: Schedule store.
        engine: Transition engine.
        alerts: Alert sink for fire_failed records.
        time_port: Optional time port.
        rules: Optional scheduling rules.
        now: Override for "now" (defaults to the time port).

    Returns:
        TickResult for the processed records.
    """
    dispatcher = Dispatcher(
        schedules=schedules,
        engine=engine,
        alerts=alerts,
        time_port=time_port,
        config=build_config(rules),
    )
    return dispatcher.tick(now)
