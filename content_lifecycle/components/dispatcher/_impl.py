"""
Dispatcher - Fires due schedules through the transition engine.

Key behaviors:
- Each tick recomputes the due-set from "now"; there is no stored cursor
- A record is claimed atomically before firing and deleted only after
  the transition succeeded, was a no-op, or hit a gone item
- Retryable failures release the claim with backoff; after max_attempts
  the record is parked as fire_failed and an alert is raised
- Failures are contained per record; one stuck item never stalls a tick
- Item locks are tried without waiting; a busy item's record is released
  untouched and comes due again on the next tick
- Multi-instance deployments shard by a stable hash of item_id
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from content_lifecycle.components.schedules import ScheduleStore
from content_lifecycle.components.transitions import TransitionEngine, TransitionOutput
from content_lifecycle.core.entities import ScheduleRecord
from content_lifecycle.core.errors import ITEM_GONE, ItemBusyError, TransientError
from content_lifecycle.core.timeutil import ensure_utc

from .models import FireResult, TickResult
from .ports import AlertPort, TimePort

logger = logging.getLogger(__name__)

# --- Configuration ---


@dataclass(frozen=True)
class DispatcherConfig:
    """Dispatcher configuration from rules."""

    tick_interval_seconds: float = 30.0
    claim_ttl_seconds: int = 300
    max_attempts: int = 5
    backoff_seconds: tuple[int, ...] = (5, 15, 60, 300, 900)
    batch_size: int = 100
    shard_index: int = 0
    shard_count: int = 1


DEFAULT_CONFIG = DispatcherConfig()


# --- Backoff Calculation ---


def calculate_next_attempt(
    attempts: int,
    now_utc: datetime,
    config: DispatcherConfig = DEFAULT_CONFIG,
) -> datetime | None:
    """
    Calculate the next attempt time.

    Args:
        attempts: Attempt count including the failure just recorded
        now_utc: Current time
        config: Dispatcher configuration

    Returns None if the retry budget is exhausted.
    """
    if attempts >= config.max_attempts:
        return None

    # First failure (attempts=1) uses backoff[0]; the last entry repeats
    backoff_index = max(0, min(attempts - 1, len(config.backoff_seconds) - 1))
    return now_utc + timedelta(seconds=config.backoff_seconds[backoff_index])


# --- Sharding ---


def shard_of(item_id: str, shard_count: int) -> int:
    """Stable shard for an item, identical across processes and restarts."""
    digest = hashlib.sha256(item_id.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % shard_count


# --- Dispatcher ---


class Dispatcher:
    """
    Schedule dispatcher.

    tick() is synchronous and safe to call from tests, the CLI or the
    run-due endpoint; start() runs it on a background thread.
    """

    def __init__(
        self,
        schedules: ScheduleStore,
        engine: TransitionEngine,
        alerts: AlertPort,
        time_port: TimePort | None = None,
        config: DispatcherConfig | None = None,
        worker_id: str | None = None,
    ) -> None:
        self._schedules = schedules
        self._engine = engine
        self._alerts = alerts
        self._time = time_port
        self._config = config or DEFAULT_CONFIG
        self._worker_id = worker_id or f"dispatcher-{uuid4().hex[:8]}"

        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False

    @property
    def worker_id(self) -> str:
        return self._worker_id

    def _now_utc(self) -> datetime:
        if self._time:
            return ensure_utc(self._time.now_utc())
        return datetime.now(UTC)

    def owns(self, item_id: str) -> bool:
        if self._config.shard_count <= 1:
            return True
        return shard_of(item_id, self._config.shard_count) == self._config.shard_index

    # --- Tick ---

    def tick(self, now: datetime | None = None) -> TickResult:
        """
        Process up to batch_size due records owned by this shard.

        Returns:
            TickResult with one FireResult per processed record
        """
        now = ensure_utc(now) if now else self._now_utc()
        results: list[FireResult] = []

        with self._tick_lock:
            for due in self._schedules.due_before(now):
                if len(results) >= self._config.batch_size:
                    break
                if not self.owns(due.item_id):
                    continue
                try:
                    results.append(self.fire(due.record, now))
                except Exception:
                    # Store failure on claim or bookkeeping; the claim TTL
                    # makes the record due again later
                    logger.exception("Dispatcher could not process schedule %s", due.record.id)

        result = TickResult(started_at=now, results=tuple(results))
        if result.processed:
            logger.info(
                "Dispatcher %s tick: %d processed, %d fired, %d failed",
                self._worker_id,
                result.processed,
                result.fired,
                result.failed,
            )
        return result

    def fire(self, record: ScheduleRecord, now: datetime) -> FireResult:
        """Claim and fire one record."""
        claimed = self._schedules.claim(
            record.id, self._worker_id, self._config.claim_ttl_seconds, now
        )
        if claimed is None:
            return self._result(record, "skipped", "Claimed by another dispatcher")

        try:
            output = self._apply(claimed)
        except ItemBusyError:
            return self._defer(claimed, now)
        except TransientError as e:
            logger.warning(
                "Transient failure firing %s of %s: %s", claimed.kind, claimed.item_id, e
            )
            return self._fail(claimed, str(e), now)
        except Exception as e:
            logger.exception("Unexpected failure firing %s of %s", claimed.kind, claimed.item_id)
            return self._fail(claimed, f"{type(e).__name__}: {e}", now)

        if output.errors:
            codes = {err.code for err in output.errors}
            message = "; ".join(err.message for err in output.errors)
            if ITEM_GONE in codes:
                logger.warning(
                    "Dropping %s schedule %s: %s", claimed.kind, claimed.id, message
                )
                self._complete(claimed)
                return self._result(claimed, "dropped", message)
            return self._fail(claimed, message, now)

        self._complete(claimed)
        if not output.changed:
            return self._result(claimed, "noop", "; ".join(output.warnings))
        logger.info("Fired %s schedule %s for %s", claimed.kind, claimed.id, claimed.item_id)
        return self._result(claimed, "fired")

    # --- Background mode ---

    def start(self) -> None:
        """Start the background tick loop."""
        if self._running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, name=self._worker_id, daemon=True
        )
        self._thread.start()
        self._running = True
        logger.info(
            "Dispatcher %s started (tick interval: %.1fs, shard %d/%d)",
            self._worker_id,
            self._config.tick_interval_seconds,
            self._config.shard_index,
            self._config.shard_count,
        )

    def stop(self) -> None:
        """Stop the loop, letting an in-flight tick finish."""
        if not self._running:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        self._running = False
        logger.info("Dispatcher %s stopped", self._worker_id)

    def trigger_now(self) -> TickResult:
        """Run one tick immediately on the calling thread."""
        return self.tick()

    @property
    def is_running(self) -> bool:
        return self._running

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._config.tick_interval_seconds):
            try:
                self.tick()
            except Exception:
                logger.exception("Error in dispatcher poll loop")

    # --- Internals ---

    def _apply(self, record: ScheduleRecord) -> TransitionOutput:
        if record.kind == "publish":
            return self._engine.apply_publish(
                record.item_id, record.locale_scope, record.non_localized, lock_timeout=0
            )
        return self._engine.apply_unpublish(record.item_id, record.locale_scope, lock_timeout=0)

    def _complete(self, record: ScheduleRecord) -> None:
        if not self._schedules.complete(record.id, self._worker_id):
            # Claim expired and was taken over; the transition is idempotent
            logger.warning(
                "Schedule %s was no longer held by %s at completion", record.id, self._worker_id
            )

    def _defer(self, record: ScheduleRecord, now: datetime) -> FireResult:
        # Busy is not a failure: attempts, backoff and last_error stay as they were
        self._schedules.release(
            record.id,
            self._worker_id,
            record.attempts,
            record.next_attempt_at,
            record.last_error,
            now,
        )
        logger.debug("Deferred %s of %s: item busy", record.kind, record.item_id)
        return self._result(record, "deferred", f"Item {record.item_id} busy")

    def _fail(self, record: ScheduleRecord, error: str, now: datetime) -> FireResult:
        attempts = record.attempts + 1
        next_attempt = calculate_next_attempt(attempts, now, self._config)

        if next_attempt is None:
            self._schedules.mark_fire_failed(record.id, self._worker_id, attempts, error, now)
            self._alerts.fire_failed(replace(record, attempts=attempts, status="fire_failed"), error)
            return self._result(record, "fire_failed", error)

        self._schedules.release(record.id, self._worker_id, attempts, next_attempt, error, now)
        logger.info(
            "Schedule %s attempt %d failed; next attempt at %s",
            record.id,
            attempts,
            next_attempt.isoformat(),
        )
        return self._result(record, "retry", error)

    @staticmethod
    def _result(record: ScheduleRecord, outcome: str, message: str = "") -> FireResult:
        return FireResult(
            schedule_id=record.id,
            item_id=record.item_id,
            kind=record.kind,
            outcome=outcome,  # type: ignore[arg-type]
            message=message,
        )
