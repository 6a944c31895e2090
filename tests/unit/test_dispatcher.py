"""
Tests for the Dispatcher.

- Due records are claimed, fired and deleted
- Gone items and no-ops are consumed without retry
- Retryable failures back off; exhaustion parks fire_failed and alerts
- Failures are isolated per record
- Sharding and batch limits
- Busy items are deferred without waiting or spending an attempt
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta

import pytest

from content_lifecycle.adapters.alerts import LoggingAlertSink
from content_lifecycle.adapters.locks import ItemLockRegistry
from content_lifecycle.adapters.memory_repos import (
    InMemoryContentRepo,
    InMemoryScheduleRepo,
    InMemoryWorkflowRepo,
)
from content_lifecycle.components.dispatcher import (
    Dispatcher,
    DispatcherConfig,
    calculate_next_attempt,
    run_tick,
    shard_of,
)
from content_lifecycle.components.schedules import ScheduleStore
from content_lifecycle.components.transitions import TransitionEngine
from content_lifecycle.components.workflows import WorkflowStore
from content_lifecycle.core.entities import LocaleScope
from content_lifecycle.core.errors import RepositoryUnavailableError


@pytest.fixture
def content() -> InMemoryContentRepo:
    repo = InMemoryContentRepo(["en", "fr"])
    repo.add_item("x", "article")
    repo.add_item("y", "article", published_locales=["en", "fr"])
    return repo


@pytest.fixture
def schedules(content, clock) -> ScheduleStore:
    return ScheduleStore(InMemoryScheduleRepo(), content, clock)


@pytest.fixture
def engine(content, clock) -> TransitionEngine:
    workflows = WorkflowStore(InMemoryWorkflowRepo(), content, clock)
    return TransitionEngine(content, workflows, ItemLockRegistry(timeout_seconds=0.2))


@pytest.fixture
def alerts() -> LoggingAlertSink:
    return LoggingAlertSink()


@pytest.fixture
def config() -> DispatcherConfig:
    return DispatcherConfig(max_attempts=3, backoff_seconds=(5, 15, 60), claim_ttl_seconds=60)


@pytest.fixture
def dispatcher(schedules, engine, alerts, clock, config) -> Dispatcher:
    return Dispatcher(schedules, engine, alerts, clock, config, worker_id="test-worker")


class TestBackoff:
    def test_first_failure_uses_first_step(self, config) -> None:
        now = datetime(2024, 1, 1, tzinfo=UTC)
        assert calculate_next_attempt(1, now, config) == now + timedelta(seconds=5)
        assert calculate_next_attempt(2, now, config) == now + timedelta(seconds=15)

    def test_exhausted(self, config) -> None:
        assert calculate_next_attempt(3, datetime.now(UTC), config) is None

    def test_last_step_repeats(self) -> None:
        config = DispatcherConfig(max_attempts=10, backoff_seconds=(1, 2))
        now = datetime(2024, 1, 1, tzinfo=UTC)
        assert calculate_next_attempt(7, now, config) == now + timedelta(seconds=2)


class TestSharding:
    def test_stable_and_in_range(self) -> None:
        assert shard_of("item-42", 4) == shard_of("item-42", 4)
        assert all(0 <= shard_of(f"item-{i}", 3) < 3 for i in range(50))

    def test_shards_partition_items(self, schedules, engine, alerts, clock) -> None:
        owners = [
            Dispatcher(
                schedules, engine, alerts, clock, DispatcherConfig(shard_index=i, shard_count=3)
            )
            for i in range(3)
        ]
        for i in range(30):
            item_id = f"item-{i}"
            assert sum(d.owns(item_id) for d in owners) == 1


class TestTick:
    def test_fires_due_publication(self, dispatcher, schedules, content, clock) -> None:
        schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)

        result = dispatcher.tick()

        assert result.processed == 1
        assert result.fired == 1
        assert result.results[0].outcome == "fired"
        assert content.get_item_state("x").status == "published"
        assert schedules.get_publication("x") is None

    def test_not_due_yet(self, dispatcher, schedules, content, clock) -> None:
        schedules.set_publication("x", clock.now_utc() + timedelta(minutes=5))
        assert dispatcher.tick().processed == 0
        assert content.get_item_state("x").status == "unpublished"

    def test_scoped_unpublish(self, dispatcher, schedules, content, clock) -> None:
        schedules.set_unpublishing(
            "y", clock.now_utc() + timedelta(seconds=1), LocaleScope.of(["fr"])
        )
        clock.advance(2)
        dispatcher.tick()
        assert content.get_item_state("y").published_locales == frozenset({"en"})

    def test_gone_item_dropped(self, dispatcher, schedules, content, clock) -> None:
        schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        content.remove_item("x")
        clock.advance(2)

        result = dispatcher.tick()

        assert result.results[0].outcome == "dropped"
        assert schedules.list_for_item("x") == []

    def test_already_unpublished_is_noop(self, dispatcher, schedules, engine, clock) -> None:
        schedules.set_unpublishing("y", clock.now_utc() + timedelta(seconds=1))
        engine.apply_unpublish("y")
        clock.advance(2)

        result = dispatcher.tick()

        assert result.results[0].outcome == "noop"
        assert "already unpublished" in result.results[0].message
        assert schedules.get_unpublishing("y") is None

    def test_explicit_now(self, dispatcher, schedules, clock) -> None:
        schedules.set_publication("x", clock.now_utc() + timedelta(hours=1))
        result = dispatcher.tick(clock.now_utc() + timedelta(hours=2))
        assert result.fired == 1

    def test_batch_size_limits_tick(self, schedules, engine, alerts, clock, content) -> None:
        for i in range(5):
            content.add_item(f"b{i}", "article")
            schedules.set_publication(f"b{i}", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)
        dispatcher = Dispatcher(schedules, engine, alerts, clock, DispatcherConfig(batch_size=2))

        assert dispatcher.tick().processed == 2
        assert dispatcher.tick().processed == 2
        assert dispatcher.tick().processed == 1

    def test_skips_records_of_other_shards(self, schedules, engine, alerts, clock, content) -> None:
        for i in range(10):
            content.add_item(f"s{i}", "article")
            schedules.set_publication(f"s{i}", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)
        d0 = Dispatcher(schedules, engine, alerts, clock, DispatcherConfig(shard_count=2))
        d1 = Dispatcher(
            schedules, engine, alerts, clock, DispatcherConfig(shard_index=1, shard_count=2)
        )

        fired = {r.item_id for r in d0.tick().results} | {r.item_id for r in d1.tick().results}
        assert fired == {f"s{i}" for i in range(10)}


class TestFailures:
    def _break_content(self, monkeypatch, content, item_id: str) -> None:
        original = content.get_item_state

        def flaky(requested: str):
            if requested == item_id:
                raise RepositoryUnavailableError("content store offline")
            return original(requested)

        monkeypatch.setattr(content, "get_item_state", flaky)

    def test_transient_failure_backs_off(
        self, dispatcher, schedules, content, clock, monkeypatch
    ) -> None:
        schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)
        self._break_content(monkeypatch, content, "x")

        result = dispatcher.tick()

        assert result.results[0].outcome == "retry"
        record = schedules.list_for_item("x")[0]
        assert record.attempts == 1
        assert record.claimed_by is None
        assert record.next_attempt_at == clock.now_utc() + timedelta(seconds=5)
        assert "offline" in record.last_error
        # Backing off: not due again until next_attempt_at
        assert dispatcher.tick().processed == 0

    def test_exhaustion_marks_fire_failed_and_alerts(
        self, dispatcher, schedules, content, alerts, clock, monkeypatch
    ) -> None:
        record, _ = schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)
        self._break_content(monkeypatch, content, "x")

        outcomes = []
        for _ in range(3):
            outcomes += [r.outcome for r in dispatcher.tick().results]
            clock.advance(120)

        assert outcomes == ["retry", "retry", "fire_failed"]
        failed = schedules.list_failed()
        assert [r.id for r in failed] == [record.id]
        assert failed[0].attempts == 3
        assert len(alerts.alerts) == 1
        assert alerts.alerts[0].schedule_id == record.id
        assert alerts.alerts[0].attempts == 3
        # Parked records are never due again
        assert dispatcher.tick().processed == 0

    def test_unexpected_exception_is_retried(
        self, dispatcher, schedules, content, clock, monkeypatch
    ) -> None:
        schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)

        def broken(*args, **kwargs):
            raise KeyError("bad row")

        monkeypatch.setattr(content, "set_publication_state", broken)
        result = dispatcher.tick()
        assert result.results[0].outcome == "retry"
        assert "KeyError" in result.results[0].message

    def test_failure_isolated_per_record(
        self, dispatcher, schedules, content, clock, monkeypatch
    ) -> None:
        schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        schedules.set_unpublishing("y", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)
        self._break_content(monkeypatch, content, "x")

        result = dispatcher.tick()

        outcomes = {r.item_id: r.outcome for r in result.results}
        assert outcomes == {"x": "retry", "y": "fired"}
        assert content.get_item_state("y").status == "unpublished"

    def test_claimed_elsewhere_is_skipped(self, dispatcher, schedules, clock) -> None:
        record, _ = schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)
        schedules.claim(record.id, "other-worker", 60)

        result = dispatcher.fire(record, clock.now_utc())
        assert result.outcome == "skipped"

    def test_retry_failed_then_fires(
        self, dispatcher, schedules, content, clock, monkeypatch
    ) -> None:
        record, _ = schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)
        original = content.get_item_state
        self._break_content(monkeypatch, content, "x")
        for _ in range(3):
            dispatcher.tick()
            clock.advance(120)

        monkeypatch.setattr(content, "get_item_state", original)
        schedules.retry_failed(record.id)

        assert dispatcher.tick().fired == 1
        assert content.get_item_state("x").status == "published"


class TestBusyItems:
    def test_busy_item_is_deferred_without_delaying_others(
        self, schedules, content, alerts, clock, config
    ) -> None:
        locks = ItemLockRegistry(timeout_seconds=5)
        engine = TransitionEngine(content, WorkflowStore(InMemoryWorkflowRepo(), content), locks)
        dispatcher = Dispatcher(schedules, engine, alerts, clock, config, worker_id="test-worker")
        content.add_item("z", "article")
        for item_id in ("x", "z"):
            schedules.set_publication(item_id, clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)

        with locks.hold("x"):
            started = time.monotonic()
            result = dispatcher.tick()
            elapsed = time.monotonic() - started

        assert elapsed < 2.0
        assert {r.item_id: r.outcome for r in result.results} == {"x": "deferred", "z": "fired"}
        assert content.get_item_state("x").status == "unpublished"
        record = schedules.get_publication("x")
        assert record.attempts == 0
        assert record.last_error is None
        assert record.claimed_by is None
        assert alerts.alerts == []

        again = dispatcher.tick()
        assert [(r.item_id, r.outcome) for r in again.results] == [("x", "fired")]
        assert content.get_item_state("x").status == "published"


class TestBackgroundMode:
    def test_start_stop(self, schedules, engine, alerts, clock) -> None:
        dispatcher = Dispatcher(
            schedules, engine, alerts, clock, DispatcherConfig(tick_interval_seconds=0.01)
        )
        dispatcher.start()
        assert dispatcher.is_running
        dispatcher.start()
        dispatcher.stop()
        assert not dispatcher.is_running

    def test_loop_fires_due_records(self, schedules, engine, alerts, clock, content) -> None:
        import time

        schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)
        dispatcher = Dispatcher(
            schedules, engine, alerts, clock, DispatcherConfig(tick_interval_seconds=0.01)
        )
        dispatcher.start()
        try:
            deadline = time.monotonic() + 5
            while time.monotonic() < deadline and schedules.get_publication("x") is not None:
                time.sleep(0.01)
        finally:
            dispatcher.stop()

        assert content.get_item_state("x").status == "published"

    def test_run_tick_entry_point(self, schedules, engine, alerts, clock, content) -> None:
        schedules.set_publication("x", clock.now_utc() + timedelta(seconds=1))
        clock.advance(2)
        result = run_tick(schedules=schedules, engine=engine, alerts=alerts, time_port=clock)
        assert result.fired == 1
