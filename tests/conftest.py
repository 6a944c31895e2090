from __future__ import annotations

import os
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from content_lifecycle.adapters.sqlite.migrator import SQLiteMigrator
from content_lifecycle.api.deps import get_context
from content_lifecycle.app_shell.context import LifecycleContext
from content_lifecycle.core.entities import Stage
from content_lifecycle.rules.models import JobsRules, LocaleRules, Rules, SchedulingRules

FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


class MockTimePort:
    """Controllable clock, fixed until advanced."""

    def __init__(self, fixed_time: datetime = FIXED_NOW) -> None:
        self._now = fixed_time

    def now_utc(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, **kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value


@pytest.fixture
def stages() -> list[Stage]:
    return [
        Stage(id="draft", name="Draft"),
        Stage(id="review", name="In Review", color="#ff9800"),
        Stage(id="approved", name="Approved", color="#4caf50"),
    ]


@pytest.fixture
def clock() -> MockTimePort:
    return MockTimePort()


@pytest.fixture
def rules() -> Rules:
    """Rules tuned for fast, deterministic tests."""
    return Rules(
        locales=LocaleRules(available=["en", "fr", "de"], default="en"),
        scheduling=SchedulingRules(
            max_attempts=3,
            backoff_seconds=[5, 15, 60],
            lock_timeout_seconds=1.0,
        ),
        jobs=JobsRules(
            max_workers=2,
            item_retry_attempts=2,
            item_retry_backoff_seconds=0.0,
            wait_poll_interval_seconds=0.01,
            max_wait_seconds=5.0,
        ),
    )


@pytest.fixture
def ctx(rules: Rules, clock: MockTimePort) -> Iterator[LifecycleContext]:
    """Full in-memory service context on the mock clock."""
    context = LifecycleContext.in_memory(rules=rules, clock=clock)
    yield context
    context.shutdown()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "lifecycle.db")


@pytest.fixture
def migrated_db(db_path: str) -> str:
    SQLiteMigrator(db_path).run_migrations()
    return db_path


@pytest.fixture
def sqlite_ctx(migrated_db: str, rules: Rules, clock: MockTimePort) -> Iterator[LifecycleContext]:
    """Full service context backed by a temporary SQLite database."""
    context = LifecycleContext.create(migrated_db, rules, clock=clock)
    yield context
    context.shutdown()


@pytest.fixture
def project_rules_path() -> Path:
    return Path(__file__).resolve().parents[1] / "rules.yaml"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LIFECYCLE_DATA_DIR", str(tmp_path / "data"))
    if "LIFECYCLE_RULES_PATH" in os.environ:
        monkeypatch.delenv("LIFECYCLE_RULES_PATH")


def make_client(context: LifecycleContext) -> TestClient:
    """Routers mounted on a bare app, wired to the given context."""
    from content_lifecycle.api.routes import items, jobs, schedule, workflows

    app = FastAPI()
    for module in (schedule, workflows, items, jobs):
        app.include_router(module.router, prefix="/api")
    app.dependency_overrides[get_context] = lambda: context
    return TestClient(app)


@pytest.fixture
def client(ctx: LifecycleContext) -> TestClient:
    return make_client(ctx)


@pytest.fixture
def client_factory():
    return make_client
