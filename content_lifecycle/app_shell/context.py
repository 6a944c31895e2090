from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from content_lifecycle.adapters.alerts import LoggingAlertSink
from content_lifecycle.adapters.clock import SystemClock
from content_lifecycle.adapters.locks import ItemLockRegistry
from content_lifecycle.adapters.memory_repos import (
    InMemoryBulkJobRepo,
    InMemoryContentRepo,
    InMemoryScheduleRepo,
    InMemoryWorkflowRepo,
)
from content_lifecycle.adapters.sqlite_db import (
    SQLiteBulkJobRepo,
    SQLiteContentRepo,
    SQLiteItemLeaseRegistry,
    SQLiteScheduleRepo,
    SQLiteWorkflowRepo,
)
from content_lifecycle.components import dispatcher as dispatcher_component
from content_lifecycle.components import jobs as jobs_component
from content_lifecycle.components import schedules as schedules_component
from content_lifecycle.components import workflows as workflows_component
from content_lifecycle.components.dispatcher import AlertPort, Dispatcher
from content_lifecycle.components.jobs import JobTracker
from content_lifecycle.components.schedules import ScheduleStore
from content_lifecycle.components.transitions import StageValidator, TransitionEngine
from content_lifecycle.components.workflows import WorkflowStore
from content_lifecycle.core.ports import (
    BulkJobRepoPort,
    ContentRepositoryPort,
    ItemLockPort,
    ScheduleRepoPort,
    TimePort,
    WorkflowRepoPort,
)
from content_lifecycle.rules.models import Rules

logger = logging.getLogger(__name__)


@dataclass
class LifecycleContext:
    schedules: ScheduleStore
    workflows: WorkflowStore
    engine: TransitionEngine
    dispatcher: Dispatcher
    jobs: JobTracker
    schedule_repo: ScheduleRepoPort
    workflow_repo: WorkflowRepoPort
    job_repo: BulkJobRepoPort
    content_repo: ContentRepositoryPort
    locks: ItemLockPort
    alerts: AlertPort
    rules: Rules
    clock: Any = field(default=None)  # For testing/injection

    @classmethod
    def create(
        cls,
        db_path: str,
        rules: Rules,
        clock: TimePort | None = None,
        validator: StageValidator | None = None,
    ) -> LifecycleContext:
        """
        Wire every service against one SQLite database.

        Item locks are leases in the database, so API servers, dispatchers
        and job workers in separate processes still serialize per item.
        """
        busy = rules.scheduling.lock_timeout_seconds
        return cls._wire(
            schedule_repo=SQLiteScheduleRepo(db_path, busy),
            workflow_repo=SQLiteWorkflowRepo(db_path, busy),
            job_repo=SQLiteBulkJobRepo(db_path, busy),
            content_repo=SQLiteContentRepo(db_path, rules.locales.available, busy),
            locks=SQLiteItemLeaseRegistry(
                db_path,
                timeout_seconds=rules.scheduling.lock_timeout_seconds,
                lease_ttl_seconds=rules.scheduling.item_lease_ttl_seconds,
                busy_timeout_seconds=busy,
            ),
            rules=rules,
            clock=clock,
            validator=validator,
        )

    @classmethod
    def in_memory(
        cls,
        rules: Rules | None = None,
        clock: TimePort | None = None,
        validator: StageValidator | None = None,
    ) -> LifecycleContext:
        """Wire every service against in-memory stores (dev and tests)."""
        rules = rules or Rules()
        return cls._wire(
            schedule_repo=InMemoryScheduleRepo(),
            workflow_repo=InMemoryWorkflowRepo(),
            job_repo=InMemoryBulkJobRepo(),
            content_repo=InMemoryContentRepo(rules.locales.available),
            locks=ItemLockRegistry(timeout_seconds=rules.scheduling.lock_timeout_seconds),
            rules=rules,
            clock=clock,
            validator=validator,
        )

    @classmethod
    def _wire(
        cls,
        *,
        schedule_repo: ScheduleRepoPort,
        workflow_repo: WorkflowRepoPort,
        job_repo: BulkJobRepoPort,
        content_repo: ContentRepositoryPort,
        locks: ItemLockPort,
        rules: Rules,
        clock: TimePort | None,
        validator: StageValidator | None,
    ) -> LifecycleContext:
        clock = clock or SystemClock()
        alerts = LoggingAlertSink()

        schedules = ScheduleStore(
            repo=schedule_repo,
            content=content_repo,
            time_port=clock,
            config=schedules_component.build_config(rules.scheduling),
        )
        workflows = WorkflowStore(
            repo=workflow_repo,
            content=content_repo,
            time_port=clock,
            config=workflows_component.build_config(rules.workflows),
            locks=locks,
        )
        engine = TransitionEngine(
            content=content_repo, workflows=workflows, locks=locks, validator=validator
        )
        dispatcher = Dispatcher(
            schedules=schedules,
            engine=engine,
            alerts=alerts,
            time_port=clock,
            config=dispatcher_component.build_config(rules.scheduling),
        )
        jobs = JobTracker(
            repo=job_repo,
            engine=engine,
            time_port=clock,
            config=jobs_component.build_config(rules.jobs),
        )

        return cls(
            schedules=schedules,
            workflows=workflows,
            engine=engine,
            dispatcher=dispatcher,
            jobs=jobs,
            schedule_repo=schedule_repo,
            workflow_repo=workflow_repo,
            job_repo=job_repo,
            content_repo=content_repo,
            locks=locks,
            alerts=alerts,
            rules=rules,
            clock=clock,
        )

    def start_background(self) -> None:
        """Start dispatcher and job workers as the ops rules ask."""
        if self.rules.workflows.reconcile_on_startup:
            self.workflows.reconcile_dangling()
        if self.rules.ops.start_job_workers:
            self.jobs.start()
        if self.rules.ops.start_dispatcher:
            self.dispatcher.start()

    def shutdown(self) -> None:
        self.dispatcher.stop()
        self.jobs.stop()
