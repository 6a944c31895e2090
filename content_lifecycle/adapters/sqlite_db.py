"""
SQLite Database Adapter.

Implements the schedule, workflow and bulk job repository ports, a
development content repository and cross-process item leases on SQLite. Uses standard SQL so the
statements port to Postgres.

Atomic primitives (claim, insert-if-absent, cancel) are single statements
guarded by their WHERE clause or by a unique index, so several dispatcher
processes can share one database file. Lock contention surfaces as
RepositoryUnavailableError, which callers treat as retryable.
"""

from __future__ import annotations

import json
import os
import socket
import sqlite3
import time
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from content_lifecycle.adapters.locks import ItemLockRegistry

from content_lifecycle.core.entities import (
    BulkJob,
    ItemOutcome,
    ItemState,
    LocaleScope,
    ScheduleKind,
    ScheduleRecord,
    ScheduleStatus,
    Stage,
    StageAssignment,
    Workflow,
)
from content_lifecycle.core.errors import (
    ItemBusyError,
    ItemNotFoundError,
    RepositoryUnavailableError,
)
from content_lifecycle.core.ports.db import DueCursor
from content_lifecycle.core.timeutil import ensure_utc, iso, parse_iso

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def scope_to_json(scope: LocaleScope) -> str:
    return json.dumps(scope.to_wire())


def scope_from_json(s: str) -> LocaleScope:
    return LocaleScope.parse(json.loads(s))


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, busy_timeout_seconds: float = 5.0):
        self.db_path = db_path
        self._busy_timeout = busy_timeout_seconds

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self._busy_timeout)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        """Connection scoped to one unit of work: commit on success, rollback on error."""
        try:
            conn = self._get_conn()
        except sqlite3.OperationalError as e:
            raise RepositoryUnavailableError(f"SQLite unavailable: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.OperationalError as e:
            conn.rollback()
            raise RepositoryUnavailableError(f"SQLite unavailable: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# -----------------------------------------------------------------------------
# Schedules
# -----------------------------------------------------------------------------


class SQLiteScheduleRepo(SQLiteRepoBase):
    """SQLite implementation of ScheduleRepoPort."""

    def get_by_id(self, schedule_id: UUID) -> ScheduleRecord | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM schedules WHERE id = ?", (str(schedule_id),)
            ).fetchone()
            return self._map_row(row) if row else None

    def get_pending(self, item_id: str, kind: ScheduleKind) -> ScheduleRecord | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM schedules WHERE item_id = ? AND kind = ? AND status = 'pending'",
                (item_id, kind),
            ).fetchone()
            return self._map_row(row) if row else None

    def insert_if_absent(self, record: ScheduleRecord) -> bool:
        with self._conn() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO schedules (
                        id, item_id, kind, fire_at, locale_scope, non_localized,
                        status, attempts, next_attempt_at, claimed_by, claimed_until,
                        last_error, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(record.id),
                        record.item_id,
                        record.kind,
                        iso(record.fire_at),
                        scope_to_json(record.locale_scope),
                        int(record.non_localized),
                        record.status,
                        record.attempts,
                        iso(record.next_attempt_at),
                        record.claimed_by,
                        iso(record.claimed_until),
                        record.last_error,
                        iso(record.created_at),
                        iso(record.updated_at),
                    ),
                )
            except sqlite3.IntegrityError:
                # ux_schedules_pending: a pending record already exists
                return False
            return True

    def list_due(
        self,
        now_utc: datetime,
        after: DueCursor | None = None,
        limit: int = 100,
    ) -> list[ScheduleRecord]:
        now_iso = iso(now_utc)
        query = """
            SELECT * FROM schedules
            WHERE status = 'pending'
              AND fire_at <= ?
              AND (next_attempt_at IS NULL OR next_attempt_at <= ?)
              AND (claimed_until IS NULL OR claimed_until <= ?)
        """
        params: list[Any] = [now_iso, now_iso, now_iso]
        if after is not None:
            fire_at, item_id, kind = after
            cursor_iso = iso(fire_at)
            query += """
              AND (fire_at > ?
                   OR (fire_at = ? AND item_id > ?)
                   OR (fire_at = ? AND item_id = ? AND kind > ?))
            """
            params += [cursor_iso, cursor_iso, item_id, cursor_iso, item_id, kind]
        query += " ORDER BY fire_at ASC, item_id ASC, kind ASC LIMIT ?"
        params.append(limit)

        with self._conn() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._map_row(r) for r in rows]

    def claim(
        self,
        schedule_id: UUID,
        worker_id: str,
        now_utc: datetime,
        claimed_until: datetime,
    ) -> ScheduleRecord | None:
        now_iso = iso(now_utc)
        with self._conn() as conn:
            cursor = conn.execute(
                """
                UPDATE schedules
                SET claimed_by = ?, claimed_until = ?, updated_at = ?
                WHERE id = ? AND status = 'pending'
                  AND (claimed_until IS NULL OR claimed_until <= ?)
                """,
                (worker_id, iso(claimed_until), now_iso, str(schedule_id), now_iso),
            )
            if cursor.rowcount != 1:
                return None
            row = conn.execute(
                "SELECT * FROM schedules WHERE id = ?", (str(schedule_id),)
            ).fetchone()
            return self._map_row(row) if row else None

    def release(
        self,
        schedule_id: UUID,
        worker_id: str,
        attempts: int,
        next_attempt_at: datetime | None,
        error: str | None,
        now_utc: datetime,
    ) -> bool:
        with self._conn() as conn:
            cursor = conn.execute(
                """
                UPDATE schedules
                SET claimed_by = NULL, claimed_until = NULL, attempts = ?,
                    next_attempt_at = ?, last_error = ?, updated_at = ?
                WHERE id = ? AND claimed_by = ?
                """,
                (
                    attempts,
                    iso(next_attempt_at),
                    error,
                    iso(now_utc),
                    str(schedule_id),
                    worker_id,
                ),
            )
            return cursor.rowcount == 1

    def complete(self, schedule_id: UUID, worker_id: str) -> bool:
        with self._conn() as conn:
            cursor = conn.execute(
                "DELETE FROM schedules WHERE id = ? AND claimed_by = ?",
                (str(schedule_id), worker_id),
            )
            return cursor.rowcount == 1

    def mark_fire_failed(
        self,
        schedule_id: UUID,
        worker_id: str,
        attempts: int,
        error: str,
        now_utc: datetime,
    ) -> bool:
        with self._conn() as conn:
            cursor = conn.execute(
                """
                UPDATE schedules
                SET status = 'fire_failed', attempts = ?, last_error = ?,
                    claimed_by = NULL, claimed_until = NULL, next_attempt_at = NULL,
                    updated_at = ?
                WHERE id = ? AND claimed_by = ?
                """,
                (attempts, error, iso(now_utc), str(schedule_id), worker_id),
            )
            return cursor.rowcount == 1

    def delete_unclaimed(self, item_id: str, kind: ScheduleKind, now_utc: datetime) -> bool:
        with self._conn() as conn:
            cursor = conn.execute(
                """
                DELETE FROM schedules
                WHERE item_id = ? AND kind = ? AND status = 'pending'
                  AND (claimed_until IS NULL OR claimed_until <= ?)
                """,
                (item_id, kind, iso(now_utc)),
            )
            return cursor.rowcount == 1

    def requeue_failed(self, schedule_id: UUID, now_utc: datetime) -> bool:
        with self._conn() as conn:
            try:
                cursor = conn.execute(
                    """
                    UPDATE schedules
                    SET status = 'pending', attempts = 0, next_attempt_at = NULL,
                        updated_at = ?
                    WHERE id = ? AND status = 'fire_failed'
                    """,
                    (iso(now_utc), str(schedule_id)),
                )
            except sqlite3.IntegrityError:
                return False
            return cursor.rowcount == 1

    def list_in_range(
        self,
        start_utc: datetime,
        end_utc: datetime,
        kinds: Sequence[str] | None = None,
    ) -> list[ScheduleRecord]:
        query = "SELECT * FROM schedules WHERE fire_at >= ? AND fire_at <= ?"
        params: list[Any] = [iso(start_utc), iso(end_utc)]
        if kinds:
            placeholders = ", ".join("?" for _ in kinds)
            query += f" AND kind IN ({placeholders})"
            params.extend(kinds)
        query += " ORDER BY fire_at ASC, item_id ASC, kind ASC"
        with self._conn() as conn:
            return [self._map_row(r) for r in conn.execute(query, params).fetchall()]

    def list_by_status(self, status: ScheduleStatus) -> list[ScheduleRecord]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM schedules WHERE status = ? ORDER BY fire_at ASC, item_id ASC",
                (status,),
            ).fetchall()
            return [self._map_row(r) for r in rows]

    def list_for_item(self, item_id: str) -> list[ScheduleRecord]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM schedules WHERE item_id = ? ORDER BY fire_at ASC, kind ASC",
                (item_id,),
            ).fetchall()
            return [self._map_row(r) for r in rows]

    def _map_row(self, row: dict[str, Any]) -> ScheduleRecord:
        return ScheduleRecord(
            id=UUID(row["id"]),
            item_id=row["item_id"],
            kind=row["kind"],
            fire_at=ensure_utc(datetime.fromisoformat(row["fire_at"])),
            locale_scope=scope_from_json(row["locale_scope"]),
            non_localized=bool(row["non_localized"]),
            status=row["status"],
            attempts=row["attempts"],
            next_attempt_at=parse_iso(row["next_attempt_at"]),
            claimed_by=row["claimed_by"],
            claimed_until=parse_iso(row["claimed_until"]),
            last_error=row["last_error"],
            created_at=ensure_utc(datetime.fromisoformat(row["created_at"])),
            updated_at=ensure_utc(datetime.fromisoformat(row["updated_at"])),
        )


# -----------------------------------------------------------------------------
# Workflows
# -----------------------------------------------------------------------------


class SQLiteWorkflowRepo(SQLiteRepoBase):
    """SQLite implementation of WorkflowRepoPort."""

    def get_by_id(self, workflow_id: UUID) -> Workflow | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM workflows WHERE id = ?", (str(workflow_id),)
            ).fetchone()
            return self._map_row(row) if row else None

    def get_by_api_key(self, api_key: str) -> Workflow | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM workflows WHERE api_key = ?", (api_key,)).fetchone()
            return self._map_row(row) if row else None

    def list_all(self) -> list[Workflow]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM workflows ORDER BY created_at ASC").fetchall()
            return [self._map_row(r) for r in rows]

    def insert(self, workflow: Workflow) -> bool:
        with self._conn() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO workflows (id, name, api_key, stages_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(workflow.id),
                        workflow.name,
                        workflow.api_key,
                        self._stages_json(workflow.stages),
                        iso(workflow.created_at),
                        iso(workflow.updated_at),
                    ),
                )
            except sqlite3.IntegrityError:
                return False
            return True

    def update(self, workflow: Workflow) -> bool:
        with self._conn() as conn:
            try:
                conn.execute(
                    """
                    UPDATE workflows
                    SET name = ?, api_key = ?, stages_json = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        workflow.name,
                        workflow.api_key,
                        self._stages_json(workflow.stages),
                        iso(workflow.updated_at),
                        str(workflow.id),
                    ),
                )
            except sqlite3.IntegrityError:
                return False
            return True

    def delete(self, workflow_id: UUID) -> None:
        with self._conn() as conn:
            conn.execute("DELETE FROM workflows WHERE id = ?", (str(workflow_id),))

    def assign_model(self, model_id: str, workflow_id: UUID | None) -> None:
        with self._conn() as conn:
            if workflow_id is None:
                conn.execute("DELETE FROM model_workflows WHERE model_id = ?", (model_id,))
            else:
                conn.execute(
                    """
                    INSERT INTO model_workflows (model_id, workflow_id) VALUES (?, ?)
                    ON CONFLICT(model_id) DO UPDATE SET workflow_id = excluded.workflow_id
                    """,
                    (model_id, str(workflow_id)),
                )

    def workflow_id_for_model(self, model_id: str) -> UUID | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT workflow_id FROM model_workflows WHERE model_id = ?", (model_id,)
            ).fetchone()
            return UUID(row["workflow_id"]) if row else None

    def unassign_workflow(self, workflow_id: UUID) -> list[str]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT model_id FROM model_workflows WHERE workflow_id = ? ORDER BY model_id",
                (str(workflow_id),),
            ).fetchall()
            conn.execute("DELETE FROM model_workflows WHERE workflow_id = ?", (str(workflow_id),))
            return [r["model_id"] for r in rows]

    def get_assignment(self, item_id: str) -> StageAssignment | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM item_stages WHERE item_id = ?", (item_id,)).fetchone()
            return self._map_assignment(row) if row else None

    def set_assignment(self, assignment: StageAssignment) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO item_stages (item_id, workflow_id, stage_id, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(item_id) DO UPDATE SET
                    workflow_id = excluded.workflow_id,
                    stage_id = excluded.stage_id,
                    updated_at = excluded.updated_at
                """,
                (
                    assignment.item_id,
                    str(assignment.workflow_id) if assignment.workflow_id else None,
                    assignment.stage_id,
                    iso(assignment.updated_at),
                ),
            )

    def list_assignments(self, workflow_id: UUID | None = None) -> list[StageAssignment]:
        with self._conn() as conn:
            if workflow_id is None:
                rows = conn.execute("SELECT * FROM item_stages ORDER BY item_id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM item_stages WHERE workflow_id = ? ORDER BY item_id",
                    (str(workflow_id),),
                ).fetchall()
            return [self._map_assignment(r) for r in rows]

    @staticmethod
    def _stages_json(stages: list[Stage]) -> str:
        return json.dumps([s.model_dump() for s in stages])

    def _map_row(self, row: dict[str, Any]) -> Workflow:
        return Workflow(
            id=UUID(row["id"]),
            name=row["name"],
            api_key=row["api_key"],
            stages=[Stage.model_validate(s) for s in json.loads(row["stages_json"])],
            created_at=ensure_utc(datetime.fromisoformat(row["created_at"])),
            updated_at=ensure_utc(datetime.fromisoformat(row["updated_at"])),
        )

    def _map_assignment(self, row: dict[str, Any]) -> StageAssignment:
        return StageAssignment(
            item_id=row["item_id"],
            workflow_id=UUID(row["workflow_id"]) if row["workflow_id"] else None,
            stage_id=row["stage_id"],
            updated_at=ensure_utc(datetime.fromisoformat(row["updated_at"])),
        )


# -----------------------------------------------------------------------------
# Bulk Jobs
# -----------------------------------------------------------------------------


class SQLiteBulkJobRepo(SQLiteRepoBase):
    """SQLite implementation of BulkJobRepoPort."""

    def get_by_id(self, job_id: UUID) -> BulkJob | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM bulk_jobs WHERE id = ?", (str(job_id),)).fetchone()
            return self._map_row(row) if row else None

    def insert(self, job: BulkJob) -> BulkJob:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO bulk_jobs (
                    id, kind, item_ids_json, params_json, status, results_json,
                    created_at, started_at, completed_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(job.id),
                    job.kind,
                    json.dumps(job.item_ids),
                    json.dumps(job.params),
                    job.status,
                    self._results_json(job),
                    iso(job.created_at),
                    iso(job.started_at),
                    iso(job.completed_at),
                    iso(job.updated_at),
                ),
            )
            return job

    def update(self, job: BulkJob) -> bool:
        with self._conn() as conn:
            cursor = conn.execute(
                """
                UPDATE bulk_jobs
                SET status = ?, results_json = ?, started_at = ?, completed_at = ?,
                    updated_at = ?
                WHERE id = ? AND status NOT IN ('succeeded', 'partially_failed', 'failed')
                """,
                (
                    job.status,
                    self._results_json(job),
                    iso(job.started_at),
                    iso(job.completed_at),
                    iso(job.updated_at),
                    str(job.id),
                ),
            )
            return cursor.rowcount == 1

    def claim_pending(self, job_id: UUID, now_utc: datetime) -> BulkJob | None:
        now_iso = iso(now_utc)
        with self._conn() as conn:
            cursor = conn.execute(
                """
                UPDATE bulk_jobs
                SET status = 'running', started_at = COALESCE(started_at, ?), updated_at = ?
                WHERE id = ? AND status = 'pending'
                """,
                (now_iso, now_iso, str(job_id)),
            )
            if cursor.rowcount != 1:
                return None
            row = conn.execute("SELECT * FROM bulk_jobs WHERE id = ?", (str(job_id),)).fetchone()
            return self._map_row(row) if row else None

    def list_by_status(self, statuses: Sequence[str] | None = None) -> list[BulkJob]:
        with self._conn() as conn:
            if statuses:
                placeholders = ", ".join("?" for _ in statuses)
                rows = conn.execute(
                    f"SELECT * FROM bulk_jobs WHERE status IN ({placeholders}) "
                    "ORDER BY created_at ASC",
                    tuple(statuses),
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM bulk_jobs ORDER BY created_at ASC").fetchall()
            return [self._map_row(r) for r in rows]

    @staticmethod
    def _results_json(job: BulkJob) -> str:
        return json.dumps({k: v.to_dict() for k, v in job.per_item_results.items()})

    def _map_row(self, row: dict[str, Any]) -> BulkJob:
        return BulkJob(
            id=UUID(row["id"]),
            kind=row["kind"],
            item_ids=json.loads(row["item_ids_json"]),
            params=json.loads(row["params_json"]),
            status=row["status"],
            per_item_results={
                k: ItemOutcome.from_dict(v) for k, v in json.loads(row["results_json"]).items()
            },
            created_at=ensure_utc(datetime.fromisoformat(row["created_at"])),
            started_at=parse_iso(row["started_at"]),
            completed_at=parse_iso(row["completed_at"]),
            updated_at=ensure_utc(datetime.fromisoformat(row["updated_at"])),
        )


# -----------------------------------------------------------------------------
# Content Repository (dev stand-in for the external collaborator)
# -----------------------------------------------------------------------------


class SQLiteContentRepo(SQLiteRepoBase):
    """SQLite implementation of ContentRepositoryPort."""

    def __init__(
        self,
        db_path: str,
        locales: Iterable[str] = ("en",),
        busy_timeout_seconds: float = 5.0,
    ):
        super().__init__(db_path, busy_timeout_seconds)
        self._locales = list(locales)

    def add_item(
        self,
        item_id: str,
        model_id: str,
        published_locales: Iterable[str] = (),
        non_localized_published: bool = False,
        now_utc: datetime | None = None,
    ) -> ItemState:
        published = set(published_locales)
        state = ItemState(
            item_id=item_id,
            model_id=model_id,
            publication={
                loc: ("published" if loc in published else "unpublished") for loc in self._locales
            },
            non_localized_published=non_localized_published,
        )
        stamp = iso(now_utc or datetime.now(UTC))
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO content_items (id, model_id, non_localized_published, created_at,
                                           updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (item_id, model_id, int(non_localized_published), stamp, stamp),
            )
            conn.executemany(
                "INSERT INTO content_item_locales (item_id, locale, status) VALUES (?, ?, ?)",
                [(item_id, loc, status) for loc, status in state.publication.items()],
            )
        return state

    def remove_item(self, item_id: str) -> None:
        with self._conn() as conn:
            conn.execute("DELETE FROM content_item_locales WHERE item_id = ?", (item_id,))
            conn.execute("DELETE FROM content_items WHERE id = ?", (item_id,))

    def get_item_state(self, item_id: str) -> ItemState | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM content_items WHERE id = ?", (item_id,)).fetchone()
            if not row:
                return None
            locale_rows = conn.execute(
                "SELECT locale, status FROM content_item_locales WHERE item_id = ? ORDER BY locale",
                (item_id,),
            ).fetchall()
            return ItemState(
                item_id=row["id"],
                model_id=row["model_id"],
                publication={r["locale"]: r["status"] for r in locale_rows},
                non_localized_published=bool(row["non_localized_published"]),
            )

    def set_publication_state(
        self,
        item_id: str,
        locale_scope: LocaleScope,
        published: bool,
        non_localized: bool = False,
    ) -> None:
        status = "published" if published else "unpublished"
        with self._conn() as conn:
            row = conn.execute("SELECT id FROM content_items WHERE id = ?", (item_id,)).fetchone()
            if not row:
                raise ItemNotFoundError(item_id)
            if locale_scope.is_all:
                conn.execute(
                    "UPDATE content_item_locales SET status = ? WHERE item_id = ?",
                    (status, item_id),
                )
            else:
                conn.executemany(
                    """
                    INSERT INTO content_item_locales (item_id, locale, status) VALUES (?, ?, ?)
                    ON CONFLICT(item_id, locale) DO UPDATE SET status = excluded.status
                    """,
                    [(item_id, loc, status) for loc in sorted(locale_scope.locales)],
                )
            stamp = iso(datetime.now(UTC))
            if non_localized:
                conn.execute(
                    "UPDATE content_items SET non_localized_published = ?, updated_at = ? "
                    "WHERE id = ?",
                    (int(published), stamp, item_id),
                )
            else:
                conn.execute(
                    "UPDATE content_items SET updated_at = ? WHERE id = ?", (stamp, item_id)
                )

    def item_exists(self, item_id: str) -> bool:
        with self._conn() as conn:
            row = conn.execute("SELECT 1 AS x FROM content_items WHERE id = ?", (item_id,)).fetchone()
            return row is not None

    def available_locales(self) -> list[str]:
        return list(self._locales)


# -----------------------------------------------------------------------------
# Item leases
# -----------------------------------------------------------------------------


class SQLiteItemLeaseRegistry(SQLiteRepoBase):
    """
    Per-item locks shared by every process using the database file.

    Threads of this process first serialize on an in-process registry; the
    winner then takes a lease row with a conditional upsert. A lease
    expires after lease_ttl_seconds, so a crashed holder never blocks an
    item for good. Lease times use the wall clock, never an injected one.
    """

    def __init__(
        self,
        db_path: str,
        timeout_seconds: float = 10.0,
        lease_ttl_seconds: float = 60.0,
        poll_interval_seconds: float = 0.05,
        busy_timeout_seconds: float = 5.0,
        owner: str | None = None,
    ):
        super().__init__(db_path, busy_timeout_seconds)
        self._local = ItemLockRegistry(timeout_seconds)
        self._timeout = timeout_seconds
        self._ttl = timedelta(seconds=lease_ttl_seconds)
        self._poll = poll_interval_seconds
        self.owner = owner or f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"

    @contextmanager
    def hold(self, item_id: str, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the item's lease.

        Raises:
            ItemBusyError: lease not taken within the timeout
        """
        wait = self._timeout if timeout is None else timeout
        deadline = time.monotonic() + wait
        with self._local.hold(item_id, wait):
            while not self._try_acquire(item_id):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ItemBusyError(item_id, wait)
                time.sleep(min(self._poll, remaining))
            try:
                yield
            finally:
                self._release(item_id)

    def is_held(self, item_id: str) -> bool:
        if self._local.is_held(item_id):
            return True
        with self._conn() as conn:
            row = conn.execute(
                "SELECT 1 AS x FROM item_locks WHERE item_id = ? AND expires_at > ?",
                (item_id, iso(datetime.now(UTC))),
            ).fetchone()
            return row is not None

    def _try_acquire(self, item_id: str) -> bool:
        now = datetime.now(UTC)
        with self._conn() as conn:
            cursor = conn.execute(
                """
                INSERT INTO item_locks (item_id, owner, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(item_id) DO UPDATE
                SET owner = excluded.owner, expires_at = excluded.expires_at
                WHERE item_locks.expires_at <= ? OR item_locks.owner = excluded.owner
                """,
                (item_id, self.owner, iso(now + self._ttl), iso(now)),
            )
            return cursor.rowcount == 1

    def _release(self, item_id: str) -> None:
        with self._conn() as conn:
            conn.execute(
                "DELETE FROM item_locks WHERE item_id = ? AND owner = ?",
                (item_id, self.owner),
            )
