"""
Tests for JobTracker.

- Submission validation and pending status
- Per-item outcomes; one failure never aborts the batch
- Transient item failures are retried, then recorded
- Terminal status aggregation and immutability
- wait() never mutates; recover() resumes unfinished jobs
"""

from __future__ import annotations

import pytest

from content_lifecycle.adapters.locks import ItemLockRegistry
from content_lifecycle.adapters.memory_repos import (
    InMemoryBulkJobRepo,
    InMemoryContentRepo,
    InMemoryWorkflowRepo,
)
from content_lifecycle.components.jobs import (
    JobsConfig,
    JobTracker,
    SubmitJobInput,
    WaitJobInput,
    create_tracker,
    run_submit,
    run_wait,
)
from content_lifecycle.components.transitions import StageVerdict, TransitionEngine
from content_lifecycle.components.workflows import WorkflowStore
from content_lifecycle.core.entities import BulkJob, ItemOutcome
from content_lifecycle.core.errors import (
    INTERNAL_ERROR,
    INVALID_JOB,
    INVALID_LOCALE_SCOPE,
    ITEM_GONE,
    JOB_NOT_FOUND,
    TRANSIENT_FAILURE,
    TRANSITION_REJECTED,
    RepositoryUnavailableError,
)


@pytest.fixture
def content() -> InMemoryContentRepo:
    repo = InMemoryContentRepo(["en", "fr"])
    for item_id in ("a1", "a2", "a3"):
        repo.add_item(item_id, "article")
    return repo


@pytest.fixture
def workflows(content, clock, stages) -> WorkflowStore:
    store = WorkflowStore(InMemoryWorkflowRepo(), content, clock)
    workflow, _ = store.create_workflow("Editorial", "editorial", stages)
    store.assign_to_model("article", workflow.id)
    return store


@pytest.fixture
def engine(content, workflows) -> TransitionEngine:
    return TransitionEngine(content, workflows, ItemLockRegistry(timeout_seconds=0.2))


@pytest.fixture
def repo() -> InMemoryBulkJobRepo:
    return InMemoryBulkJobRepo()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def tracker(repo, engine, clock, sleeps) -> JobTracker:
    tracker = JobTracker(
        repo,
        engine,
        clock,
        JobsConfig(item_retry_attempts=3, item_retry_backoff_seconds=0.25, max_wait_seconds=2.0),
        sleep=sleeps.append,
    )
    yield tracker
    tracker.stop()


class TestSubmit:
    def test_returns_pending_job(self, tracker, repo) -> None:
        job, errors = tracker.submit("bulk_stage_move", ["a1", "a2"], {"target_stage_id": "review"})
        assert errors == []
        assert job.status == "pending"
        assert job.item_ids == ["a1", "a2"]
        assert job.params == {"target_stage_id": "review"}
        assert repo.get_by_id(job.id).status == "pending"

    def test_duplicate_item_ids_collapsed(self, tracker) -> None:
        job, _ = tracker.submit("bulk_publish", ["a1", "a2", "a1"], {})
        assert job.item_ids == ["a1", "a2"]

    def test_publish_params_normalized(self, tracker) -> None:
        job, _ = tracker.submit("bulk_publish", ["a1"], {"locale_scope": ["fr", "en"]})
        assert job.params == {"locale_scope": ["en", "fr"], "non_localized": True}

        job, _ = tracker.submit("bulk_unpublish", ["a1"], {})
        assert job.params == {"locale_scope": "all"}

    @pytest.mark.parametrize(
        "kind,item_ids,params",
        [
            ("bulk_delete", ["a1"], {}),
            ("bulk_publish", [], {}),
            ("bulk_stage_move", ["a1"], {}),
            ("bulk_stage_move", ["a1"], {"target_stage_id": ""}),
            ("bulk_publish", ["a1"], {"locale_scope": "en"}),
        ],
    )
    def test_invalid_jobs(self, tracker, kind, item_ids, params) -> None:
        job, errors = tracker.submit(kind, item_ids, params)
        assert job is None
        assert errors[0].code == INVALID_JOB

    @pytest.mark.parametrize("scope", [[], ["zz"], ["en", "zz"]])
    def test_locale_scope_must_be_configured(self, tracker, content, scope) -> None:
        job, errors = tracker.submit("bulk_publish", ["a1"], {"locale_scope": scope})

        assert job is None
        assert errors[0].code == INVALID_LOCALE_SCOPE
        assert errors[0].category == "validation"
        assert content.get_item_state("a1").status == "unpublished"

    def test_resubmission_gets_new_id(self, tracker) -> None:
        first, _ = tracker.submit("bulk_publish", ["a1"], {})
        second, _ = tracker.submit("bulk_publish", ["a1"], {})
        assert first.id != second.id


class TestProcess:
    def test_all_succeed(self, tracker, workflows, clock) -> None:
        job, _ = tracker.submit("bulk_stage_move", ["a1", "a2", "a3"], {"target_stage_id": "review"})

        done = tracker.process(job.id)

        assert done.status == "succeeded"
        assert done.succeeded_count == 3
        assert done.started_at == clock.now_utc()
        assert done.completed_at == clock.now_utc()
        assert all(workflows.get_current_stage(i).id == "review" for i in ("a1", "a2", "a3"))

    def test_partial_failure_enumerated_per_item(self, tracker, content) -> None:
        content.remove_item("a2")
        job, _ = tracker.submit("bulk_publish", ["a1", "a2", "a3"], {})

        done = tracker.process(job.id)

        assert done.status == "partially_failed"
        assert done.per_item_results["a1"] == ItemOutcome(status="succeeded")
        assert done.per_item_results["a2"].status == "failed"
        assert done.per_item_results["a2"].code == ITEM_GONE
        assert done.per_item_results["a3"].status == "succeeded"

    def test_all_fail(self, tracker) -> None:
        job, _ = tracker.submit("bulk_stage_move", ["a1", "a2"], {"target_stage_id": "nope"})
        done = tracker.process(job.id)
        assert done.status == "failed"
        assert done.failed_count == 2

    def test_noop_counts_as_success(self, tracker) -> None:
        job, _ = tracker.submit("bulk_unpublish", ["a1"], {})
        done = tracker.process(job.id)
        assert done.status == "succeeded"
        assert "already unpublished" in done.per_item_results["a1"].message

    def test_validator_rejection_recorded(self, repo, content, workflows, clock) -> None:
        engine = TransitionEngine(
            content,
            workflows,
            ItemLockRegistry(),
            validator=lambda req: StageVerdict.reject("frozen")
            if req.item_id == "a2"
            else True,
        )
        tracker = JobTracker(repo, engine, clock, sleep=lambda s: None)
        job, _ = tracker.submit("bulk_stage_move", ["a1", "a2"], {"target_stage_id": "approved"})

        done = tracker.process(job.id)

        assert done.per_item_results["a2"].code == TRANSITION_REJECTED
        assert done.per_item_results["a2"].message == "frozen"

    def test_transient_failure_retried_then_succeeds(
        self, tracker, content, monkeypatch, sleeps
    ) -> None:
        original = content.get_item_state
        failures = {"a1": 2}

        def flaky(item_id):
            if failures.get(item_id, 0) > 0:
                failures[item_id] -= 1
                raise RepositoryUnavailableError("blip")
            return original(item_id)

        monkeypatch.setattr(content, "get_item_state", flaky)
        job, _ = tracker.submit("bulk_publish", ["a1"], {})

        done = tracker.process(job.id)

        assert done.per_item_results["a1"].status == "succeeded"
        assert sleeps == [0.25, 0.25]

    def test_transient_failure_exhausted(self, tracker, content, monkeypatch) -> None:
        def down(item_id):
            raise RepositoryUnavailableError("content store offline")

        monkeypatch.setattr(content, "get_item_state", down)
        job, _ = tracker.submit("bulk_publish", ["a1"], {})

        done = tracker.process(job.id)

        assert done.status == "failed"
        assert done.per_item_results["a1"].code == TRANSIENT_FAILURE

    def test_unexpected_error_recorded(self, tracker, content, monkeypatch) -> None:
        def broken(*args, **kwargs):
            raise KeyError("bad row")

        monkeypatch.setattr(content, "set_publication_state", broken)
        job, _ = tracker.submit("bulk_publish", ["a1", "a2"], {})

        done = tracker.process(job.id)

        assert {o.code for o in done.per_item_results.values()} == {INTERNAL_ERROR}

    def test_terminal_job_is_immutable(self, tracker, repo) -> None:
        job, _ = tracker.submit("bulk_publish", ["a1"], {})
        done = tracker.process(job.id)

        done.per_item_results["a1"] = ItemOutcome(status="failed", code="X")
        assert repo.update(done) is False
        assert tracker.process(job.id).per_item_results["a1"].status == "succeeded"


class TestInspection:
    def test_get_unknown(self, tracker) -> None:
        from uuid import uuid4

        job, errors = tracker.get(uuid4())
        assert job is None
        assert errors[0].code == JOB_NOT_FOUND

    def test_list_by_status(self, tracker) -> None:
        first, _ = tracker.submit("bulk_publish", ["a1"], {})
        tracker.submit("bulk_publish", ["a2"], {})
        tracker.process(first.id)

        assert [j.status for j in tracker.list_jobs(["succeeded"])] == ["succeeded"]
        assert len(tracker.list_jobs(["pending"])) == 1
        assert len(tracker.list_jobs()) == 2

    def test_wait_times_out_without_mutating(self, tracker, repo, sleeps) -> None:
        job, _ = tracker.submit("bulk_publish", ["a1"], {})

        snapshot, errors = tracker.wait(job.id, 0.05)

        assert errors == []
        assert snapshot.status == "pending"
        assert repo.get_by_id(job.id).status == "pending"

    def test_wait_returns_terminal_immediately(self, tracker, sleeps) -> None:
        job, _ = tracker.submit("bulk_publish", ["a1"], {})
        tracker.process(job.id)
        snapshot, _ = tracker.wait(job.id, 10)
        assert snapshot.status == "succeeded"
        assert sleeps == []

    def test_entry_points(self, tracker) -> None:
        submitted = run_submit(
            SubmitJobInput(kind="bulk_publish", item_ids=("a1",)), tracker=tracker
        )
        assert submitted.success
        tracker.drain()
        waited = run_wait(WaitJobInput(job_id=submitted.job.id), tracker=tracker)
        assert waited.job.status == "succeeded"

    def test_create_tracker_uses_rules(self, repo, engine, rules) -> None:
        tracker = create_tracker(repo, engine, rules=rules.jobs)
        job, errors = tracker.submit("bulk_unpublish", ["a1"], {"locale_scope": ["en"]})
        assert errors == []
        assert tracker.process(job.id).status == "succeeded"


class TestWorkers:
    def test_background_workers_complete_jobs(self, repo, engine, clock) -> None:
        tracker = JobTracker(
            repo, engine, clock, JobsConfig(max_workers=2, wait_poll_interval_seconds=0.01)
        )
        tracker.start()
        try:
            job, _ = tracker.submit("bulk_publish", ["a1", "a2", "a3"], {})
            done, _ = tracker.wait(job.id, 5)
        finally:
            tracker.stop()
        assert done.status == "succeeded"

    def test_drain_processes_pending(self, tracker) -> None:
        tracker.submit("bulk_publish", ["a1"], {})
        tracker.submit("bulk_unpublish", ["a2"], {})
        drained = tracker.drain()
        assert [j.status for j in drained] == ["succeeded", "succeeded"]
        assert tracker.drain() == []

    def test_resumes_running_job_skipping_recorded_items(self, repo, engine, clock, content) -> None:
        job = BulkJob(
            kind="bulk_publish",
            item_ids=["a1", "a2"],
            params={"locale_scope": "all", "non_localized": True},
            status="running",
            per_item_results={"a1": ItemOutcome(status="succeeded")},
        )
        repo.insert(job)
        tracker = JobTracker(repo, engine, clock, JobsConfig(wait_poll_interval_seconds=0.01))

        tracker.start()
        try:
            done, _ = tracker.wait(job.id, 5)
        finally:
            tracker.stop()

        assert done.status == "succeeded"
        # a1 was recorded before the restart and is not re-applied
        assert content.get_item_state("a1").status == "unpublished"
        assert content.get_item_state("a2").status == "published"

    def test_submit_without_workers_stays_pending(self, repo, engine, clock) -> None:
        tracker = JobTracker(repo, engine, clock)
        job, _ = tracker.submit("bulk_publish", ["a1"], {})
        assert not tracker.is_running
        assert repo.get_by_id(job.id).status == "pending"
