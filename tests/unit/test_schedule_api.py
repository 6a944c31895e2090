"""
Tests for the scheduling API routes.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from content_lifecycle.core.errors import RepositoryUnavailableError


@pytest.fixture(autouse=True)
def items(ctx):
    ctx.content_repo.add_item("x", "article")
    ctx.content_repo.add_item("y", "article", published_locales=["en"])


def _at(clock, **delta) -> str:
    return (clock.now_utc() + timedelta(**delta)).isoformat()


def test_schedule_publication(client, clock):
    response = client.post(
        "/api/schedule/publish",
        json={"item_id": "x", "fire_at": _at(clock, hours=1), "locale_scope": ["fr", "en"]},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["item_id"] == "x"
    assert data["kind"] == "publish"
    assert data["status"] == "pending"
    assert data["locale_scope"] == ["en", "fr"]
    assert data["non_localized"] is True
    assert data["attempts"] == 0


def test_get_publication(client, clock):
    client.post("/api/schedule/publish", json={"item_id": "x", "fire_at": _at(clock, hours=1)})

    response = client.get("/api/schedule/publish/x")
    assert response.status_code == 200
    assert response.json()["locale_scope"] == "all"

    missing = client.get("/api/schedule/publish/y")
    assert missing.status_code == 404
    assert missing.json()["detail"]["errors"][0]["code"] == "NOT_SCHEDULED"


def test_duplicate_is_conflict(client, clock):
    body = {"item_id": "x", "fire_at": _at(clock, hours=1)}
    client.post("/api/schedule/publish", json=body)

    response = client.post("/api/schedule/publish", json=body)

    assert response.status_code == 409
    error = response.json()["detail"]["errors"][0]
    assert error == {
        "code": "ALREADY_SCHEDULED",
        "message": error["message"],
        "item_id": "x",
    }


def test_past_fire_at_is_validation_error(client, clock):
    response = client.post(
        "/api/schedule/publish", json={"item_id": "x", "fire_at": _at(clock, minutes=-1)}
    )
    assert response.status_code == 400
    assert response.json()["detail"]["errors"][0]["code"] == "INVALID_SCHEDULE"


def test_unknown_item_is_not_found(client, clock):
    response = client.post(
        "/api/schedule/publish", json={"item_id": "ghost", "fire_at": _at(clock, hours=1)}
    )
    assert response.status_code == 404
    assert response.json()["detail"]["errors"][0]["code"] == "ITEM_NOT_FOUND"


def test_bad_scope_string_is_request_error(client, clock):
    response = client.post(
        "/api/schedule/publish",
        json={"item_id": "x", "fire_at": _at(clock, hours=1), "locale_scope": "en"},
    )
    assert response.status_code == 422


def test_cancel_publication(client, clock):
    client.post("/api/schedule/publish", json={"item_id": "x", "fire_at": _at(clock, hours=1)})

    response = client.delete("/api/schedule/publish/x")
    assert response.status_code == 200
    assert response.json() == {"cancelled": True, "item_id": "x"}

    again = client.delete("/api/schedule/publish/x")
    assert again.status_code == 404
    assert again.json()["detail"]["errors"][0]["code"] == "NOT_SCHEDULED"


def test_cancel_while_firing_is_conflict(client, ctx, clock):
    client.post("/api/schedule/publish", json={"item_id": "x", "fire_at": _at(clock, seconds=1)})
    clock.advance(2)
    record = ctx.schedules.get_publication("x")
    ctx.schedules.claim(record.id, "other-worker", 60)

    response = client.delete("/api/schedule/publish/x")

    assert response.status_code == 409
    assert response.json()["detail"]["errors"][0]["code"] == "ALREADY_FIRING"


def test_schedule_unpublishing(client, clock):
    response = client.post(
        "/api/schedule/unpublish", json={"item_id": "y", "fire_at": _at(clock, days=1)}
    )
    assert response.status_code == 201
    assert response.json()["non_localized"] is False
    assert client.get("/api/schedule/unpublish/y").status_code == 200
    assert client.delete("/api/schedule/unpublish/y").json()["cancelled"] is True


def test_unpublish_unpublished_item_is_conflict(client, clock):
    response = client.post(
        "/api/schedule/unpublish", json={"item_id": "x", "fire_at": _at(clock, days=1)}
    )
    assert response.status_code == 409
    assert response.json()["detail"]["errors"][0]["code"] == "ITEM_NOT_PUBLISHED"


def test_calendar(client, clock):
    client.post("/api/schedule/publish", json={"item_id": "x", "fire_at": _at(clock, days=1)})
    client.post("/api/schedule/unpublish", json={"item_id": "y", "fire_at": _at(clock, days=2)})

    response = client.get(
        "/api/schedule/calendar",
        params={"start": _at(clock), "end": _at(clock, days=3)},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total_count"] == 2
    assert [e["item_id"] for e in data["events"]] == ["x", "y"]
    assert data["events"][0]["title"] == "Publish: x (all)"

    only_unpublish = client.get(
        "/api/schedule/calendar",
        params={"start": _at(clock), "end": _at(clock, days=3), "kind": "unpublish"},
    )
    assert [e["item_id"] for e in only_unpublish.json()["events"]] == ["y"]


def test_calendar_inverted_range(client, clock):
    response = client.get(
        "/api/schedule/calendar", params={"start": _at(clock, days=3), "end": _at(clock)}
    )
    assert response.status_code == 400


def test_run_due_fires(client, ctx, clock):
    client.post("/api/schedule/publish", json={"item_id": "x", "fire_at": _at(clock, seconds=1)})
    clock.advance(2)

    response = client.post("/api/schedule/run-due")

    assert response.status_code == 200
    data = response.json()
    assert data["processed"] == 1
    assert data["fired"] == 1
    assert data["results"][0]["outcome"] == "fired"
    assert ctx.content_repo.get_item_state("x").status == "published"


def test_failed_list_and_retry(client, ctx, clock, monkeypatch):
    client.post("/api/schedule/publish", json={"item_id": "x", "fire_at": _at(clock, seconds=1)})
    clock.advance(2)
    original = ctx.content_repo.get_item_state

    def down(item_id):
        raise RepositoryUnavailableError("offline")

    monkeypatch.setattr(ctx.content_repo, "get_item_state", down)
    for _ in range(ctx.rules.scheduling.max_attempts):
        ctx.dispatcher.tick()
        clock.advance(3600)

    failed = client.get("/api/schedule/failed").json()
    assert len(failed) == 1
    assert failed[0]["status"] == "fire_failed"
    assert failed[0]["last_error"] == "offline"

    monkeypatch.setattr(ctx.content_repo, "get_item_state", original)
    retried = client.post(f"/api/schedule/failed/{failed[0]['id']}/retry")
    assert retried.status_code == 200
    assert retried.json()["status"] == "pending"
    assert retried.json()["attempts"] == 0

    again = client.post(f"/api/schedule/failed/{failed[0]['id']}/retry")
    assert again.status_code == 404
    assert again.json()["detail"]["errors"][0]["code"] == "SCHEDULE_NOT_FOUND"
