"""
HTTP surface: activity recording, today view, admin endpoints, error mapping
"""
from datetime import date

import pytest
from pymongo.errors import AutoReconnect

from backend.app.core.config import settings
from backend.app.schemas.progress import GameResultCreate
from backend.app.services import evaluation
from backend.app.services import progress as progress_store

USER = "api-user"
TODAY = "2024-01-01"


def _game(**overrides) -> dict:
    payload = {"game_type": "flashcard", "score": 10, "max_score": 10, "xp_earned": 15}
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_today_view_generates_the_catalog(client):
    response = await client.get(f"/api/challenges/users/{USER}/today")

    assert response.status_code == 200
    slugs = {item["slug"] for item in response.json()}
    assert "daily-xp-goal" in slugs
    assert "category-explorer" not in slugs
    assert all(item["effective_date"] == TODAY for item in response.json())

    catalog = await client.get(f"/api/challenges/catalog/{TODAY}")
    assert len(catalog.json()) == 8


@pytest.mark.asyncio
async def test_activity_completes_challenges_once(client):
    login = await client.post(f"/api/progress/{USER}/login")
    assert login.status_code == 200
    assert [c["challenge_id"] for c in login.json()["evaluation"]["completed"]] == [f"{TODAY}:daily-login"]

    completions = []
    for _ in range(5):
        response = await client.post(f"/api/progress/{USER}/games", json=_game())
        assert response.status_code == 200
        completions += [c["challenge_id"] for c in response.json()["evaluation"]["completed"]]

    assert completions == [f"{TODAY}:perfect-score-master", f"{TODAY}:game-marathon"]
    assert response.json()["snapshot"]["games_played"] == 5

    again = await client.post(f"/api/challenges/users/{USER}/evaluate")
    assert again.status_code == 200
    assert again.json()["completed"] == []

    profile = (await client.get(f"/api/progress/{USER}")).json()
    assert profile["total_xp"] == 5 * 15 + 10 + 80 + 100
    assert profile["special_rewards"] == ["Perfect Score Badge", "Marathon Badge"]

    stats = (await client.get(f"/api/challenges/users/{USER}/stats")).json()
    assert stats["completed_challenges"] == 3
    assert stats["current_streak"] == 1

    history = (await client.get(f"/api/challenges/users/{USER}/history", params={"limit": 2})).json()
    assert len(history) == 2


@pytest.mark.asyncio
async def test_level_change_opens_advanced_challenges(client):
    response = await client.put(f"/api/progress/{USER}/level", json={"level": "Advanced"})
    assert response.status_code == 200
    assert response.json()["level"] == "Advanced"

    today = (await client.get(f"/api/challenges/users/{USER}/today")).json()
    assert "category-explorer" in {item["slug"] for item in today}


@pytest.mark.asyncio
async def test_invalid_requests_are_rejected(client):
    assert (await client.post(f"/api/progress/{USER}/games", json=_game(score=11))).status_code == 422
    assert (await client.put(f"/api/progress/{USER}/level", json={"level": "Expert"})).status_code == 422
    assert (await client.get(f"/api/challenges/users/{USER}/history", params={"limit": 0})).status_code == 422


@pytest.mark.asyncio
async def test_admin_endpoints_require_the_configured_key(client, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", "scheduler-secret")
    headers = {"X-Admin-Key": "scheduler-secret"}

    assert (await client.post("/api/challenges/catalog/today")).status_code == 403

    generated = await client.post("/api/challenges/catalog/today", headers=headers)
    assert generated.status_code == 200
    assert len(generated.json()) == 8

    future = await client.post("/api/challenges/catalog/2024-01-02", headers=headers)
    assert future.status_code == 201
    assert {item["effective_date"] for item in future.json()} == {"2024-01-02"}

    challenge_id = f"{TODAY}:daily-xp-goal"
    retired = await client.patch(f"/api/admin/challenges/{challenge_id}", json={"active": False}, headers=headers)
    assert retired.status_code == 200
    assert retired.json()["active"] is False

    active = (await client.get(f"/api/challenges/catalog/{TODAY}")).json()
    assert challenge_id not in {item["id"] for item in active}
    everything = (await client.get(f"/api/challenges/catalog/{TODAY}", params={"active_only": False})).json()
    assert challenge_id in {item["id"] for item in everything}


@pytest.mark.asyncio
async def test_unknown_definition_maps_to_error_payload(client):
    response = await client.patch(f"/api/admin/challenges/{TODAY}:missing", json={"active": False})

    assert response.status_code == 404
    assert response.json()["code"] == "challenge_not_found"

    assert (await client.get(f"/api/admin/challenges/{TODAY}:missing")).status_code == 404


@pytest.mark.asyncio
async def test_today_catalog_alias(client):
    await client.get(f"/api/challenges/users/{USER}/today")

    response = await client.get("/api/challenges/catalog/today")

    assert response.status_code == 200
    assert len(response.json()) == 8
    assert {item["effective_date"] for item in response.json()} == {TODAY}


@pytest.mark.asyncio
async def test_completion_failure_payload_lists_finished_challenges(client, db, now, monkeypatch):
    day = date(2024, 1, 1)
    await progress_store.record_login(db, USER, day, now=now)
    for _ in range(5):
        await progress_store.record_game_result(db, USER, day, GameResultCreate(**_game()), now=now)

    real_mark_completed = evaluation.mark_completed
    calls = {"count": 0}

    async def mark_completed_failing_second(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 2:
            raise AutoReconnect("connection lost")
        return await real_mark_completed(*args, **kwargs)

    monkeypatch.setattr(evaluation, "mark_completed", mark_completed_failing_second)
    failed = await client.post(f"/api/challenges/users/{USER}/evaluate")

    assert failed.status_code == 502
    assert failed.json()["code"] == "reward_application_failed"
    assert [c["challenge_id"] for c in failed.json()["completed"]] == [f"{TODAY}:daily-login"]

    monkeypatch.setattr(evaluation, "mark_completed", real_mark_completed)
    retried = await client.post(f"/api/challenges/users/{USER}/evaluate")

    assert retried.status_code == 200
    assert [c["challenge_id"] for c in retried.json()["completed"]] == [
        f"{TODAY}:game-marathon",
        f"{TODAY}:perfect-score-master",
    ]
    profile = (await client.get(f"/api/progress/{USER}")).json()
    assert profile["total_xp"] == 5 * 15 + 10 + 80 + 100
