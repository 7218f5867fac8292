"""
System smoke test: the levels API in-process over the session's SQLite file.
Covers auth and capability checks, recompute after gameplay, notifications,
payments and the admin triggers.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from conftest import add_block, answer
from playtest_levels.config import get_settings
from playtest_levels.database import async_session_maker, init_db
from playtest_levels.kernel.identity.jwt import create_access_token
from playtest_levels.kernel.models import AnswerResult, LevelDefinition, LevelType, UserLevel
from playtest_levels.main import app

API = "/api/v1/levels"


def bearer(user_id: uuid.UUID, admin: bool = False) -> dict:
    capabilities = [get_settings().admin_capability] if admin else []
    token, _, _ = create_access_token(user_id, capabilities=capabilities)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client():
    """Async client over the app; tables and default ladders created."""
    await init_db()
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def played_block(user_id: uuid.UUID, correct: int = 2) -> uuid.UUID:
    """A one-question block the user just answered `correct` times."""
    async with async_session_maker() as session:
        block, (question,) = await add_block(session, ["science"], title="Photosynthesis")
        await answer(
            session,
            user_id,
            question,
            [AnswerResult.CORRECT] * correct,
            datetime.now(timezone.utc) - timedelta(minutes=correct),
            step=timedelta(minutes=1),
        )
        await session.commit()
    return block.id


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert "version" in data
    assert "X-Request-ID" in r.headers


@pytest.mark.asyncio
async def test_authentication_required(client: AsyncClient):
    r = await client.get(f"{API}/me")
    assert r.status_code == 401

    r = await client.get(f"{API}/me", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_admin_routes_need_capability(client: AsyncClient):
    user = bearer(uuid.uuid4())
    assert (await client.get(f"{API}/payments/pending", headers=user)).status_code == 403
    assert (await client.post(f"{API}/payments/process-weekly", json={}, headers=user)).status_code == 403
    assert (await client.post(f"{API}/admin/run-calculations", json={}, headers=user)).status_code == 403
    assert (await client.get(f"{API}/admin/audit", headers=user)).status_code == 403

    admin = bearer(uuid.uuid4(), admin=True)
    assert (await client.get(f"{API}/payments/pending", headers=admin)).status_code == 200


@pytest.mark.asyncio
async def test_level_definitions(client: AsyncClient):
    r = await client.get(f"{API}/definitions", params={"level_type": "creator"})
    assert r.status_code == 200
    names = [d["name"] for d in r.json()]
    assert names == ["Semilla", "Chispa", "Constructor", "Orador", "Visionario"]

    r = await client.get(f"{API}/definitions", params={"level_type": "teacher"})
    assert {d["level_type"] for d in r.json()} == {"instructor"}

    r = await client.get(f"{API}/definitions", params={"level_type": "wizard"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_recompute_after_gameplay_flow(client: AsyncClient):
    """Play a block, recompute, then read level, history, consolidation and the level-up notice."""
    user_id = uuid.uuid4()
    headers = bearer(user_id)
    block_id = await played_block(user_id)

    r = await client.post(f"{API}/recalculate/{block_id}", headers=headers)
    assert r.status_code == 200
    evaluation = r.json()
    assert evaluation["level_type"] == "learner"
    assert evaluation["level_name"] == "Estratega"
    assert evaluation["transition"]["direction"] == "placement"

    r = await client.get(f"{API}/me", headers=headers)
    levels = r.json()
    assert len(levels) == 1
    assert levels[0]["block_title"] == "Photosynthesis"

    r = await client.get(f"{API}/me/progression", headers=headers)
    assert [e["new_level"] for e in r.json()] == ["Estratega"]

    r = await client.get(f"{API}/me/badges", headers=headers)
    assert [b["name"] for b in r.json()] == ["Mente Estratégica"]

    r = await client.get(f"{API}/me/badges/collection", headers=headers)
    collection = r.json()
    assert collection["total_earned"] == 1
    assert collection["total_available"] == 15

    r = await client.get(f"{API}/me/consolidation/{block_id}", headers=headers)
    assert r.status_code == 200
    assert r.json()["question_count"] == 1

    r = await client.get(f"{API}/me/consolidation/{uuid.uuid4()}", headers=headers)
    assert r.status_code == 400

    r = await client.get(f"{API}/notifications", headers=headers)
    page = r.json()
    assert page["total"] == 1
    assert page["items"][0]["kind"] == "level_up"
    assert page["items"][0]["payload"]["badge"] == "Mente Estratégica"
    notification_id = page["items"][0]["id"]

    r = await client.get(f"{API}/notifications/unread-count", headers=headers)
    assert r.json()["unread"] == 1

    r = await client.put(f"{API}/notifications/{notification_id}/read", headers=headers)
    assert r.status_code == 204
    r = await client.put(f"{API}/notifications/{notification_id}/read", headers=bearer(uuid.uuid4()))
    assert r.status_code == 404

    r = await client.get(f"{API}/notifications/unread-count", headers=headers)
    assert r.json()["unread"] == 0

    r = await client.post(f"{API}/recalculate", headers=headers)
    assert r.status_code == 200
    assert r.json()["transitions"] == 0


@pytest.mark.asyncio
async def test_notification_preferences(client: AsyncClient):
    headers = bearer(uuid.uuid4())
    r = await client.get(f"{API}/notifications/preferences", headers=headers)
    assert r.json()["level_up"] is True

    r = await client.put(f"{API}/notifications/preferences", json={"level_up": False}, headers=headers)
    assert r.status_code == 200
    assert r.json()["level_up"] is False
    assert r.json()["weekly_payment"] is True

    r = await client.put(f"{API}/notifications/read-all", headers=headers)
    assert r.json()["updated"] == 0


@pytest.mark.asyncio
async def test_weekly_payment_run(client: AsyncClient):
    creator_id = uuid.uuid4()
    async with async_session_maker() as session:
        seed = await session.scalar(
            select(LevelDefinition).where(
                LevelDefinition.level_type == LevelType.CREATOR.value,
                LevelDefinition.level_order == 1,
            )
        )
        session.add(
            UserLevel(
                user_id=creator_id,
                level_type=LevelType.CREATOR.value,
                scope="global",
                current_level_id=seed.id,
                metric_value=3,
                metrics_snapshot={"active_users": 3},
                achieved_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
            )
        )
        await session.commit()

    admin = bearer(uuid.uuid4(), admin=True)
    r = await client.post(f"{API}/payments/process-weekly", json={"week_start": "2026-W41"}, headers=admin)
    assert r.status_code == 200
    batch = r.json()
    assert batch["week_start"] == "2026-10-05"
    assert [p["user_id"] for p in batch["paid"]] == [str(creator_id)]
    assert batch["total_paid"] == 40

    r = await client.post(f"{API}/payments/process-weekly", json={"week_start": "2026-10-05"}, headers=admin)
    assert r.json()["paid"] == []
    assert r.json()["skipped"][0]["reason"] == "already_paid"

    r = await client.get(f"{API}/payments", headers=bearer(creator_id))
    assert [p["status"] for p in r.json()] == ["paid"]

    r = await client.get(f"{API}/admin/weekly-summary/2026-W41", headers=admin)
    assert r.json()["by_status"]["paid"] == {"count": 1, "amount": 40}

    r = await client.post(f"{API}/payments/process-weekly", json={"week_start": "2026-10-06"}, headers=admin)
    assert r.status_code == 400

    r = await client.get(f"{API}/admin/audit", params={"event_type": "payments.batch_run"}, headers=admin)
    assert r.status_code == 200
    assert len(r.json()) >= 2


@pytest.mark.asyncio
async def test_admin_triggers(client: AsyncClient):
    player_id = uuid.uuid4()
    await played_block(player_id, correct=1)
    admin = bearer(uuid.uuid4(), admin=True)

    r = await client.post(f"{API}/admin/run-calculations", json={"lookback_hours": 1}, headers=admin)
    assert r.status_code == 200
    assert r.json()["users_processed"] >= 1
    assert r.json()["failures"] == []

    r = await client.post(f"{API}/admin/run-notifications", json={"margin": 30}, headers=admin)
    assert r.status_code == 200
    assert r.json()["notifications_sent"] >= 1

    r = await client.get(f"{API}/rankings/learner", headers=bearer(player_id))
    assert r.status_code == 200
    assert str(player_id) in {entry["user_id"] for entry in r.json()}

    r = await client.get(f"{API}/distribution", headers=bearer(player_id))
    assert r.status_code == 200

    r = await client.get(f"{API}/badges/leaderboard", params={"level_type": "learner"}, headers=bearer(player_id))
    assert r.status_code == 200
    assert str(player_id) in {entry["user_id"] for entry in r.json()}

    r = await client.get(f"{API}/admin/badge-stats", headers=admin)
    assert r.status_code == 200
    assert len(r.json()) == 15

    r = await client.post(f"{API}/admin/cleanup-notifications", json={"days_old": 30}, headers=admin)
    assert r.json() == {"deleted": 0, "days_old": 30}

    r = await client.get(f"{API}/admin/notification-stats", headers=admin)
    assert r.status_code == 200
    assert {s["kind"] for s in r.json()} >= {"level_up"}
