"""
Тесты REST API: CRUD напоминаний и управление планировщиком.

Запуск:
    pytest tests/test_api.py -v
"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.api import create_app
from app.config import settings
from app.database import ReminderType
from app.services.scheduler import NotificationScheduler

USER_ID = 100


@pytest.fixture
def notifier(make_notifier):
    return make_notifier()


@pytest.fixture
async def scheduler(store, notifier, clock):
    sched = NotificationScheduler(store, notifier, interval_seconds=60, clock=clock)
    yield sched
    await sched.stop()


@pytest.fixture
async def client(store, scheduler):
    app = create_app(store=store, scheduler=scheduler)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _iso(dt):
    return dt.isoformat()


def _parse(value):
    # pydantic пишет UTC как "Z", fromisoformat до 3.11 его не понимает
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _utc(dt):
    return dt.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Служебные эндпоинты
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("path,status", [("/", "ok"), ("/health", "healthy")])
async def test_liveness(client, path, status):
    response = await client.get(path)
    assert response.status_code == 200
    assert response.json()["status"] == status


# ---------------------------------------------------------------------------
# Напоминания
# ---------------------------------------------------------------------------

class TestReminders:
    @pytest.mark.asyncio
    async def test_create(self, client, clock):
        response = await client.post(
            "/api/v1/reminders",
            params={"user_id": USER_ID},
            json={
                "title": "оплатить интернет",
                "reminder_datetime": _iso(clock.now + timedelta(days=1)),
                "reminder_type": "monthly",
                "priority": "high",
            },
        )
        assert response.status_code == 201
        body = response.json()
        assert body["title"] == "оплатить интернет"
        assert body["reminder_type"] == "monthly"
        assert body["priority"] == "high"
        assert body["category"] == "personal"
        assert body["notification_sent"] is False

    @pytest.mark.asyncio
    async def test_create_in_past_rejected(self, client, clock):
        response = await client.post(
            "/api/v1/reminders",
            params={"user_id": USER_ID},
            json={"title": "t", "reminder_datetime": _iso(clock.now - timedelta(minutes=1))},
        )
        assert response.status_code == 400
        assert "future" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_create_blank_title_rejected(self, client, clock):
        response = await client.post(
            "/api/v1/reminders",
            params={"user_id": USER_ID},
            json={"title": "   ", "reminder_datetime": _iso(clock.now + timedelta(hours=1))},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_timestamps_returned_in_utc(self, client, clock):
        # 13:00 по Москве = 10:00 UTC следующего дня
        response = await client.post(
            "/api/v1/reminders",
            params={"user_id": USER_ID},
            json={"title": "созвон", "reminder_datetime": "2026-03-16T13:00:00+03:00"},
        )
        body = response.json()

        remind_at = _parse(body["reminder_datetime"])
        assert remind_at.utcoffset() == timedelta(0)
        assert remind_at == datetime(2026, 3, 16, 10, 0, tzinfo=timezone.utc)
        assert _parse(body["created_at"]) == _utc(clock.now)
        assert body["completed_at"] is None

    @pytest.mark.asyncio
    async def test_list_and_get(self, client, insert):
        r = await insert()
        await insert(user_id=200)

        listed = await client.get("/api/v1/reminders", params={"user_id": USER_ID})
        assert [x["id"] for x in listed.json()] == [r.id]

        single = await client.get(f"/api/v1/reminders/{r.id}", params={"user_id": USER_ID})
        assert single.json()["id"] == r.id

    @pytest.mark.asyncio
    async def test_get_foreign_is_404(self, client, insert):
        r = await insert(user_id=200)
        response = await client.get(f"/api/v1/reminders/{r.id}", params={"user_id": USER_ID})
        assert response.status_code == 404
        assert response.json()["detail"] == "Reminder not found"

    @pytest.mark.asyncio
    async def test_due_and_upcoming(self, client, insert, clock):
        due = await insert()
        upcoming = await insert(reminder_datetime=clock.now + timedelta(hours=3))

        due_resp = await client.get("/api/v1/reminders/due", params={"user_id": USER_ID})
        assert [x["id"] for x in due_resp.json()] == [due.id]

        up_resp = await client.get("/api/v1/reminders/upcoming", params={"user_id": USER_ID})
        assert [x["id"] for x in up_resp.json()] == [upcoming.id]

        narrow = await client.get("/api/v1/reminders/upcoming", params={"user_id": USER_ID, "hours": 1})
        assert narrow.json() == []

    @pytest.mark.asyncio
    async def test_update(self, client, insert, clock):
        r = await insert()
        response = await client.put(
            f"/api/v1/reminders/{r.id}",
            params={"user_id": USER_ID},
            json={"category": "work", "reminder_datetime": _iso(clock.now + timedelta(hours=5))},
        )
        assert response.status_code == 200
        assert response.json()["category"] == "work"
        assert response.json()["title"] == r.title

    @pytest.mark.asyncio
    async def test_complete_daily_rolls_over(self, client, insert, clock):
        r = await insert(reminder_type=ReminderType.DAILY)
        response = await client.put(f"/api/v1/reminders/{r.id}/complete", params={"user_id": USER_ID})
        assert response.status_code == 200
        assert response.json()["is_completed"] is True

        active = await client.get("/api/v1/reminders", params={"user_id": USER_ID, "status": "active"})
        [successor] = active.json()
        assert successor["id"] != r.id
        assert _parse(successor["reminder_datetime"]) == _utc(r.reminder_datetime + timedelta(days=1))

    @pytest.mark.asyncio
    async def test_complete_missing_is_404(self, client):
        response = await client.put("/api/v1/reminders/999/complete", params={"user_id": USER_ID})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_snooze_default_and_custom(self, client, insert, clock):
        r = await insert()
        default = await client.put(f"/api/v1/reminders/{r.id}/snooze", params={"user_id": USER_ID})
        assert _parse(default.json()["snooze_until"]) == _utc(clock.now + timedelta(minutes=10))

        custom = await client.put(
            f"/api/v1/reminders/{r.id}/snooze", params={"user_id": USER_ID}, json={"minutes": 15}
        )
        assert _parse(custom.json()["snooze_until"]) == _utc(clock.now + timedelta(minutes=15))

    @pytest.mark.asyncio
    async def test_snooze_negative_rejected(self, client, insert):
        r = await insert()
        response = await client.put(
            f"/api/v1/reminders/{r.id}/snooze", params={"user_id": USER_ID}, json={"minutes": -1}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, client, insert):
        r = await insert()
        response = await client.delete(f"/api/v1/reminders/{r.id}", params={"user_id": USER_ID})
        assert response.json() == {"status": "deleted", "id": r.id}

        again = await client.delete(f"/api/v1/reminders/{r.id}", params={"user_id": USER_ID})
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_stats(self, client, insert):
        await insert()
        response = await client.get("/api/v1/reminders/stats", params={"user_id": USER_ID})
        body = response.json()
        assert body["total"] == 1
        assert body["due"] == 1
        assert body["by_priority"] == {"medium": 1}


# ---------------------------------------------------------------------------
# Планировщик
# ---------------------------------------------------------------------------

class TestNotifications:
    @pytest.mark.asyncio
    async def test_status_initial(self, client):
        body = (await client.get("/api/v1/notifications/status")).json()
        assert body["is_running"] is False
        assert body["interval_seconds"] == 60
        assert body["last_check"] is None

    @pytest.mark.asyncio
    async def test_trigger(self, client, insert, notifier):
        r = await insert()
        response = await client.post("/api/v1/notifications/trigger")
        body = response.json()
        assert body["success"] is True
        assert body["result"]["sent"] == 1
        assert notifier.calls == [r.id]

    @pytest.mark.asyncio
    async def test_trigger_reports_failure(self, client, insert, notifier):
        r = await insert()
        notifier.fail_ids.add(r.id)
        body = (await client.post("/api/v1/notifications/trigger")).json()
        assert body["success"] is False
        assert body["result"]["failed"] == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, client):
        started = (await client.post("/api/v1/notifications/start")).json()
        assert started["is_running"] is True
        assert started["passes"] == 1

        stopped = (await client.post("/api/v1/notifications/stop")).json()
        assert stopped["is_running"] is False

    @pytest.mark.asyncio
    async def test_set_interval(self, client, scheduler):
        response = await client.put("/api/v1/notifications/interval", json={"seconds": 30})
        assert response.status_code == 200
        assert response.json()["interval_seconds"] == 30
        assert scheduler.interval_seconds == 30

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seconds", [0, -1])
    async def test_set_interval_rejects_non_positive(self, client, seconds):
        response = await client.put("/api/v1/notifications/interval", json={"seconds": seconds})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Старт и остановка приложения
# ---------------------------------------------------------------------------

class TestLifespan:
    @pytest.mark.asyncio
    async def test_scheduler_starts_after_delay(self, store, scheduler):
        app = create_app(store=store, scheduler=scheduler, startup_delay=0.1)
        async with app.router.lifespan_context(app):
            await asyncio.sleep(0.02)
            assert scheduler.is_running is False

            await asyncio.sleep(0.2)
            assert scheduler.is_running is True
            assert scheduler.passes == 1

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_shutdown_during_delay_never_starts(self, store, scheduler, notifier, insert):
        await insert()
        app = create_app(store=store, scheduler=scheduler, startup_delay=10)
        async with app.router.lifespan_context(app):
            pass

        await asyncio.sleep(0.05)
        assert scheduler.is_running is False
        assert scheduler.passes == 0
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_shutdown_lets_first_pass_finish(self, store, insert, fetch, clock):
        r = await insert()
        started, finished = asyncio.Event(), []

        async def slow_notify(reminder):
            started.set()
            await asyncio.sleep(0.1)
            finished.append(reminder.id)
            return True

        notifier = MagicMock()
        notifier.notify = AsyncMock(side_effect=slow_notify)
        scheduler = NotificationScheduler(store, notifier, clock=clock)

        app = create_app(store=store, scheduler=scheduler, startup_delay=0)
        async with app.router.lifespan_context(app):
            await started.wait()

        assert finished == [r.id]
        assert (await fetch(r.id)).notification_sent is True
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_builds_scheduler_and_closes_notifier(self, store, insert):
        await insert(reminder_datetime=datetime(2020, 1, 1, 9, 0))
        notified = asyncio.Event()

        async def notify(reminder):
            notified.set()
            return True

        notifier = MagicMock()
        notifier.notify = AsyncMock(side_effect=notify)
        notifier.close = AsyncMock()

        app = create_app(store=store, notifier=notifier, startup_delay=0)
        async with app.router.lifespan_context(app):
            await asyncio.wait_for(notified.wait(), timeout=1)
            scheduler = app.state.scheduler
            assert scheduler.is_running is True
            assert scheduler.interval_seconds == settings.check_interval_seconds

        assert scheduler.is_running is False
        notifier.close.assert_awaited_once()
