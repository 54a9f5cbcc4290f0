"""Общие фикстуры: временная SQLite-база, управляемые часы, хранилище."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from app.database import Base, Reminder, build_sessionmaker
from app.services.notifier import Notifier
from app.services.store import ReminderStore

NOW = datetime(2026, 3, 15, 10, 0)
USER_ID = 100


class FakeClock:
    """Часы, которые двигаются только вручную."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingNotifier(Notifier):
    """Запоминает, о каких напоминаниях его просили уведомить."""

    def __init__(self, fail_ids=(), reject_ids=()):
        self.calls: list[int] = []
        self.fail_ids = set(fail_ids)
        self.reject_ids = set(reject_ids)

    async def notify(self, reminder: Reminder) -> bool:
        self.calls.append(reminder.id)
        if reminder.id in self.fail_ids:
            raise RuntimeError(f"boom {reminder.id}")
        return reminder.id not in self.reject_ids


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory, clock):
    return ReminderStore(session_factory=session_factory, clock=clock)


@pytest.fixture
def insert(session_factory):
    """Вставляет запись напрямую, минуя проверки create() (например, с датой в прошлом)."""
    async def _insert(**fields) -> Reminder:
        values = dict(
            user_id=USER_ID,
            title="купить хлеб",
            reminder_datetime=NOW - timedelta(hours=1),
            is_active=True,
            is_completed=False,
            notification_sent=False,
            created_at=NOW - timedelta(days=1),
            updated_at=NOW - timedelta(days=1),
        )
        values.update(fields)
        reminder = Reminder(**values)
        async with session_factory() as session:
            session.add(reminder)
            await session.commit()
        return reminder

    return _insert


@pytest.fixture
def fetch(session_factory):
    async def _fetch(reminder_id: int) -> Reminder | None:
        async with session_factory() as session:
            return await session.get(Reminder, reminder_id)

    return _fetch


@pytest.fixture
def make_notifier():
    return RecordingNotifier
