"""Доступ к напоминаниям в БД: выборки, CRUD, выполнение, откладывание"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import (
    AsyncSessionLocal, Category, DEFAULT_SNOOZE_MINUTES, Priority, Reminder, ReminderType,
)
from app.services.clock import Clock, to_utc_naive, utcnow
from app.services.exceptions import InvalidReminder, ReminderNotFound, StoreUnavailable
from app.services.policy import next_occurrence, snooze_deadline, validate_future, validate_title

logger = logging.getLogger(__name__)

STATUS_FILTERS = ("active", "completed", "inactive")
UPDATABLE_FIELDS = frozenset({
    "title", "description", "reminder_datetime", "reminder_type",
    "priority", "category", "is_active",
})


def _due_clause(now: datetime) -> tuple:
    """SQL-версия policy.is_due"""
    return (
        Reminder.is_active == True,
        Reminder.is_completed == False,
        Reminder.reminder_datetime <= now,
        or_(Reminder.snooze_until.is_(None), Reminder.snooze_until <= now),
    )


def _as_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidReminder(f"Invalid {field}: {value}") from None


class ReminderStore:
    """
    Фасад над таблицей reminders.

    Каждый метод открывает собственную сессию и транзакцию, поэтому объект
    можно разделять между планировщиком и API.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _transaction(self):
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error(f"Ошибка БД: {e}")
            raise StoreUnavailable(str(e)) from e

    # ------------------------------------------------------------------
    # Выборки
    # ------------------------------------------------------------------

    async def find_due(self, now: Optional[datetime] = None, user_id: Optional[int] = None) -> list[Reminder]:
        """Напоминания, которые пора отправить, от самых ранних к поздним."""
        now = now or self._clock()
        query = select(Reminder).where(*_due_clause(now))
        if user_id is not None:
            query = query.where(Reminder.user_id == user_id)
        query = query.order_by(Reminder.reminder_datetime, Reminder.id)
        async with self._transaction() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_upcoming(
        self,
        now: Optional[datetime] = None,
        horizon: timedelta = timedelta(hours=24),
        user_id: Optional[int] = None,
    ) -> list[Reminder]:
        """Активные невыполненные напоминания со сроком в (now, now + horizon]."""
        now = now or self._clock()
        query = select(Reminder).where(
            Reminder.is_active == True,
            Reminder.is_completed == False,
            Reminder.reminder_datetime > now,
            Reminder.reminder_datetime <= now + horizon,
        )
        if user_id is not None:
            query = query.where(Reminder.user_id == user_id)
        query = query.order_by(Reminder.reminder_datetime, Reminder.id)
        async with self._transaction() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get(self, reminder_id: int, user_id: int) -> Reminder:
        async with self._transaction() as session:
            reminder = await session.get(Reminder, reminder_id)
        if reminder is None or reminder.user_id != user_id:
            raise ReminderNotFound(reminder_id)
        return reminder

    async def list_for_user(
        self,
        user_id: int,
        status: Optional[str] = None,
        category: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> list[Reminder]:
        """Список напоминаний пользователя с фильтрами, по возрастанию срока."""
        query = select(Reminder).where(Reminder.user_id == user_id)
        if status == "active":
            query = query.where(Reminder.is_active == True, Reminder.is_completed == False)
        elif status == "completed":
            query = query.where(Reminder.is_completed == True)
        elif status == "inactive":
            query = query.where(Reminder.is_active == False)
        elif status is not None:
            raise InvalidReminder(f"Invalid status: {status}")
        if category is not None:
            query = query.where(Reminder.category == _as_enum(Category, category, "category"))
        if priority is not None:
            query = query.where(Reminder.priority == _as_enum(Priority, priority, "priority"))
        query = query.order_by(Reminder.reminder_datetime, Reminder.id)
        async with self._transaction() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def stats(self, user_id: int, now: Optional[datetime] = None) -> dict[str, Any]:
        """Сводка по напоминаниям пользователя."""
        now = now or self._clock()
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        end_of_today = start_of_today + timedelta(days=1)

        def count(*conditions):
            return select(func.count(Reminder.id)).where(Reminder.user_id == user_id, *conditions)

        async with self._transaction() as session:
            total = await session.scalar(count())
            active = await session.scalar(
                count(Reminder.is_active == True, Reminder.is_completed == False)
            )
            completed = await session.scalar(count(Reminder.is_completed == True))
            due = await session.scalar(count(*_due_clause(now)))
            today = await session.scalar(count(
                Reminder.reminder_datetime >= start_of_today,
                Reminder.reminder_datetime < end_of_today,
            ))
            by_category = await session.execute(
                select(Reminder.category, func.count(Reminder.id))
                .where(Reminder.user_id == user_id)
                .group_by(Reminder.category)
            )
            by_priority = await session.execute(
                select(Reminder.priority, func.count(Reminder.id))
                .where(Reminder.user_id == user_id)
                .group_by(Reminder.priority)
            )
            return {
                "total": total,
                "active": active,
                "completed": completed,
                "due": due,
                "today": today,
                "by_category": {c.value: n for c, n in by_category.all()},
                "by_priority": {p.value: n for p, n in by_priority.all()},
            }

    # ------------------------------------------------------------------
    # Изменения
    # ------------------------------------------------------------------

    async def create(
        self,
        user_id: int,
        title: str,
        reminder_datetime: datetime,
        description: Optional[str] = None,
        reminder_type: ReminderType | str = ReminderType.ONCE,
        priority: Priority | str = Priority.MEDIUM,
        category: Category | str = Category.PERSONAL,
    ) -> Reminder:
        """Создаёт напоминание; срок должен быть в будущем."""
        now = self._clock()
        reminder = Reminder(
            user_id=user_id,
            title=validate_title(title),
            description=description.strip() if description else None,
            reminder_datetime=validate_future(to_utc_naive(reminder_datetime), now),
            reminder_type=_as_enum(ReminderType, reminder_type, "reminder type"),
            priority=_as_enum(Priority, priority, "priority"),
            category=_as_enum(Category, category, "category"),
            is_active=True,
            is_completed=False,
            notification_sent=False,
            created_at=now,
            updated_at=now,
        )
        async with self._transaction() as session:
            session.add(reminder)
        logger.info(f"Напоминание {reminder.id} создано на {reminder.reminder_datetime}")
        return reminder

    async def update(self, reminder_id: int, user_id: int, changes: dict[str, Any]) -> Reminder:
        """
        Частичное обновление. notification_sent не сбрасывается даже при
        переносе срока: флаг относится к записи, а не к дате.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidReminder(f"Unknown fields: {', '.join(sorted(unknown))}")

        now = self._clock()
        values: dict[str, Any] = {}
        if "title" in changes:
            values["title"] = validate_title(changes["title"])
        if "description" in changes:
            description = changes["description"]
            values["description"] = description.strip() if description else None
        if changes.get("reminder_datetime") is not None:
            values["reminder_datetime"] = validate_future(to_utc_naive(changes["reminder_datetime"]), now)
        if changes.get("reminder_type") is not None:
            values["reminder_type"] = _as_enum(ReminderType, changes["reminder_type"], "reminder type")
        if changes.get("priority") is not None:
            values["priority"] = _as_enum(Priority, changes["priority"], "priority")
        if changes.get("category") is not None:
            values["category"] = _as_enum(Category, changes["category"], "category")
        if changes.get("is_active") is not None:
            values["is_active"] = bool(changes["is_active"])

        async with self._transaction() as session:
            reminder = await session.get(Reminder, reminder_id)
            if reminder is None or reminder.user_id != user_id:
                raise ReminderNotFound(reminder_id)
            for field, value in values.items():
                setattr(reminder, field, value)
            reminder.updated_at = now
        return reminder

    async def delete(self, reminder_id: int, user_id: int) -> None:
        async with self._transaction() as session:
            result = await session.execute(
                delete(Reminder).where(Reminder.id == reminder_id, Reminder.user_id == user_id)
            )
            if result.rowcount != 1:
                raise ReminderNotFound(reminder_id)
        logger.info(f"Напоминание {reminder_id} удалено")

    async def complete(self, reminder_id: int, user_id: int) -> Reminder:
        """
        Отмечает напоминание выполненным. Для периодических в той же
        транзакции создаётся следующий экземпляр.

        Условное обновление (только если ещё не выполнено) не даёт двум
        параллельным вызовам создать два следующих экземпляра.
        """
        now = self._clock()
        async with self._transaction() as session:
            result = await session.execute(
                update(Reminder)
                .where(
                    Reminder.id == reminder_id,
                    Reminder.user_id == user_id,
                    Reminder.is_active == True,
                    Reminder.is_completed == False,
                )
                .values(is_completed=True, completed_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ReminderNotFound(reminder_id)

            reminder = await session.get(Reminder, reminder_id)
            next_dt = next_occurrence(reminder.reminder_datetime, reminder.reminder_type)
            successor = None
            if next_dt is not None:
                successor = Reminder(
                    user_id=reminder.user_id,
                    title=reminder.title,
                    description=reminder.description,
                    reminder_datetime=next_dt,
                    reminder_type=reminder.reminder_type,
                    priority=reminder.priority,
                    category=reminder.category,
                    is_active=True,
                    is_completed=False,
                    notification_sent=False,
                    created_at=now,
                    updated_at=now,
                )
                session.add(successor)

        if successor is not None:
            logger.info(
                f"Напоминание {reminder_id} выполнено, следующее {successor.id} на {next_dt}"
            )
        else:
            logger.info(f"Напоминание {reminder_id} выполнено")
        return reminder

    async def snooze(
        self, reminder_id: int, user_id: int, minutes: int = DEFAULT_SNOOZE_MINUTES
    ) -> Reminder:
        """Откладывает напоминание на minutes минут от текущего момента."""
        now = self._clock()
        until = snooze_deadline(now, minutes)
        async with self._transaction() as session:
            reminder = await session.get(Reminder, reminder_id)
            if reminder is None or reminder.user_id != user_id or not reminder.is_active:
                raise ReminderNotFound(reminder_id)
            reminder.snooze_until = until
            reminder.updated_at = now
        logger.info(f"Напоминание {reminder_id} отложено до {until}")
        return reminder

    async def mark_notified(self, reminder_id: int) -> bool:
        """
        Ставит notification_sent=True, только если флаг ещё не стоял.

        Возвращает True, если флаг поставил именно этот вызов. Повторный
        вызов ничего не меняет и возвращает False.
        """
        async with self._transaction() as session:
            result = await session.execute(
                update(Reminder)
                .where(Reminder.id == reminder_id, Reminder.notification_sent == False)
                .values(notification_sent=True, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
