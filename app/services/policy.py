"""
Правила напоминаний без обращения к БД: условие «пора уведомить»,
шаг повторения и срок откладывания.
"""
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from app.database import Reminder, ReminderType
from app.services.exceptions import InvalidReminder

TITLE_MAX_LENGTH = 200

# relativedelta прижимает день к концу месяца: 31.01 + 1 мес. = 28.02
_STEPS = {
    ReminderType.DAILY: timedelta(days=1),
    ReminderType.WEEKLY: timedelta(weeks=1),
    ReminderType.MONTHLY: relativedelta(months=1),
    ReminderType.YEARLY: relativedelta(years=1),
}


def is_due(reminder: Reminder, now: datetime) -> bool:
    """Активно, не выполнено, срок наступил и откладывание (если было) истекло."""
    return (
        bool(reminder.is_active)
        and not reminder.is_completed
        and reminder.reminder_datetime <= now
        and (reminder.snooze_until is None or reminder.snooze_until <= now)
    )


def next_occurrence(remind_at: datetime, reminder_type: ReminderType | str) -> Optional[datetime]:
    """Возвращает срок следующего экземпляра или None для разовых напоминаний."""
    try:
        reminder_type = ReminderType(reminder_type)
    except ValueError:
        raise ValueError(f"Unknown reminder type: {reminder_type}") from None
    if reminder_type is ReminderType.ONCE:
        return None
    return remind_at + _STEPS[reminder_type]


def snooze_deadline(now: datetime, minutes: int) -> datetime:
    # bool — подкласс int, но «True минут» считаем ошибкой
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidReminder("Snooze minutes must be an integer")
    if minutes < 0:
        raise InvalidReminder("Snooze minutes must not be negative")
    return now + timedelta(minutes=minutes)


def validate_title(title: Optional[str]) -> str:
    """Обрезает пробелы и проверяет, что заголовок не пустой."""
    title = (title or "").strip()
    if not title:
        raise InvalidReminder("Title is required")
    if len(title) > TITLE_MAX_LENGTH:
        raise InvalidReminder(f"Title must be at most {TITLE_MAX_LENGTH} characters")
    return title


def validate_future(remind_at: datetime, now: datetime) -> datetime:
    if remind_at <= now:
        raise InvalidReminder("Reminder date must be in the future")
    return remind_at
