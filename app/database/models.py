"""ORM-модели базы данных"""
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import String, BigInteger, Integer, DateTime, Boolean, Text, Enum
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

DEFAULT_SNOOZE_MINUTES = 10


class ReminderType(str, enum.Enum):
    """Периодичность напоминания"""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Category(str, enum.Enum):
    PERSONAL = "personal"
    WORK = "work"
    HEALTH = "health"
    SOCIAL = "social"
    OTHER = "other"


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    # Храним значения ("daily"), а не имена членов ("DAILY")
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


class Reminder(Base):
    """Модель напоминания. Все даты — наивные datetime в UTC."""
    __tablename__ = "reminders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, index=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reminder_datetime: Mapped[datetime] = mapped_column(DateTime, index=True)
    reminder_type: Mapped[ReminderType] = mapped_column(
        _enum_column(ReminderType), default=ReminderType.ONCE
    )
    priority: Mapped[Priority] = mapped_column(_enum_column(Priority), default=Priority.MEDIUM)
    category: Mapped[Category] = mapped_column(_enum_column(Category), default=Category.PERSONAL)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    snooze_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notification_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<Reminder id={self.id} user_id={self.user_id} at={self.reminder_datetime}>"
