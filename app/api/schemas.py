"""Pydantic-схемы для API"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_serializer

from app.database import Category, Priority, ReminderType
from app.services.scheduler import CheckResult


class ReminderCreate(BaseModel):
    """Схема для создания напоминания"""
    title: str = Field(..., min_length=1, max_length=200, description="Заголовок напоминания")
    description: Optional[str] = Field(None, max_length=1000)
    reminder_datetime: datetime = Field(..., description="Когда напомнить (должно быть в будущем)")
    reminder_type: ReminderType = ReminderType.ONCE
    priority: Priority = Priority.MEDIUM
    category: Category = Category.PERSONAL


class ReminderUpdate(BaseModel):
    """Частичное обновление: передаются только изменяемые поля"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    reminder_datetime: Optional[datetime] = None
    reminder_type: Optional[ReminderType] = None
    priority: Optional[Priority] = None
    category: Optional[Category] = None
    is_active: Optional[bool] = None


class SnoozeRequest(BaseModel):
    minutes: Optional[int] = Field(None, ge=0, description="На сколько минут отложить")


class IntervalRequest(BaseModel):
    seconds: float = Field(..., gt=0, description="Период проверки в секундах")


class ReminderResponse(BaseModel):
    """Схема ответа с данными напоминания"""
    id: int
    user_id: int
    title: str
    description: Optional[str]
    reminder_datetime: datetime
    reminder_type: ReminderType
    priority: Priority
    category: Category
    is_active: bool
    is_completed: bool
    completed_at: Optional[datetime]
    snooze_until: Optional[datetime]
    notification_sent: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_serializer("reminder_datetime", "completed_at", "snooze_until", "created_at", "updated_at")
    def serialize_as_utc(self, value: Optional[datetime]) -> Optional[datetime]:
        # в базе наивное UTC; клиенту отдаём с явной зоной
        if value is None or value.tzinfo is not None:
            return value
        return value.replace(tzinfo=timezone.utc)


class ReminderStats(BaseModel):
    total: int
    active: int
    completed: int
    due: int
    today: int
    by_category: dict[str, int]
    by_priority: dict[str, int]


class TriggerResponse(BaseModel):
    success: bool
    result: CheckResult
