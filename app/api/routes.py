"""API routes"""
from datetime import timedelta
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from app.config import settings
from app.database import Category, Priority
from app.services.scheduler import NotificationScheduler, SchedulerStatus
from app.services.store import ReminderStore
from .schemas import (
    IntervalRequest, ReminderCreate, ReminderResponse, ReminderStats, ReminderUpdate, SnoozeRequest,
    TriggerResponse,
)


router = APIRouter(tags=["reminders"])
notifications_router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_store(request: Request) -> ReminderStore:
    return request.app.state.store


def get_scheduler(request: Request) -> NotificationScheduler:
    return request.app.state.scheduler


# ---------------------------------------------------------------------------
# Напоминания
# ---------------------------------------------------------------------------

@router.get("/reminders", response_model=List[ReminderResponse])
async def get_reminders(
    user_id: int,
    status: Optional[Literal["active", "completed", "inactive"]] = None,
    category: Optional[Category] = None,
    priority: Optional[Priority] = None,
    store: ReminderStore = Depends(get_store),
):
    """Get all reminders for a user"""
    return await store.list_for_user(user_id, status=status, category=category, priority=priority)


@router.post("/reminders", response_model=ReminderResponse, status_code=201)
async def create_reminder(
    user_id: int,
    reminder: ReminderCreate,
    store: ReminderStore = Depends(get_store),
):
    """Create a new reminder"""
    return await store.create(user_id=user_id, **reminder.model_dump())


@router.get("/reminders/due", response_model=List[ReminderResponse])
async def get_due_reminders(user_id: int, store: ReminderStore = Depends(get_store)):
    """Reminders that are due right now"""
    return await store.find_due(user_id=user_id)


@router.get("/reminders/upcoming", response_model=List[ReminderResponse])
async def get_upcoming_reminders(
    user_id: int,
    hours: int = Query(default=settings.upcoming_hours, ge=1, le=24 * 366),
    store: ReminderStore = Depends(get_store),
):
    """Reminders due within the next `hours` hours"""
    return await store.find_upcoming(horizon=timedelta(hours=hours), user_id=user_id)


@router.get("/reminders/stats", response_model=ReminderStats)
async def get_stats(user_id: int, store: ReminderStore = Depends(get_store)):
    return await store.stats(user_id)


@router.get("/reminders/{reminder_id}", response_model=ReminderResponse)
async def get_reminder(reminder_id: int, user_id: int, store: ReminderStore = Depends(get_store)):
    return await store.get(reminder_id, user_id)


@router.put("/reminders/{reminder_id}", response_model=ReminderResponse)
async def update_reminder(
    reminder_id: int,
    user_id: int,
    changes: ReminderUpdate,
    store: ReminderStore = Depends(get_store),
):
    """Update a reminder"""
    return await store.update(reminder_id, user_id, changes.model_dump(exclude_unset=True))


@router.put("/reminders/{reminder_id}/complete", response_model=ReminderResponse)
async def complete_reminder(reminder_id: int, user_id: int, store: ReminderStore = Depends(get_store)):
    """Complete a reminder; recurring ones get their next occurrence"""
    return await store.complete(reminder_id, user_id)


@router.put("/reminders/{reminder_id}/snooze", response_model=ReminderResponse)
async def snooze_reminder(
    reminder_id: int,
    user_id: int,
    body: Optional[SnoozeRequest] = None,
    store: ReminderStore = Depends(get_store),
):
    """Snooze a reminder"""
    minutes = body.minutes if body and body.minutes is not None else settings.default_snooze_minutes
    return await store.snooze(reminder_id, user_id, minutes)


@router.delete("/reminders/{reminder_id}")
async def delete_reminder(reminder_id: int, user_id: int, store: ReminderStore = Depends(get_store)):
    """Delete a reminder"""
    await store.delete(reminder_id, user_id)
    return {"status": "deleted", "id": reminder_id}


# ---------------------------------------------------------------------------
# Планировщик уведомлений
# ---------------------------------------------------------------------------

@notifications_router.get("/status", response_model=SchedulerStatus)
async def scheduler_status(scheduler: NotificationScheduler = Depends(get_scheduler)):
    return scheduler.status()


@notifications_router.post("/trigger", response_model=TriggerResponse)
async def trigger_check(scheduler: NotificationScheduler = Depends(get_scheduler)):
    """Run one check pass right now"""
    result = await scheduler.trigger_check()
    return TriggerResponse(success=result.ok and result.failed == 0, result=result)


@notifications_router.post("/start", response_model=SchedulerStatus)
async def start_scheduler(scheduler: NotificationScheduler = Depends(get_scheduler)):
    await scheduler.start()
    return scheduler.status()


@notifications_router.post("/stop", response_model=SchedulerStatus)
async def stop_scheduler(scheduler: NotificationScheduler = Depends(get_scheduler)):
    await scheduler.stop()
    return scheduler.status()


@notifications_router.put("/interval", response_model=SchedulerStatus)
async def set_check_interval(
    body: IntervalRequest,
    scheduler: NotificationScheduler = Depends(get_scheduler),
):
    """Change how often the scheduler checks for due reminders"""
    await scheduler.set_interval(body.seconds)
    return scheduler.status()
