"""Database package"""
from .base import Base, AsyncSessionLocal, build_sessionmaker, engine, init_db
from .models import Reminder, ReminderType, Priority, Category, DEFAULT_SNOOZE_MINUTES

__all__ = [
    "Base", "AsyncSessionLocal", "build_sessionmaker", "engine", "init_db",
    "Reminder", "ReminderType", "Priority", "Category",
    "DEFAULT_SNOOZE_MINUTES",
]
