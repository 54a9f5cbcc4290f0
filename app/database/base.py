"""Базовая конфигурация БД и управление сессиями"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


class Base(DeclarativeBase):
    """Базовый класс для всех ORM-моделей"""
    pass


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Фабрика асинхронных сессий для указанного движка"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


# Асинхронный движок SQLAlchemy
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True
)

AsyncSessionLocal = build_sessionmaker(engine)


async def init_db(target: AsyncEngine | None = None):
    """Создаёт таблицы в БД при первом запуске"""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

