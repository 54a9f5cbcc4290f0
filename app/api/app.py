"""FastAPI-приложение"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import init_db
from app.services.exceptions import InvalidReminder, ReminderNotFound, StoreUnavailable
from app.services.notifier import Notifier, build_notifier
from app.services.scheduler import NotificationScheduler
from app.services.store import ReminderStore
from .routes import notifications_router, router

logger = logging.getLogger(__name__)


async def _start_after(delay: asyncio.Task, scheduler: NotificationScheduler):
    """Даём соединению с БД устояться перед первым проходом"""
    await delay
    await scheduler.start()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Создаёт хранилище и планировщик при старте, останавливает при выключении"""
    if app.state.store is None:
        logger.info("Инициализация базы данных...")
        await init_db()
        app.state.store = ReminderStore()
    if app.state.scheduler is None:
        if app.state.notifier is None:
            app.state.notifier = build_notifier(settings)
        app.state.scheduler = NotificationScheduler(
            app.state.store,
            app.state.notifier,
            interval_seconds=settings.check_interval_seconds,
            claim_before_dispatch=settings.claim_before_dispatch,
        )
    scheduler = app.state.scheduler

    logger.info(f"Запуск планировщика через {app.state.startup_delay} с...")
    delay = asyncio.create_task(asyncio.sleep(app.state.startup_delay))
    starter = asyncio.create_task(_start_after(delay, scheduler))
    try:
        yield
    finally:
        # отменяем только ожидание; начавшийся первый проход доводим до конца
        if not delay.done():
            delay.cancel()
        await asyncio.wait({starter})
        logger.info("Остановка планировщика...")
        await scheduler.stop()
        if app.state.notifier is not None:
            await app.state.notifier.close()


def create_app(
    store: Optional[ReminderStore] = None,
    scheduler: Optional[NotificationScheduler] = None,
    notifier: Optional[Notifier] = None,
    startup_delay: Optional[float] = None,
) -> FastAPI:
    """
    Собирает приложение. Готовые store/scheduler передаются в тестах;
    без них всё создаётся в lifespan из настроек. Переданный notifier
    закрывается при выключении приложения.
    """
    app = FastAPI(
        title="PingMe API",
        description="REST API напоминаний и планировщика уведомлений",
        version="0.2.0",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.scheduler = scheduler
    app.state.notifier = notifier
    app.state.startup_delay = settings.startup_delay_seconds if startup_delay is None else startup_delay

    # CORS — разрешаем все источники (для разработки)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")
    app.include_router(notifications_router, prefix="/api/v1")

    @app.exception_handler(ReminderNotFound)
    async def not_found_handler(request: Request, exc: ReminderNotFound):
        return JSONResponse(status_code=404, content={"detail": "Reminder not found"})

    @app.exception_handler(InvalidReminder)
    async def invalid_handler(request: Request, exc: InvalidReminder):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})

    @app.get("/")
    async def root():
        """Проверка работоспособности API"""
        return {
            "status": "ok",
            "service": "PingMe API",
            "version": "0.2.0"
        }

    @app.get("/health")
    async def health():
        """Healthcheck"""
        return {"status": "healthy"}

    return app


app = create_app()
