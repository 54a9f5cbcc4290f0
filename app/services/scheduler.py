"""Сервис планировщика уведомлений о напоминаниях"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import BaseModel

from app.database import Reminder
from app.services.clock import Clock, to_utc_naive, utcnow
from app.services.exceptions import DeliveryFailure
from app.services.notifier import Notifier
from app.services.store import ReminderStore

logger = logging.getLogger(__name__)

CHECK_JOB_ID = "reminder_check"
DEFAULT_INTERVAL_SECONDS = 60


class CheckResult(BaseModel):
    """Итог одного прохода проверки"""
    checked_at: datetime
    due: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    ok: bool = True
    error: Optional[str] = None


class SchedulerStatus(BaseModel):
    is_running: bool
    interval_seconds: float
    last_check: Optional[datetime] = None
    next_run: Optional[datetime] = None
    passes: int = 0
    sent: int = 0
    failed: int = 0


class NotificationScheduler:
    """
    Периодически ищет наступившие напоминания и отправляет уведомления.

    Экземпляр создаётся один раз при старте приложения и передаётся в API.
    Проходы одного экземпляра никогда не пересекаются: периодический и
    ручной запуск ждут друг друга на общем asyncio.Lock.
    """

    def __init__(
        self,
        store: ReminderStore,
        notifier: Notifier,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        clock: Clock = utcnow,
        claim_before_dispatch: bool = False,
    ):
        self._store = store
        self._notifier = notifier
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._claim_first = claim_before_dispatch
        self._scheduler = AsyncIOScheduler(timezone=pytz.utc)
        self._lock = asyncio.Lock()
        # start/stop/set_interval не пересекаются между собой
        self._lifecycle_lock = asyncio.Lock()
        self._running = False

        self.last_check: Optional[datetime] = None
        self.passes = 0
        self.sent = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Запускает периодическую проверку и сразу выполняет один проход"""
        async with self._lifecycle_lock:
            if self._running:
                logger.info("Планировщик уже запущен")
                return

            self._running = True
            if not self._scheduler.running:
                self._scheduler.start()
            self._scheduler.add_job(
                self._scheduled_check,
                trigger=IntervalTrigger(seconds=self.interval_seconds),
                id=CHECK_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info(f"Планировщик запущен, проверка каждые {self.interval_seconds} с")

        await self.check()

    async def stop(self):
        """Останавливает периодическую проверку, дождавшись текущего прохода"""
        async with self._lifecycle_lock:
            if not self._running:
                logger.info("Планировщик не запущен")
                return

            self._running = False
            if self._scheduler.get_job(CHECK_JOB_ID):
                self._scheduler.remove_job(CHECK_JOB_ID)

            async with self._lock:
                pass

            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            logger.info("Планировщик остановлен")

    async def set_interval(self, seconds: float):
        """Меняет период проверки; у работающего планировщика отсчёт начинается заново"""
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or seconds <= 0:
            raise ValueError(f"Check interval must be a positive number of seconds, got {seconds!r}")

        async with self._lifecycle_lock:
            self.interval_seconds = seconds
            if self._running and self._scheduler.get_job(CHECK_JOB_ID):
                self._scheduler.reschedule_job(CHECK_JOB_ID, trigger=IntervalTrigger(seconds=seconds))
            logger.info(f"Период проверки изменён: {seconds} с")

    async def trigger_check(self) -> CheckResult:
        """Ручной проход; расписание периодических проверок не сдвигается"""
        logger.info("Ручной запуск проверки напоминаний")
        return await self.check()

    def status(self) -> SchedulerStatus:
        job = self._scheduler.get_job(CHECK_JOB_ID)
        next_run = job.next_run_time if job is not None else None
        return SchedulerStatus(
            is_running=self._running,
            interval_seconds=self.interval_seconds,
            last_check=self.last_check,
            next_run=to_utc_naive(next_run) if next_run else None,
            passes=self.passes,
            sent=self.sent,
            failed=self.failed,
        )

    async def check(self) -> CheckResult:
        async with self._lock:
            return await self._check_pass()

    async def _scheduled_check(self):
        async with self._lock:
            # stop() мог случиться, пока этот запуск ждал блокировку
            if not self._running:
                return
            await self._check_pass()

    async def _check_pass(self) -> CheckResult:
        now = self._clock()
        self.last_check = now
        self.passes += 1
        result = CheckResult(checked_at=now)

        try:
            due = await self._store.find_due(now)
        except Exception as e:
            logger.error(f"Ошибка при поиске напоминаний: {e}")
            result.ok = False
            result.error = str(e)
            return result

        result.due = len(due)
        if due:
            logger.info(f"Найдено напоминаний к отправке: {len(due)}")

        for reminder in due:
            if reminder.notification_sent:
                result.skipped += 1
                continue
            try:
                delivered = await self._deliver(reminder)
            except DeliveryFailure as e:
                logger.warning(f"Напоминание {reminder.id} не доставлено: {e}")
                result.failed += 1
                continue
            except Exception:
                logger.exception(f"Ошибка при отправке напоминания {reminder.id}")
                result.failed += 1
                continue
            if delivered:
                result.sent += 1
            else:
                result.skipped += 1

        self.sent += result.sent
        self.failed += result.failed
        if result.due:
            logger.info(
                f"Проверка завершена: отправлено {result.sent}, "
                f"пропущено {result.skipped}, ошибок {result.failed}"
            )
        return result

    async def _deliver(self, reminder: Reminder) -> bool:
        """True, если уведомление отправил этот проход"""
        if self._claim_first:
            if not await self._store.mark_notified(reminder.id):
                logger.info(f"Напоминание {reminder.id} уже захвачено другим процессом")
                return False
            if not await self._notifier.notify(reminder):
                raise DeliveryFailure(f"Notifier rejected reminder {reminder.id}")
            return True

        if not await self._notifier.notify(reminder):
            raise DeliveryFailure(f"Notifier rejected reminder {reminder.id}")
        if not await self._store.mark_notified(reminder.id):
            logger.warning(f"Напоминание {reminder.id} уже было отмечено другим процессом")
        logger.info(f"Напоминание {reminder.id} отправлено пользователю {reminder.user_id}")
        return True
