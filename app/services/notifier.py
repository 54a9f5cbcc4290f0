"""Каналы доставки уведомлений о напоминаниях"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from html import escape

import pytz
from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError

from app.config import Settings
from app.database import Priority, Reminder
from app.services.exceptions import DeliveryFailure

logger = logging.getLogger(__name__)

PRIORITY_MARKS = {
    Priority.LOW: "🟢",
    Priority.MEDIUM: "🟡",
    Priority.HIGH: "🔴",
}


def _local(dt: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """UTC (наивный) → время в часовом поясе пользователя."""
    return pytz.utc.localize(dt).astimezone(tz)


class Notifier(ABC):
    """Канал доставки. notify() возвращает True, если уведомление доставлено."""

    @abstractmethod
    async def notify(self, reminder: Reminder) -> bool:
        ...

    async def close(self) -> None:
        pass


class LoggingNotifier(Notifier):
    """Пишет уведомление в лог. Канал по умолчанию, когда бот не настроен."""

    def __init__(self, timezone: str = "UTC"):
        self._tz = pytz.timezone(timezone)

    async def notify(self, reminder: Reminder) -> bool:
        logger.info(
            "=== НАПОМИНАНИЕ ===\n"
            f"Пользователь: {reminder.user_id}\n"
            f"Заголовок: {reminder.title}\n"
            f"Описание: {reminder.description or '—'}\n"
            f"Приоритет: {reminder.priority.value}\n"
            f"Категория: {reminder.category.value}\n"
            f"Срок: {_local(reminder.reminder_datetime, self._tz):%d.%m.%Y %H:%M}"
        )
        return True


class TelegramNotifier(Notifier):
    """Отправляет напоминание в чат Telegram; chat_id = user_id владельца."""

    def __init__(self, bot: Bot, timezone: str = "Europe/Moscow"):
        self._bot = bot
        self._tz = pytz.timezone(timezone)

    @classmethod
    def from_token(cls, token: str, timezone: str = "Europe/Moscow") -> "TelegramNotifier":
        bot = Bot(token=token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
        return cls(bot, timezone=timezone)

    def format_message(self, reminder: Reminder) -> str:
        mark = PRIORITY_MARKS.get(reminder.priority, "")
        lines = [f"⏰ <b>Напоминание!</b> {mark}".rstrip(), "", escape(reminder.title)]
        if reminder.description:
            lines.append(f"<i>{escape(reminder.description)}</i>")
        lines.append("")
        lines.append(f"🕐 {_local(reminder.reminder_datetime, self._tz):%d.%m.%Y %H:%M}")
        return "\n".join(lines)

    async def notify(self, reminder: Reminder) -> bool:
        try:
            await self._bot.send_message(chat_id=reminder.user_id, text=self.format_message(reminder))
        except TelegramAPIError as e:
            raise DeliveryFailure(f"Telegram: {e}") from e
        return True

    async def close(self) -> None:
        await self._bot.session.close()


def build_notifier(settings: Settings) -> Notifier:
    """Telegram, если задан токен бота, иначе лог."""
    if settings.bot_token:
        logger.info("Уведомления отправляются через Telegram")
        return TelegramNotifier.from_token(settings.bot_token, timezone=settings.timezone)
    logger.info("BOT_TOKEN не задан, уведомления пишутся в лог")
    return LoggingNotifier(timezone=settings.timezone)
