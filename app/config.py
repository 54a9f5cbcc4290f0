"""Конфигурация приложения"""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# Корневая директория проекта (на уровень выше папки app/)
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Настройки приложения, загружаемые из переменных окружения / .env"""

    # Telegram-бот (канал доставки уведомлений; без токена — только лог)
    bot_token: Optional[str] = None

    # База данных
    database_url: str = "sqlite+aiosqlite:///./pingme.db"

    # FastAPI
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False

    # Приложение
    debug: bool = False
    timezone: str = "Europe/Moscow"

    # Планировщик уведомлений
    check_interval_seconds: int = 60
    startup_delay_seconds: float = 2.0
    default_snooze_minutes: int = 10
    upcoming_hours: int = 24
    # Для нескольких процессов на одной БД: сначала захват, потом отправка
    claim_before_dispatch: bool = False

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )


settings = Settings()
