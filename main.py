"""Точка входа в приложение"""
import asyncio
import logging

import uvicorn

from app.config import settings


# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def start_api():
    """Запускает FastAPI-сервер через uvicorn; планировщик стартует в lifespan"""
    config = uvicorn.Config(
        "app.api:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level="info"
    )
    server = uvicorn.Server(config)
    await server.serve()


async def main():
    logger.info("Запуск PingMe...")
    await start_api()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Приложение остановлено пользователем")
