#!/usr/bin/env python3
# main.py
"""
Главная точка входа ServiGroww Marketplace API.

Использование:
    python main.py           # HTTP API (uvicorn)
    python main.py api       # то же
    python main.py migrate   # применить migrations/init.sql и выйти
"""

from __future__ import annotations

import asyncio
import sys

from marketplace.common.constants import TypeMsg
from marketplace.common.logger import log_error, log_info, setup_logging
from marketplace.config import settings
from marketplace.infra.database import close_db, init_db


VALID_MODES = ("api", "migrate")


async def run_api() -> None:
    """Запускает HTTP API."""
    import uvicorn

    await log_info(
        f"Запуск Marketplace API на {settings.api.API_HOST}:{settings.api.API_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "marketplace.services.marketplace_api.app:app",
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Marketplace API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_migrate() -> None:
    """Применяет схему БД."""
    try:
        await init_db(apply_schema=True)
    finally:
        await close_db()


async def main(mode: str = "api") -> None:
    setup_logging()

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}: запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    try:
        if mode == "migrate":
            await run_migrate()
        else:
            await run_api()
    except KeyboardInterrupt:
        await log_info("Получен сигнал остановки (Ctrl+C)", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    mode = sys.argv[1] if len(sys.argv) > 1 else "api"
    if mode not in VALID_MODES:
        print(__doc__)
        sys.exit(2)
    asyncio.run(main(mode))
