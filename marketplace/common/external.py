# marketplace/common/external.py
"""
Вызовы внешних зависимостей (PostgreSQL, Redis) с таймаутом.

Таймаут или ошибка соединения превращаются в UnavailableError:
клиент может повторить запрос, молчаливого успеха не бывает.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

import asyncpg
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from marketplace.common.exceptions import UnavailableError
from marketplace.common.logger import log_error

T = TypeVar("T")

CONNECTION_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    RedisConnectionError,
    RedisTimeoutError,
    ConnectionRefusedError,
    OSError,
)


def _default_timeout() -> float:
    from marketplace.config import settings
    return settings.timeouts.EXTERNAL_CALL_TIMEOUT


async def call_external(
    awaitable: Awaitable[T],
    what: str,
    timeout: float | None = None,
) -> T:
    """
    Выполняет вызов внешней зависимости с таймаутом.

    Args:
        awaitable: Корутина вызова
        what: Название операции (для логов и сообщения об ошибке)
        timeout: Таймаут в секундах (из конфига если None)

    Returns:
        Результат вызова

    Raises:
        UnavailableError: Таймаут или ошибка соединения
    """
    if timeout is None:
        timeout = _default_timeout()

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        await log_error(f"Таймаут внешнего вызова '{what}' ({timeout} с)")
        raise UnavailableError(f"{what} timed out, please retry") from e
    except CONNECTION_ERRORS as e:
        await log_error(f"Внешняя зависимость недоступна '{what}': {e}")
        raise UnavailableError(f"{what} is unavailable, please retry") from e
