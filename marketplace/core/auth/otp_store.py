# marketplace/core/auth/otp_store.py
"""
Хранилище ожидающих одноразовых кодов.

Ключ: номер телефона, на номер хранится не больше одного кода:
новый код перезаписывает предыдущий. Хранилище не является источником
истины: потерянные при рестарте коды восстанавливаются повторной выдачей.

Реализации:
- InMemoryOtpStore: словарь процесса под блокировкой (тесты, разработка)
- RedisOtpStore: Redis, атомарное удаление через Lua-скрипт (продакшен)
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from marketplace.common.external import call_external
from marketplace.core.auth.models import PendingCode
from marketplace.infra.redis_client import RedisClient

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OtpStore(Protocol):
    """Контракт хранилища кодов."""

    async def put(self, identifier: str, code: str, ttl_seconds: int) -> PendingCode:
        """Сохраняет код, перезаписывая существующий для этого номера."""

    async def get(self, identifier: str) -> PendingCode | None:
        """Возвращает текущий код или None."""

    async def remove(self, identifier: str, expected_code: str | None = None) -> bool:
        """
        Удаляет код. Если передан expected_code, то только при совпадении
        (сравнение и удаление атомарны). Возвращает True, если запись удалена.
        """


class InMemoryOtpStore:
    """
    Хранилище кодов в памяти процесса.

    Записи, истёкшие больше чем на grace-период, вычищаются при каждом put,
    как ключи Redis с TTL. Внутри grace-периода просроченный код ещё
    виден и сообщается как Expired.
    """

    def __init__(self, clock: Clock = utc_now, grace_seconds: int = 600) -> None:
        self._clock = clock
        self._grace = timedelta(seconds=grace_seconds)
        self._codes: dict[str, PendingCode] = {}
        self._lock = threading.Lock()

    async def put(self, identifier: str, code: str, ttl_seconds: int) -> PendingCode:
        now = self._clock()
        pending = PendingCode(
            identifier=identifier,
            code=code,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        with self._lock:
            self._sweep(now)
            self._codes[identifier] = pending
        return pending

    def _sweep(self, now: datetime) -> None:
        # вызывается под self._lock
        stale = [key for key, entry in self._codes.items() if entry.expires_at + self._grace < now]
        for key in stale:
            del self._codes[key]

    async def get(self, identifier: str) -> PendingCode | None:
        with self._lock:
            return self._codes.get(identifier)

    async def remove(self, identifier: str, expected_code: str | None = None) -> bool:
        with self._lock:
            current = self._codes.get(identifier)
            if current is None:
                return False
            if expected_code is not None and current.code != expected_code:
                return False
            del self._codes[identifier]
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._codes)


# Удаляет ключ, только если сохранённый код совпадает с ожидаемым
_COMPARE_AND_DELETE = """
local raw = redis.call('GET', KEYS[1])
if not raw then
    return 0
end
local entry = cjson.decode(raw)
if ARGV[1] ~= '' and entry['code'] ~= ARGV[1] then
    return 0
end
redis.call('DEL', KEYS[1])
return 1
"""


class RedisOtpStore:
    """
    Хранилище кодов в Redis.

    Ключ живёт дольше самого кода (grace-период), чтобы истечение было
    обнаружено и сообщено как Expired, а не как отсутствие кода.
    Код старше TTL + grace Redis уже удалил: проверка такого кода даёт NotFound.
    """

    KEY_PREFIX = "otp:"

    def __init__(
        self,
        redis: RedisClient,
        grace_seconds: int = 600,
        clock: Clock = utc_now,
    ) -> None:
        self._redis = redis
        self._grace_seconds = grace_seconds
        self._clock = clock

    def _key(self, identifier: str) -> str:
        return f"{self.KEY_PREFIX}{identifier}"

    async def put(self, identifier: str, code: str, ttl_seconds: int) -> PendingCode:
        pending = PendingCode(
            identifier=identifier,
            code=code,
            expires_at=self._clock() + timedelta(seconds=ttl_seconds),
        )
        await call_external(
            self._redis.set_json(
                self._key(identifier),
                {"code": pending.code, "expires_at": pending.expires_at.isoformat()},
                ttl=ttl_seconds + self._grace_seconds,
            ),
            "otp store",
        )
        return pending

    async def get(self, identifier: str) -> PendingCode | None:
        data = await call_external(self._redis.get_json(self._key(identifier)), "otp store")
        if not isinstance(data, dict) or "code" not in data or "expires_at" not in data:
            return None
        return PendingCode(
            identifier=identifier,
            code=str(data["code"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )

    async def remove(self, identifier: str, expected_code: str | None = None) -> bool:
        removed = await call_external(
            self._redis.eval_script(
                _COMPARE_AND_DELETE,
                keys=[self._key(identifier)],
                args=[expected_code or ""],
            ),
            "otp store",
        )
        return int(removed) == 1


def build_otp_store(backend: str, redis: RedisClient | None = None, grace_seconds: int = 600) -> OtpStore:
    """
    Создаёт хранилище по имени бэкенда из конфига.

    Args:
        backend: "memory" или "redis"
        redis: Клиент Redis (обязателен для "redis")
        grace_seconds: Запас жизни ключа в Redis сверх TTL кода
    """
    if backend == "redis":
        if redis is None:
            raise ValueError("Для OTP_STORE_BACKEND=redis нужен клиент Redis")
        return RedisOtpStore(redis, grace_seconds=grace_seconds)
    if backend == "memory":
        return InMemoryOtpStore(grace_seconds=grace_seconds)
    raise ValueError(f"Неизвестный OTP_STORE_BACKEND: {backend}")
