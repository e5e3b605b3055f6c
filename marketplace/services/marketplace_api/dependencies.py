# marketplace/services/marketplace_api/dependencies.py
"""
Зависимости HTTP API.
Инициализация и управление ресурсами.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, Header

from marketplace.common.constants import TypeMsg, UserRole
from marketplace.common.exceptions import ForbiddenError, InvalidCredentialError
from marketplace.common.logger import log_info
from marketplace.core.accounts import Account, AccountRepository
from marketplace.core.audit import DispatchLogRepository
from marketplace.core.auth import AuthService, build_minter, build_otp_store
from marketplace.core.matching import (
    MatchingService,
    ProviderPresenceService,
    ProviderRepository,
    SearchLimits,
)
from marketplace.infra.database import close_db, get_db, init_db
from marketplace.infra.redis_client import close_redis, get_redis, init_redis


# Сервисы
_auth_service: Optional[AuthService] = None
_matching_service: Optional[MatchingService] = None
_presence_service: Optional[ProviderPresenceService] = None
_uses_redis: bool = False


async def init_dependencies() -> None:
    """Подключает PostgreSQL (и Redis для OTP_STORE_BACKEND=redis) и собирает сервисы."""
    global _auth_service, _matching_service, _presence_service, _uses_redis

    from marketplace.config import settings

    await init_db()
    db = get_db()

    _uses_redis = settings.otp.OTP_STORE_BACKEND == "redis"
    if _uses_redis:
        await init_redis()

    otp_store = build_otp_store(
        settings.otp.OTP_STORE_BACKEND,
        redis=get_redis() if _uses_redis else None,
        grace_seconds=settings.otp.OTP_STORE_GRACE_SECONDS,
    )

    _auth_service = AuthService(
        accounts=AccountRepository(db),
        otp_store=otp_store,
        minter=build_minter(),
        dispatch_log=DispatchLogRepository(db),
        otp_ttl_seconds=settings.otp.OTP_TTL_SECONDS,
        phone_pattern=settings.otp.PHONE_PATTERN,
        sms_template=settings.otp.SMS_TEMPLATE,
        dev_mode=settings.system.RUN_DEV_MODE,
    )
    providers = ProviderRepository(db)
    _matching_service = MatchingService(
        providers,
        default_radius_meters=settings.search.DEFAULT_RADIUS_METERS,
        default_limit=settings.search.DEFAULT_LIMIT,
        limits=SearchLimits(
            min_radius_meters=settings.search.MIN_RADIUS_METERS,
            max_radius_meters=settings.search.MAX_RADIUS_METERS,
            max_limit=settings.search.MAX_LIMIT,
        ),
    )
    _presence_service = ProviderPresenceService(providers)

    await log_info(
        f"Сервисы инициализированы (OTP store: {settings.otp.OTP_STORE_BACKEND})",
        type_msg=TypeMsg.INFO,
    )


async def close_dependencies() -> None:
    """Закрытие всех ресурсов."""
    global _auth_service, _matching_service, _presence_service, _uses_redis

    if _uses_redis:
        await close_redis()
    await close_db()

    _auth_service = None
    _matching_service = None
    _presence_service = None
    _uses_redis = False


def get_auth_service() -> AuthService:
    """Получение экземпляра AuthService."""
    if _auth_service is None:
        raise RuntimeError("AuthService не инициализирован")
    return _auth_service


def get_matching_service() -> MatchingService:
    """Получение экземпляра MatchingService."""
    if _matching_service is None:
        raise RuntimeError("MatchingService не инициализирован")
    return _matching_service


def get_presence_service() -> ProviderPresenceService:
    """Получение экземпляра ProviderPresenceService."""
    if _presence_service is None:
        raise RuntimeError("ProviderPresenceService не инициализирован")
    return _presence_service


def uses_redis() -> bool:
    return _uses_redis


# === AUTH DEPENDENCY ===

def extract_bearer_token(authorization: str | None) -> str:
    """Достаёт токен из заголовка ``Authorization: Bearer <token>``."""
    if not authorization:
        raise InvalidCredentialError("Missing bearer token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidCredentialError("Missing bearer token")
    return token.strip()


async def get_current_account(
    authorization: Annotated[str | None, Header()] = None,
    service: AuthService = Depends(get_auth_service),
) -> Account:
    """Аккаунт владельца access токена из заголовка Authorization."""
    return await service.get_current_account(extract_bearer_token(authorization))


async def get_current_provider(account: Account = Depends(get_current_account)) -> Account:
    """Аккаунт из access токена, только с ролью исполнителя."""
    if account.role != UserRole.PROVIDER:
        raise ForbiddenError("Access restricted to providers")
    return account
