# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("JWT_SECRET", "test_access_secret_0123456789abcdef")
os.environ.setdefault("JWT_REFRESH_SECRET", "test_refresh_secret_0123456789abcdef")
os.environ.setdefault("OTP_STORE_BACKEND", "memory")

from marketplace.common.constants import UserRole, UserStatus  # noqa: E402
from marketplace.core.accounts.models import Account  # noqa: E402
from marketplace.core.auth.otp_store import InMemoryOtpStore  # noqa: E402
from marketplace.core.auth.service import AuthService  # noqa: E402
from marketplace.core.auth.tokens import CredentialMinter  # noqa: E402


ACCESS_SECRET = "test_access_secret_0123456789abcdef"
REFRESH_SECRET = "test_refresh_secret_0123456789abcdef"

KNOWN_PHONE = "+919876543210"
UNKNOWN_PHONE = "+919812345678"


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "servigroww_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "RUN_DEV_MODE": False,
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "LOG_FORMAT": "colored",
        "API_PORT": 3001,
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "servigroww_test",
        "DB_USER": "postgres",
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_NAMESPACE": "servigroww_test",
        "OTP_TTL_SECONDS": 300,
        "OTP_STORE_BACKEND": "memory",
        "JWT_ACCESS_EXPIRES_SECONDS": 900,
        "JWT_REFRESH_EXPIRES_SECONDS": 604800,
        "DEFAULT_RADIUS_METERS": 5000,
        "DEFAULT_LIMIT": 10,
        "EXTERNAL_CALL_TIMEOUT": 1.0,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.get_json = AsyncMock(return_value=None)
    redis.set_json = AsyncMock(return_value=True)
    redis.eval_script = AsyncMock(return_value=0)
    return redis


# =============================================================================
# ВРЕМЯ
# =============================================================================

class FakeClock:
    """Управляемые часы для проверки истечения кодов."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def sample_account_data() -> dict[str, Any]:
    """Строка users, как её возвращает asyncpg."""
    now = datetime.now(timezone.utc)
    return {
        "id": UUID("5b0c7a1e-3f1d-4c59-9d4e-2a7f8e1b6c01"),
        "phone": KNOWN_PHONE,
        "email": "ravi@example.com",
        "name": "Ravi Kumar",
        "role": "customer",
        "status": "active",
        "profile_photo_url": None,
        "created_at": now,
        "updated_at": now,
        "last_login_at": None,
    }


@pytest.fixture
def sample_account(sample_account_data: dict[str, Any]) -> Account:
    return Account(**sample_account_data)


def make_account(phone: str = KNOWN_PHONE, role: UserRole = UserRole.CUSTOMER, **overrides: Any) -> Account:
    now = datetime.now(timezone.utc)
    data: dict[str, Any] = {
        "id": uuid4(),
        "phone": phone,
        "name": "Test User",
        "role": role,
        "status": UserStatus.ACTIVE,
        "created_at": now,
        "updated_at": now,
    }
    data.update(overrides)
    return Account(**data)


# =============================================================================
# ФИКСТУРЫ СЕРВИСОВ
# =============================================================================

@pytest.fixture
def minter() -> CredentialMinter:
    return CredentialMinter(
        access_secret=ACCESS_SECRET,
        refresh_secret=REFRESH_SECRET,
        access_ttl_seconds=900,
        refresh_ttl_seconds=604800,
    )


@pytest.fixture
def otp_store(clock: FakeClock) -> InMemoryOtpStore:
    return InMemoryOtpStore(clock=clock)


@pytest.fixture
def mock_accounts() -> AsyncMock:
    """Мок каталога аккаунтов: номер не зарегистрирован."""
    accounts = AsyncMock()
    accounts.find_active_by_phone = AsyncMock(return_value=None)
    accounts.find_active_by_id = AsyncMock(return_value=None)
    accounts.exists_by_phone = AsyncMock(return_value=False)
    accounts.touch_last_login = AsyncMock(return_value=None)
    accounts.create_with_profile = AsyncMock()
    return accounts


@pytest.fixture
def mock_dispatch_log() -> AsyncMock:
    dispatch_log = AsyncMock()
    dispatch_log.record = AsyncMock(return_value=True)
    return dispatch_log


@pytest.fixture
def auth_service(
    mock_accounts: AsyncMock,
    otp_store: InMemoryOtpStore,
    minter: CredentialMinter,
    mock_dispatch_log: AsyncMock,
    clock: FakeClock,
) -> AuthService:
    """AuthService с хранилищем в памяти и управляемыми часами."""
    return AuthService(
        accounts=mock_accounts,
        otp_store=otp_store,
        minter=minter,
        dispatch_log=mock_dispatch_log,
        otp_ttl_seconds=300,
        clock=clock,
    )


@pytest.fixture
def account_factory():
    """Фабрика аккаунтов с разумными значениями по умолчанию."""
    return make_account


@pytest.fixture
def known_phone() -> str:
    return KNOWN_PHONE


@pytest.fixture
def unknown_phone() -> str:
    return UNKNOWN_PHONE
