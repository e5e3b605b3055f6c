# marketplace/core/accounts/repository.py
"""
Репозиторий аккаунтов (каталог пользователей).
Реализует паттерн Repository для абстракции доступа к данным.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

import asyncpg

from marketplace.common.constants import TypeMsg, UserRole, UserStatus
from marketplace.common.exceptions import ConflictError
from marketplace.common.external import call_external
from marketplace.common.logger import log_info, mask_phone
from marketplace.core.accounts.models import Account, AccountCreateDTO
from marketplace.infra.database import DatabaseManager


_ACCOUNT_COLUMNS = """
    id, phone, email, name, role::text AS role, status::text AS status,
    profile_photo_url, created_at, updated_at, last_login_at
"""


def _to_account(row: Any) -> Account:
    return Account(**dict(row))


class AccountRepository:
    """Репозиторий аккаунтов."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def find_active_by_phone(self, phone: str) -> Optional[Account]:
        """
        Ищет активный аккаунт по номеру телефона.

        Args:
            phone: Номер телефона

        Returns:
            Аккаунт или None
        """
        row = await call_external(
            self._db.fetchrow(
                f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE phone = $1 AND status = $2",
                phone,
                UserStatus.ACTIVE.value,
            ),
            "account lookup",
        )
        return _to_account(row) if row else None

    async def find_active_by_id(self, account_id: UUID) -> Optional[Account]:
        """
        Ищет активный аккаунт по ID.

        Args:
            account_id: ID аккаунта

        Returns:
            Аккаунт или None
        """
        row = await call_external(
            self._db.fetchrow(
                f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE id = $1 AND status = $2",
                account_id,
                UserStatus.ACTIVE.value,
            ),
            "account lookup",
        )
        return _to_account(row) if row else None

    async def exists_by_phone(self, phone: str) -> bool:
        """Проверяет, занят ли номер любым аккаунтом (в любом статусе)."""
        found = await call_external(
            self._db.fetchval("SELECT EXISTS(SELECT 1 FROM users WHERE phone = $1)", phone),
            "account lookup",
        )
        return bool(found)

    async def touch_last_login(self, account_id: UUID) -> None:
        """Обновляет время последнего входа."""
        await call_external(
            self._db.execute(
                "UPDATE users SET last_login_at = NOW() WHERE id = $1",
                account_id,
            ),
            "last login update",
        )

    async def create_with_profile(self, dto: AccountCreateDTO) -> Account:
        """
        Создаёт аккаунт и профиль роли в одной транзакции.

        Для исполнителя создаётся профиль (offline, не верифицирован) и кошелёк,
        для заказчика только профиль заказчика.

        Args:
            dto: Данные регистрации

        Returns:
            Созданный аккаунт
        """
        async def _create() -> Account:
            async with self._db.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users (phone, name, role, email, status)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING {_ACCOUNT_COLUMNS}
                    """,
                    dto.phone,
                    dto.name,
                    dto.role.value,
                    dto.email,
                    UserStatus.ACTIVE.value,
                )
                account = _to_account(row)

                if dto.role == UserRole.CUSTOMER:
                    await conn.execute(
                        "INSERT INTO customers (user_id) VALUES ($1)",
                        account.id,
                    )
                elif dto.role == UserRole.PROVIDER:
                    provider_id = await conn.fetchval(
                        """
                        INSERT INTO providers (user_id, is_online, is_verified)
                        VALUES ($1, FALSE, FALSE)
                        RETURNING id
                        """,
                        account.id,
                    )
                    await conn.execute(
                        "INSERT INTO provider_wallets (provider_id) VALUES ($1)",
                        provider_id,
                    )

                return account

        try:
            account = await call_external(_create(), "account registration")
        except asyncpg.UniqueViolationError as e:
            # Параллельная регистрация того же номера
            raise ConflictError("User with this phone number already exists") from e
        await log_info(
            f"Зарегистрирован аккаунт {account.id} ({account.role.value}, {mask_phone(account.phone)})",
            type_msg=TypeMsg.INFO,
        )
        return account
