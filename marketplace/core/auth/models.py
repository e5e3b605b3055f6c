# marketplace/core/auth/models.py
"""
Модели аутентификации: ожидающий код, токены, результаты операций.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from marketplace.common.constants import TokenType, UserRole
from marketplace.core.accounts.models import Account


@dataclass(frozen=True)
class PendingCode:
    """Ожидающий подтверждения одноразовый код."""
    identifier: str
    code: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class TokenClaims:
    """Утверждения, общие для access и refresh токенов одной пары."""
    subject_id: UUID
    phone: str
    role: UserRole

    def to_payload(self) -> dict[str, str]:
        return {
            "sub": str(self.subject_id),
            "phone": self.phone,
            "role": self.role.value,
        }


@dataclass(frozen=True)
class VerifiedToken:
    """Результат проверки подписанного токена."""
    claims: TokenClaims
    token_type: TokenType
    expires_at: datetime


class TokenPair(BaseModel):
    """Пара независимых токенов."""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"


class OtpDispatchResult(BaseModel):
    """
    Результат выдачи кода.

    ``is_registered`` сообщает, есть ли активный аккаунт с этим номером,
    чтобы клиент выбрал вход или регистрацию. Клиенту сообщается о существовании
    аккаунта по требованию продукта.
    """
    success: bool = True
    message: str
    is_registered: bool


class AuthSession(BaseModel):
    """Результат успешного входа."""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    user: Account
