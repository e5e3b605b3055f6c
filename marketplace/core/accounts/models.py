# marketplace/core/accounts/models.py
"""
Модели данных аккаунтов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.common.constants import UserRole, UserStatus


class Account(BaseModel):
    """Аккаунт пользователя (заказчик, исполнитель или администратор)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="ID аккаунта")
    phone: str = Field(..., description="Номер телефона (идентификатор входа)")
    email: Optional[str] = Field(None, description="Email")
    name: str = Field(..., description="Имя")
    role: UserRole = Field(UserRole.CUSTOMER, description="Роль")
    status: UserStatus = Field(UserStatus.ACTIVE, description="Статус")
    profile_photo_url: Optional[str] = Field(None, description="Фото профиля")
    created_at: datetime = Field(..., description="Дата регистрации")
    updated_at: datetime = Field(..., description="Дата обновления")
    last_login_at: Optional[datetime] = Field(None, description="Последний вход")

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE


class AccountCreateDTO(BaseModel):
    """DTO для регистрации аккаунта."""

    phone: str
    name: str = Field(..., min_length=2, max_length=255)
    role: UserRole
    email: Optional[str] = Field(None, max_length=255)
