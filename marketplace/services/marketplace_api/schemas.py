# marketplace/services/marketplace_api/schemas.py
"""
Модели запросов и ответов HTTP API.

Диапазоны значений проверяет сервисный слой, здесь только форма запроса.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field


class SendOtpRequest(BaseModel):
    """Запрос кода."""
    phone: str = Field(..., validation_alias=AliasChoices("phone", "identifier"))


class VerifyOtpRequest(BaseModel):
    """Проверка кода."""
    phone: str = Field(..., validation_alias=AliasChoices("phone", "identifier"))
    otp: str = Field(..., validation_alias=AliasChoices("otp", "code"))


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class RegisterRequest(BaseModel):
    """Регистрация заказчика или исполнителя."""
    phone: str
    name: str
    role: str
    email: Optional[str] = None


class FindNearbyRequest(BaseModel):
    """Поиск исполнителей рядом с точкой."""
    service_id: str
    latitude: float
    longitude: float
    radius_meters: Optional[float] = None
    limit: Optional[int] = None


class UpdateLocationRequest(BaseModel):
    """Текущая точка исполнителя."""
    latitude: float
    longitude: float


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ApiResponse(BaseModel):
    """Единый конверт успешного ответа."""

    success: bool = True
    message: str = ""
    data: Any = None
    timestamp: str = Field(default_factory=utc_timestamp)

    @classmethod
    def ok(cls, data: Any = None, message: str = "Success") -> "ApiResponse":
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        elif isinstance(data, list):
            data = [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in data]
        return cls(success=True, message=message, data=data)


class ErrorResponse(BaseModel):
    """Конверт ответа с ошибкой."""

    success: bool = False
    message: str
    error: str
    timestamp: str = Field(default_factory=utc_timestamp)


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
