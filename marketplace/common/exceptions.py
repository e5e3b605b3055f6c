# marketplace/common/exceptions.py
"""
Иерархия доменных ошибок.

Каждая ошибка несёт стабильный ``kind`` (для клиентов и HTTP-слоя)
и человекочитаемое сообщение. Все ошибки относятся к одному запросу,
ни одна не является фатальной для процесса.
"""

from __future__ import annotations


class MarketplaceError(Exception):
    """Базовая ошибка ядра."""

    kind: str = "internal"
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class InvalidInputError(MarketplaceError):
    """Некорректный телефон, код или гео-параметры."""
    kind = "invalid_input"
    default_message = "Invalid input"


class OtpNotFoundError(MarketplaceError):
    """Для номера нет ожидающего кода."""
    kind = "otp_not_found"
    default_message = "OTP not found. Please request a new OTP."


class OtpExpiredError(MarketplaceError):
    """Код просрочен (и уже удалён из хранилища)."""
    kind = "otp_expired"
    default_message = "OTP expired. Please request a new OTP."


class OtpMismatchError(MarketplaceError):
    """Код не совпал. Ожидающий код остаётся в хранилище."""
    kind = "otp_mismatch"
    default_message = "Invalid OTP"


class AccountNotFoundError(MarketplaceError):
    """Активный аккаунт не найден."""
    kind = "account_not_found"
    default_message = "User not registered. Please sign up first."


class InvalidCredentialError(MarketplaceError):
    """Подпись, срок действия или тип токена не прошли проверку."""
    kind = "invalid_credential"
    default_message = "Invalid or expired token"


class ConflictError(MarketplaceError):
    """Сущность уже существует."""
    kind = "conflict"
    default_message = "Resource already exists"


class UnavailableError(MarketplaceError):
    """Внешняя зависимость недоступна или не ответила вовремя. Можно повторить."""
    kind = "unavailable"
    default_message = "Service temporarily unavailable, please retry"


class ForbiddenError(MarketplaceError):
    """Операция недоступна для этой роли или состояния аккаунта."""
    kind = "forbidden"
    default_message = "Operation not allowed"


class ProviderNotFoundError(MarketplaceError):
    """У аккаунта нет профиля исполнителя."""
    kind = "provider_not_found"
    default_message = "Provider profile not found"
