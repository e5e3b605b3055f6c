# marketplace/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли аккаунтов."""
    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """Статусы аккаунта."""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class OtpPurpose(str, Enum):
    """Назначение отправленного кода."""
    LOGIN = "login"
    REGISTRATION = "registration"


class TokenType(str, Enum):
    """Тип подписанного токена."""
    ACCESS = "access"
    REFRESH = "refresh"


class DispatchStatus(str, Enum):
    """Статус записи в журнале отправок."""
    SENT = "sent"
    FAILED = "failed"
