# marketplace/core/audit/repository.py
"""
Журнал отправок одноразовых кодов (таблица sms_logs).
Из него внешний канал доставки забирает сообщения.
"""

from __future__ import annotations

from marketplace.common.constants import DispatchStatus, OtpPurpose
from marketplace.common.exceptions import MarketplaceError
from marketplace.common.external import call_external
from marketplace.common.logger import log_error, mask_phone
from marketplace.infra.database import DatabaseManager


class DispatchLogRepository:
    """Репозиторий журнала отправок."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def record(
        self,
        phone: str,
        message: str,
        purpose: OtpPurpose,
        status: DispatchStatus = DispatchStatus.SENT,
    ) -> bool:
        """
        Добавляет запись об отправке.

        Для вызывающего кода операция fire-and-forget: сбой записи
        логируется и не прерывает выдачу кода.

        Returns:
            True если запись сохранена
        """
        try:
            await call_external(
                self._db.execute(
                    """
                    INSERT INTO sms_logs (phone, message, purpose, status)
                    VALUES ($1, $2, $3, $4)
                    """,
                    phone,
                    message,
                    purpose.value,
                    status.value,
                ),
                "dispatch log",
            )
            return True
        except MarketplaceError as e:
            await log_error(f"Не удалось записать отправку для {mask_phone(phone)}: {e.message}")
            return False
