# marketplace/core/auth/service.py
"""
Сервис беспарольной аутентификации по одноразовому коду.

Поток: send_otp -> verify_otp (выдача пары токенов) -> refresh_tokens.
Регистрация создаёт аккаунт; после неё повторная выдача кода
сообщает о зарегистрированном номере.
"""

from __future__ import annotations

import re
import secrets
from typing import Optional

from marketplace.common.constants import OtpPurpose, TypeMsg, UserRole
from marketplace.common.exceptions import (
    AccountNotFoundError,
    ConflictError,
    InvalidInputError,
    OtpExpiredError,
    OtpMismatchError,
    OtpNotFoundError,
)
from marketplace.common.logger import log_debug, log_info, log_warning, mask_phone
from marketplace.core.accounts.models import Account, AccountCreateDTO
from marketplace.core.accounts.repository import AccountRepository
from marketplace.core.audit.repository import DispatchLogRepository
from marketplace.core.auth.models import (
    AuthSession,
    OtpDispatchResult,
    TokenClaims,
    TokenPair,
)
from marketplace.core.auth.otp_store import Clock, OtpStore, utc_now
from marketplace.core.auth.tokens import CredentialMinter

DEFAULT_PHONE_PATTERN = r"^\+91[6-9]\d{9}$"
DEFAULT_SMS_TEMPLATE = "Your ServiGroww OTP is: {code}"

_CODE_RE = re.compile(r"^\d{6}$")
_REGISTRABLE_ROLES = (UserRole.CUSTOMER, UserRole.PROVIDER)


def generate_code() -> str:
    """Случайный шестизначный код 100000..999999 (криптографический ГСЧ)."""
    return str(secrets.randbelow(900000) + 100000)


class AuthService:
    """
    Сервис аутентификации.

    Хранилище кодов является единственным разделяемым изменяемым состоянием;
    проверка кода удаляет запись атомарно, поэтому из параллельных
    проверок одного кода успешна ровно одна.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        otp_store: OtpStore,
        minter: CredentialMinter,
        dispatch_log: DispatchLogRepository,
        otp_ttl_seconds: int = 300,
        phone_pattern: str = DEFAULT_PHONE_PATTERN,
        sms_template: str = DEFAULT_SMS_TEMPLATE,
        dev_mode: bool = False,
        clock: Clock = utc_now,
    ) -> None:
        """
        Args:
            accounts: Каталог аккаунтов
            otp_store: Хранилище ожидающих кодов
            minter: Выпуск и проверка токенов
            dispatch_log: Журнал отправленных кодов
            otp_ttl_seconds: Время жизни кода
            phone_pattern: Регулярное выражение допустимого номера
            sms_template: Шаблон текста сообщения с кодом
            dev_mode: Писать код в debug-лог вместо отправки SMS
            clock: Источник текущего времени (UTC)
        """
        self._accounts = accounts
        self._otp_store = otp_store
        self._minter = minter
        self._dispatch_log = dispatch_log
        self._otp_ttl = otp_ttl_seconds
        self._phone_re = re.compile(phone_pattern)
        self._sms_template = sms_template
        self._dev_mode = dev_mode
        self._clock = clock

    # =========================================================================
    # ВАЛИДАЦИЯ
    # =========================================================================

    def validate_phone(self, phone: str | None) -> str:
        if not isinstance(phone, str) or not self._phone_re.fullmatch(phone):
            raise InvalidInputError("Invalid phone number format")
        return phone

    @staticmethod
    def validate_code(code: str | None) -> str:
        if not isinstance(code, str) or not _CODE_RE.fullmatch(code):
            raise InvalidInputError("OTP must be a 6-digit code")
        return code

    # =========================================================================
    # ВЫДАЧА КОДА
    # =========================================================================

    async def send_otp(self, phone: str) -> OtpDispatchResult:
        """
        Выдаёт новый код для номера.

        Предыдущий код для номера перестаёт действовать. Сам код
        в результат не попадает.

        Args:
            phone: Номер телефона

        Returns:
            Результат с признаком зарегистрированного номера

        Raises:
            InvalidInputError: Номер не соответствует формату
            UnavailableError: Каталог аккаунтов или хранилище недоступны
        """
        phone = self.validate_phone(phone)

        account = await self._accounts.find_active_by_phone(phone)
        is_registered = account is not None

        code = generate_code()
        await self._otp_store.put(phone, code, self._otp_ttl)

        purpose = OtpPurpose.LOGIN if is_registered else OtpPurpose.REGISTRATION
        await self._dispatch_log.record(
            phone,
            self._sms_template.format(code=code),
            purpose,
        )

        if self._dev_mode:
            await log_debug(f"OTP для {phone}: {code} ({purpose.value})")
        await log_info(
            f"Код выдан для {mask_phone(phone)} ({purpose.value})",
            type_msg=TypeMsg.INFO,
        )

        message = (
            "OTP sent successfully. Please verify to login."
            if is_registered
            else "Phone number not registered. Please complete registration first."
        )
        return OtpDispatchResult(success=True, message=message, is_registered=is_registered)

    # =========================================================================
    # ПРОВЕРКА КОДА И ВХОД
    # =========================================================================

    async def verify_otp(self, phone: str, otp: str) -> AuthSession:
        """
        Проверяет код и выдаёт пару токенов.

        Args:
            phone: Номер телефона
            otp: Шестизначный код

        Returns:
            Токены и аккаунт

        Raises:
            InvalidInputError: Некорректный номер или код
            OtpNotFoundError: Нет ожидающего кода (или его уже использовали)
            OtpExpiredError: Код просрочен, запись удалена
            OtpMismatchError: Код не совпал, запись сохранена
            AccountNotFoundError: Активного аккаунта с этим номером нет
        """
        phone = self.validate_phone(phone)
        otp = self.validate_code(otp)

        pending = await self._otp_store.get(phone)
        if pending is None:
            raise OtpNotFoundError()

        if pending.is_expired(self._clock()):
            # Удаляем только этот код: новый мог быть выдан параллельно
            await self._otp_store.remove(phone, pending.code)
            raise OtpExpiredError()

        if not secrets.compare_digest(pending.code, otp):
            await log_warning(f"Неверный код для {mask_phone(phone)}")
            raise OtpMismatchError()

        if not await self._otp_store.remove(phone, otp):
            # Код использован параллельным запросом или перевыпущен
            raise OtpNotFoundError()

        account = await self._accounts.find_active_by_phone(phone)
        if account is None:
            raise AccountNotFoundError()

        await self._accounts.touch_last_login(account.id)
        account = account.model_copy(update={"last_login_at": self._clock()})

        tokens = await self._mint_for(account)
        await log_info(f"Вход выполнен: {account.id} ({mask_phone(phone)})", type_msg=TypeMsg.INFO)

        return AuthSession(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            user=account,
        )

    # =========================================================================
    # ТОКЕНЫ
    # =========================================================================

    async def refresh_tokens(self, refresh_token: str) -> TokenPair:
        """
        Выдаёт новую пару по refresh токену.

        Старый refresh токен продолжает действовать до истечения срока.

        Raises:
            InvalidCredentialError: Подпись, срок или тип токена некорректны
            AccountNotFoundError: Аккаунт удалён или заблокирован
        """
        claims = self._minter.verify_refresh(refresh_token)
        account = await self._accounts.find_active_by_id(claims.subject_id)
        if account is None:
            raise AccountNotFoundError("User not found or inactive")
        return await self._mint_for(account)

    async def get_current_account(self, access_token: str) -> Account:
        """
        Возвращает активный аккаунт владельца access токена.

        Raises:
            InvalidCredentialError: Токен некорректен или не является access
            AccountNotFoundError: Аккаунт удалён или заблокирован
        """
        claims = self._minter.verify_access(access_token)
        account = await self._accounts.find_active_by_id(claims.subject_id)
        if account is None:
            raise AccountNotFoundError("User not found or inactive")
        return account

    async def _mint_for(self, account: Account) -> TokenPair:
        claims = TokenClaims(subject_id=account.id, phone=account.phone, role=account.role)
        return await self._minter.mint_pair(claims)

    # =========================================================================
    # РЕГИСТРАЦИЯ
    # =========================================================================

    async def register(
        self,
        phone: str,
        name: str,
        role: UserRole | str,
        email: Optional[str] = None,
    ) -> Account:
        """
        Регистрирует аккаунт заказчика или исполнителя.

        Args:
            phone: Номер телефона
            name: Имя (не короче 2 символов)
            role: customer или provider
            email: Email (необязателен)

        Returns:
            Созданный аккаунт

        Raises:
            InvalidInputError: Некорректные данные
            ConflictError: Номер уже занят
        """
        phone = self.validate_phone(phone)

        name = (name or "").strip()
        if len(name) < 2 or len(name) > 255:
            raise InvalidInputError("Name must be between 2 and 255 characters")

        try:
            role = UserRole(role)
        except ValueError as e:
            raise InvalidInputError("Role must be customer or provider") from e
        if role not in _REGISTRABLE_ROLES:
            raise InvalidInputError("Role must be customer or provider")

        if email is not None:
            email = email.strip() or None
        if email is not None and ("@" not in email or len(email) > 255):
            raise InvalidInputError("Invalid email address")

        if await self._accounts.exists_by_phone(phone):
            raise ConflictError("User with this phone number already exists")

        return await self._accounts.create_with_profile(
            AccountCreateDTO(phone=phone, name=name, role=role, email=email)
        )
