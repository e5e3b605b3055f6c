# tests/core/test_auth_service.py
"""
Тесты для сервиса аутентификации по одноразовому коду.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import jwt
import pytest

from marketplace.common.constants import OtpPurpose, TokenType, UserRole
from marketplace.common.exceptions import (
    AccountNotFoundError,
    ConflictError,
    InvalidCredentialError,
    InvalidInputError,
    OtpExpiredError,
    OtpMismatchError,
    OtpNotFoundError,
)
from marketplace.core.accounts.models import AccountCreateDTO
from marketplace.core.auth.models import AuthSession, TokenClaims
from marketplace.core.auth.otp_store import InMemoryOtpStore
from marketplace.core.auth.service import AuthService, generate_code
from marketplace.core.auth.tokens import JwtSigner


class YieldingOtpStore(InMemoryOtpStore):
    """Хранилище, отдающее управление циклу после чтения (гонка проверок)."""

    async def get(self, identifier):
        pending = await super().get(identifier)
        await asyncio.sleep(0)
        return pending


class TestGenerateCode:
    """Тесты генерации кода."""

    def test_code_is_six_digits_in_range(self) -> None:
        """Проверяет формат и диапазон кода."""
        for _ in range(200):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999


class TestSendOtp:
    """Тесты выдачи кода."""

    @pytest.mark.asyncio
    async def test_known_account(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        mock_dispatch_log: AsyncMock,
        otp_store: InMemoryOtpStore,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет выдачу кода зарегистрированному номеру."""
        mock_accounts.find_active_by_phone.return_value = account_factory(known_phone)

        result = await auth_service.send_otp(known_phone)

        assert result.success is True
        assert result.is_registered is True
        assert "login" in result.message

        pending = await otp_store.get(known_phone)
        assert pending is not None
        assert len(pending.code) == 6

        mock_dispatch_log.record.assert_awaited_once_with(
            known_phone,
            f"Your ServiGroww OTP is: {pending.code}",
            OtpPurpose.LOGIN,
        )

    @pytest.mark.asyncio
    async def test_unknown_account(
        self,
        auth_service: AuthService,
        mock_dispatch_log: AsyncMock,
        unknown_phone: str,
    ) -> None:
        """Проверяет выдачу кода незарегистрированному номеру."""
        result = await auth_service.send_otp(unknown_phone)

        assert result.is_registered is False
        assert "registration" in result.message
        assert mock_dispatch_log.record.await_args.args[2] == OtpPurpose.REGISTRATION

    @pytest.mark.asyncio
    async def test_code_not_in_result(
        self,
        auth_service: AuthService,
        otp_store: InMemoryOtpStore,
        known_phone: str,
    ) -> None:
        """Проверяет, что код не возвращается клиенту."""
        result = await auth_service.send_otp(known_phone)
        pending = await otp_store.get(known_phone)

        assert pending.code not in result.model_dump_json()

    @pytest.mark.asyncio
    async def test_expiry_is_five_minutes(
        self,
        auth_service: AuthService,
        otp_store: InMemoryOtpStore,
        clock,
        known_phone: str,
    ) -> None:
        """Проверяет срок действия кода."""
        await auth_service.send_otp(known_phone)
        pending = await otp_store.get(known_phone)

        assert (pending.expires_at - clock.now).total_seconds() == 300

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "phone",
        ["9876543210", "+91512345678", "+915123456789", "+9198765432101", "+1 9876543210", "", "+91987654321a"],
    )
    async def test_invalid_phone(
        self,
        auth_service: AuthService,
        otp_store: InMemoryOtpStore,
        phone: str,
    ) -> None:
        """Проверяет отказ для номеров вне формата +91XXXXXXXXXX."""
        with pytest.raises(InvalidInputError):
            await auth_service.send_otp(phone)
        assert len(otp_store) == 0

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_issuance(
        self,
        auth_service: AuthService,
        mock_dispatch_log: AsyncMock,
        known_phone: str,
    ) -> None:
        """Проверяет, что неудачная запись в журнал не ломает выдачу."""
        mock_dispatch_log.record.return_value = False

        result = await auth_service.send_otp(known_phone)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_dev_mode_logs_code(
        self,
        mock_accounts: AsyncMock,
        otp_store: InMemoryOtpStore,
        minter,
        mock_dispatch_log: AsyncMock,
        known_phone: str,
    ) -> None:
        """Проверяет, что в режиме разработки код пишется в debug-лог."""
        service = AuthService(
            accounts=mock_accounts,
            otp_store=otp_store,
            minter=minter,
            dispatch_log=mock_dispatch_log,
            dev_mode=True,
        )

        with patch("marketplace.core.auth.service.log_debug", new_callable=AsyncMock) as mock_log:
            await service.send_otp(known_phone)

        pending = await otp_store.get(known_phone)
        assert pending.code in mock_log.await_args.args[0]


class TestVerifyOtp:
    """Тесты проверки кода и входа."""

    @pytest.mark.asyncio
    async def test_known_account_scenario(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        otp_store: InMemoryOtpStore,
        account_factory,
        known_phone: str,
    ) -> None:
        """Выдача кода, вход по коду, повторная проверка того же кода."""
        account = account_factory(known_phone)
        mock_accounts.find_active_by_phone.return_value = account

        sent = await auth_service.send_otp(known_phone)
        assert sent.is_registered is True
        code = (await otp_store.get(known_phone)).code

        session = await auth_service.verify_otp(known_phone, code)

        assert isinstance(session, AuthSession)
        assert session.user.id == account.id
        assert session.user.last_login_at is not None
        assert session.access_token != session.refresh_token
        mock_accounts.touch_last_login.assert_awaited_once_with(account.id)

        with pytest.raises(OtpNotFoundError):
            await auth_service.verify_otp(known_phone, code)

    @pytest.mark.asyncio
    async def test_tokens_carry_claims(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        otp_store: InMemoryOtpStore,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет утверждения в access и refresh токенах."""
        account = account_factory(known_phone, role=UserRole.PROVIDER)
        mock_accounts.find_active_by_phone.return_value = account
        await auth_service.send_otp(known_phone)
        code = (await otp_store.get(known_phone)).code

        session = await auth_service.verify_otp(known_phone, code)

        access = jwt.decode(session.access_token, options={"verify_signature": False})
        refresh = jwt.decode(session.refresh_token, options={"verify_signature": False})
        for payload in (access, refresh):
            assert payload["sub"] == str(account.id)
            assert payload["phone"] == known_phone
            assert payload["role"] == "provider"
        assert access["type"] == "access"
        assert refresh["type"] == "refresh"
        assert refresh["exp"] > access["exp"]

    @pytest.mark.asyncio
    async def test_no_pending_code(self, auth_service: AuthService, known_phone: str) -> None:
        """Проверяет ошибку при отсутствии кода."""
        with pytest.raises(OtpNotFoundError):
            await auth_service.verify_otp(known_phone, "123456")

    @pytest.mark.asyncio
    async def test_expired_code_is_removed(
        self,
        auth_service: AuthService,
        otp_store: InMemoryOtpStore,
        clock,
        known_phone: str,
    ) -> None:
        """Проверяет, что просроченный код удаляется."""
        await auth_service.send_otp(known_phone)
        code = (await otp_store.get(known_phone)).code

        clock.advance(301)

        with pytest.raises(OtpExpiredError):
            await auth_service.verify_otp(known_phone, code)
        assert await otp_store.get(known_phone) is None

        with pytest.raises(OtpNotFoundError):
            await auth_service.verify_otp(known_phone, code)

    @pytest.mark.asyncio
    async def test_code_valid_until_expiry(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        otp_store: InMemoryOtpStore,
        clock,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет, что код действует ровно до expires_at включительно."""
        mock_accounts.find_active_by_phone.return_value = account_factory(known_phone)
        await auth_service.send_otp(known_phone)
        code = (await otp_store.get(known_phone)).code

        clock.advance(300)

        session = await auth_service.verify_otp(known_phone, code)
        assert session.access_token

    @pytest.mark.asyncio
    async def test_mismatch_keeps_pending_code(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        otp_store: InMemoryOtpStore,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет, что неверный код не сжигает ожидающий."""
        mock_accounts.find_active_by_phone.return_value = account_factory(known_phone)

        with patch("marketplace.core.auth.service.generate_code", return_value="482913"):
            await auth_service.send_otp(known_phone)

        with pytest.raises(OtpMismatchError):
            await auth_service.verify_otp(known_phone, "482914")
        assert (await otp_store.get(known_phone)).code == "482913"

        session = await auth_service.verify_otp(known_phone, "482913")
        assert session.user.phone == known_phone

    @pytest.mark.asyncio
    async def test_reissue_invalidates_previous_code(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет, что после повторной выдачи действует только новый код."""
        mock_accounts.find_active_by_phone.return_value = account_factory(known_phone)

        with patch("marketplace.core.auth.service.generate_code", side_effect=["111111", "222222"]):
            await auth_service.send_otp(known_phone)
            await auth_service.send_otp(known_phone)

        with pytest.raises(OtpMismatchError):
            await auth_service.verify_otp(known_phone, "111111")

        session = await auth_service.verify_otp(known_phone, "222222")
        assert session.refresh_token

    @pytest.mark.asyncio
    async def test_unknown_account_consumes_code(
        self,
        auth_service: AuthService,
        otp_store: InMemoryOtpStore,
        unknown_phone: str,
    ) -> None:
        """Проверяет вход без аккаунта: код израсходован, аккаунт не найден."""
        await auth_service.send_otp(unknown_phone)
        code = (await otp_store.get(unknown_phone)).code

        with pytest.raises(AccountNotFoundError):
            await auth_service.verify_otp(unknown_phone, code)
        assert await otp_store.get(unknown_phone) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("otp", ["12345", "1234567", "abcdef", "12 456", ""])
    async def test_invalid_code_format(
        self,
        auth_service: AuthService,
        known_phone: str,
        otp: str,
    ) -> None:
        """Проверяет отказ для кода не из шести цифр."""
        with pytest.raises(InvalidInputError):
            await auth_service.verify_otp(known_phone, otp)

    @pytest.mark.asyncio
    async def test_concurrent_verify_single_winner(
        self,
        mock_accounts: AsyncMock,
        minter,
        mock_dispatch_log: AsyncMock,
        clock,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет, что из параллельных проверок одного кода успешна ровно одна."""
        store = YieldingOtpStore(clock=clock)
        service = AuthService(
            accounts=mock_accounts,
            otp_store=store,
            minter=minter,
            dispatch_log=mock_dispatch_log,
            clock=clock,
        )
        mock_accounts.find_active_by_phone.return_value = account_factory(known_phone)
        await service.send_otp(known_phone)
        code = (await store.get(known_phone)).code

        results = await asyncio.gather(
            *(service.verify_otp(known_phone, code) for _ in range(5)),
            return_exceptions=True,
        )

        sessions = [r for r in results if isinstance(r, AuthSession)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(sessions) == 1
        assert len(failures) == 4
        assert all(isinstance(f, OtpNotFoundError) for f in failures)


class TestRefreshTokens:
    """Тесты обновления пары токенов."""

    async def _login(self, service: AuthService, store: InMemoryOtpStore, phone: str) -> AuthSession:
        await service.send_otp(phone)
        code = (await store.get(phone)).code
        return await service.verify_otp(phone, code)

    @pytest.mark.asyncio
    async def test_refresh_returns_new_pair(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        otp_store: InMemoryOtpStore,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет выдачу новой пары по refresh токену."""
        account = account_factory(known_phone)
        mock_accounts.find_active_by_phone.return_value = account
        mock_accounts.find_active_by_id.return_value = account
        session = await self._login(auth_service, otp_store, known_phone)

        pair = await auth_service.refresh_tokens(session.refresh_token)

        assert pair.access_token != session.access_token
        assert pair.refresh_token != session.refresh_token
        mock_accounts.find_active_by_id.assert_awaited_with(account.id)

        # Старый refresh токен не отзывается
        again = await auth_service.refresh_tokens(session.refresh_token)
        assert again.access_token

    @pytest.mark.asyncio
    async def test_access_token_rejected(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        otp_store: InMemoryOtpStore,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет, что access токен не принимается как refresh."""
        account = account_factory(known_phone)
        mock_accounts.find_active_by_phone.return_value = account
        mock_accounts.find_active_by_id.return_value = account
        session = await self._login(auth_service, otp_store, known_phone)

        with pytest.raises(InvalidCredentialError):
            await auth_service.refresh_tokens(session.access_token)

    @pytest.mark.asyncio
    async def test_wrong_type_with_refresh_secret_rejected(
        self,
        auth_service: AuthService,
        account_factory,
    ) -> None:
        """Проверяет отказ для токена с типом access, подписанного refresh секретом."""
        account = account_factory()
        claims = TokenClaims(subject_id=account.id, phone=account.phone, role=account.role)
        token = JwtSigner().sign(claims, "test_refresh_secret_0123456789abcdef", 600, TokenType.ACCESS)

        with pytest.raises(InvalidCredentialError):
            await auth_service.refresh_tokens(token)

    @pytest.mark.asyncio
    async def test_garbage_token_rejected(self, auth_service: AuthService) -> None:
        """Проверяет отказ для произвольной строки."""
        with pytest.raises(InvalidCredentialError):
            await auth_service.refresh_tokens("not-a-token")

    @pytest.mark.asyncio
    async def test_inactive_account(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        otp_store: InMemoryOtpStore,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет отказ, если аккаунт больше не активен."""
        mock_accounts.find_active_by_phone.return_value = account_factory(known_phone)
        session = await self._login(auth_service, otp_store, known_phone)
        mock_accounts.find_active_by_id.return_value = None

        with pytest.raises(AccountNotFoundError):
            await auth_service.refresh_tokens(session.refresh_token)


class TestCurrentAccount:
    """Тесты получения текущего аккаунта."""

    @pytest.mark.asyncio
    async def test_access_token_resolves_account(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        otp_store: InMemoryOtpStore,
        account_factory,
        known_phone: str,
    ) -> None:
        """Проверяет получение аккаунта по access токену."""
        account = account_factory(known_phone)
        mock_accounts.find_active_by_phone.return_value = account
        mock_accounts.find_active_by_id.return_value = account
        await auth_service.send_otp(known_phone)
        session = await auth_service.verify_otp(known_phone, (await otp_store.get(known_phone)).code)

        current = await auth_service.get_current_account(session.access_token)

        assert current.id == account.id

        with pytest.raises(InvalidCredentialError):
            await auth_service.get_current_account(session.refresh_token)


class TestRegister:
    """Тесты регистрации."""

    @pytest.mark.asyncio
    async def test_register_then_known(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        account_factory,
        unknown_phone: str,
    ) -> None:
        """Регистрация делает номер известным для следующей выдачи кода."""
        created = account_factory(unknown_phone, role=UserRole.PROVIDER, name="Asha")
        mock_accounts.create_with_profile.return_value = created

        account = await auth_service.register(unknown_phone, "  Asha ", "provider", None)

        assert account is created
        dto = mock_accounts.create_with_profile.await_args.args[0]
        assert dto == AccountCreateDTO(phone=unknown_phone, name="Asha", role=UserRole.PROVIDER)

        mock_accounts.find_active_by_phone.return_value = created
        result = await auth_service.send_otp(unknown_phone)
        assert result.is_registered is True

    @pytest.mark.asyncio
    async def test_duplicate_phone(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        known_phone: str,
    ) -> None:
        """Проверяет конфликт для занятого номера."""
        mock_accounts.exists_by_phone.return_value = True

        with pytest.raises(ConflictError):
            await auth_service.register(known_phone, "Ravi", UserRole.CUSTOMER)
        mock_accounts.create_with_profile.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("name", "role", "email"),
        [
            ("R", "customer", None),
            ("Ravi", "admin", None),
            ("Ravi", "driver", None),
            ("Ravi", "customer", "not-an-email"),
        ],
    )
    async def test_invalid_registration(
        self,
        auth_service: AuthService,
        mock_accounts: AsyncMock,
        known_phone: str,
        name: str,
        role: str,
        email: str | None,
    ) -> None:
        """Проверяет валидацию имени, роли и email."""
        with pytest.raises(InvalidInputError):
            await auth_service.register(known_phone, name, role, email)
        mock_accounts.create_with_profile.assert_not_awaited()
