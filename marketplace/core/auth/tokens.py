# marketplace/core/auth/tokens.py
"""
Подпись и выпуск токенов сессии (JWT, HS256).

Access и refresh токены одной пары несут одинаковые sub/phone/role,
подписываются разными секретами и живут разное время. Связь между ними
нигде не хранится, чёрного списка нет.
"""

from __future__ import annotations

import asyncio
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import jwt

from marketplace.common.constants import TokenType, UserRole
from marketplace.common.exceptions import InvalidCredentialError
from marketplace.core.auth.models import TokenClaims, TokenPair, VerifiedToken


class JwtSigner:
    """Подписывает и проверяет токены."""

    def __init__(self, algorithm: str = "HS256") -> None:
        self._algorithm = algorithm

    def sign(
        self,
        claims: TokenClaims,
        secret: str,
        ttl_seconds: int,
        token_type: TokenType,
    ) -> str:
        """
        Подписывает токен.

        Args:
            claims: Утверждения пары
            secret: Секрет подписи
            ttl_seconds: Время жизни токена
            token_type: access или refresh

        Returns:
            Подписанный токен
        """
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            **claims.to_payload(),
            "type": token_type.value,
            "iat": now,
            "exp": now + timedelta(seconds=ttl_seconds),
            # Уникальность подписи для пар с одинаковыми утверждениями
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, secret, algorithm=self._algorithm)

    def verify(self, token: str, secret: str) -> VerifiedToken:
        """
        Проверяет подпись и срок действия токена.

        Raises:
            InvalidCredentialError: Подпись, срок или состав утверждений некорректны
        """
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp", "iat", "type"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidCredentialError("Token expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidCredentialError() from e

        try:
            claims = TokenClaims(
                subject_id=UUID(str(payload["sub"])),
                phone=str(payload["phone"]),
                role=UserRole(payload["role"]),
            )
            token_type = TokenType(payload["type"])
        except (KeyError, ValueError) as e:
            raise InvalidCredentialError() from e

        return VerifiedToken(
            claims=claims,
            token_type=token_type,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


class CredentialMinter:
    """Выпускает пары токенов и проверяет токены по их назначению."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl_seconds: int = 15 * 60,
        refresh_ttl_seconds: int = 7 * 24 * 3600,
        signer: JwtSigner | None = None,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("JWT секреты не заданы")
        if access_secret == refresh_secret:
            raise ValueError("Секреты access и refresh токенов должны различаться")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._access_ttl = access_ttl_seconds
        self._refresh_ttl = refresh_ttl_seconds
        self._signer = signer or JwtSigner()

    async def mint_pair(self, claims: TokenClaims) -> TokenPair:
        """Подписывает access и refresh токены параллельно."""
        access_token, refresh_token = await asyncio.gather(
            asyncio.to_thread(
                self._signer.sign, claims, self._access_secret, self._access_ttl, TokenType.ACCESS
            ),
            asyncio.to_thread(
                self._signer.sign, claims, self._refresh_secret, self._refresh_ttl, TokenType.REFRESH
            ),
        )
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def verify_access(self, token: str) -> TokenClaims:
        return self._verify(token, self._access_secret, TokenType.ACCESS)

    def verify_refresh(self, token: str) -> TokenClaims:
        return self._verify(token, self._refresh_secret, TokenType.REFRESH)

    def _verify(self, token: str, secret: str, expected: TokenType) -> TokenClaims:
        verified = self._signer.verify(token, secret)
        if verified.token_type != expected:
            raise InvalidCredentialError()
        return verified.claims


def build_minter() -> CredentialMinter:
    """Создаёт CredentialMinter из настроек."""
    from marketplace.config import settings

    return CredentialMinter(
        access_secret=settings.jwt.JWT_SECRET,
        refresh_secret=settings.jwt.JWT_REFRESH_SECRET,
        access_ttl_seconds=settings.jwt.JWT_ACCESS_EXPIRES_SECONDS,
        refresh_ttl_seconds=settings.jwt.JWT_REFRESH_EXPIRES_SECONDS,
        signer=JwtSigner(settings.jwt.JWT_ALGORITHM),
    )
