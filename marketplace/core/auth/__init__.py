"""Аутентификация по одноразовому коду и токены сессии."""

from marketplace.core.auth.models import (
    AuthSession,
    OtpDispatchResult,
    PendingCode,
    TokenClaims,
    TokenPair,
)
from marketplace.core.auth.otp_store import (
    InMemoryOtpStore,
    OtpStore,
    RedisOtpStore,
    build_otp_store,
)
from marketplace.core.auth.service import AuthService, generate_code
from marketplace.core.auth.tokens import CredentialMinter, JwtSigner, build_minter

__all__ = [
    "AuthService",
    "AuthSession",
    "CredentialMinter",
    "InMemoryOtpStore",
    "JwtSigner",
    "OtpDispatchResult",
    "OtpStore",
    "PendingCode",
    "RedisOtpStore",
    "TokenClaims",
    "TokenPair",
    "build_minter",
    "build_otp_store",
    "generate_code",
]
