# marketplace/core/accounts/__init__.py
"""
Домен аккаунтов.
Модели и репозиторий каталога пользователей.
"""

from marketplace.core.accounts.models import Account, AccountCreateDTO
from marketplace.core.accounts.repository import AccountRepository

__all__ = [
    "Account",
    "AccountCreateDTO",
    "AccountRepository",
]
