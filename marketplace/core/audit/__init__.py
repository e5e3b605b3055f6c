# marketplace/core/audit/__init__.py
"""
Журнал отправок кодов.
"""

from marketplace.core.audit.repository import DispatchLogRepository

__all__ = ["DispatchLogRepository"]
