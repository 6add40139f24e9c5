"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the banking models used by ``sms_notifier``.
"""

from .banking import Base, BankTransaction

__all__ = [
    "Base",
    "BankTransaction",
]
