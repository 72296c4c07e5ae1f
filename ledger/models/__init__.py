"""
Journal Ledger - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from ledger.models.base import BaseModel, TimestampMixin
from ledger.models.user import User
from ledger.models.accounting import (
    Enterprise,
    Project,
    ExchangeRate,
    Account,
    FiscalYear,
    Period,
    PeriodTotal,
)
from ledger.models.journal import (
    CANCELLATION_VOUCHER_TYPE,
    JournalRowMixin,
    PostingJournal,
    GeneralLedger,
    TransactionHistory,
    Voucher,
    EntityMap,
    DocumentMap,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "User",
    "Enterprise",
    "Project",
    "ExchangeRate",
    "Account",
    "FiscalYear",
    "Period",
    "PeriodTotal",
    "CANCELLATION_VOUCHER_TYPE",
    "JournalRowMixin",
    "PostingJournal",
    "GeneralLedger",
    "TransactionHistory",
    "Voucher",
    "EntityMap",
    "DocumentMap",
]
