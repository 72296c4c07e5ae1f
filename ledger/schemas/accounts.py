"""
Journal Ledger - Account Schemas
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class OpeningBalanceResponse(BaseModel):
    """Balance of an account as of a date, in enterprise currency."""
    account_id: UUID
    as_of_date: date
    include_boundary_date: bool
    balance: Decimal
    debit: Decimal
    credit: Decimal
