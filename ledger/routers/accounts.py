"""
Journal Ledger - Accounts Router

API endpoints for account balances.
"""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.database import get_db
from ledger.dependencies import get_current_user
from ledger.models.user import User
from ledger.schemas.accounts import OpeningBalanceResponse
from ledger.services.balance_service import BalanceService


router = APIRouter(prefix="/accounts", tags=["Accounts"])


@router.get("/{account_id}/opening-balance", response_model=OpeningBalanceResponse)
async def get_opening_balance(
    account_id: uuid.UUID = Path(..., description="Account ID"),
    as_of: date = Query(..., alias="date", description="Balance as of this date"),
    include_boundary_date: bool = Query(True, description="Count lines dated on the date itself"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Opening balance of an account as of a date, in enterprise currency."""
    service = BalanceService(db)
    balance = await service.get_opening_balance(account_id, as_of, include_boundary_date)
    return OpeningBalanceResponse(
        account_id=account_id,
        as_of_date=as_of,
        include_boundary_date=include_boundary_date,
        **balance,
    )
