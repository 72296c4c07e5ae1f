"""
Journal Ledger - Period Balance Service

Opening balance of an account as of a date, in enterprise currency:
closed period totals of the fiscal year up to the date's period, plus the
general ledger lines of the date's own period up to the date.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.models.accounting import Account, Period, PeriodTotal
from ledger.models.journal import GeneralLedger
from ledger.services.fiscal_service import FiscalService
from ledger.utils.error_handling import AccountNotFoundException

logger = logging.getLogger(__name__)

BALANCE_PRECISION = Decimal("0.0001")


def _totals(debit, credit) -> Dict[str, Decimal]:
    debit = Decimal(str(debit or 0))
    credit = Decimal(str(credit or 0))
    return {"debit": debit, "credit": credit, "balance": debit - credit}


class BalanceService:
    """Service for account balance computation."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.fiscal = FiscalService(db)

    async def get_opening_balance(
        self,
        account_id: uuid.UUID,
        for_date: date,
        include_boundary_date: bool = True,
    ) -> Dict[str, Decimal]:
        """
        Balance, debit and credit of an account as of for_date.
        All three are enterprise-currency amounts, so ledger lines contribute
        their debit_equiv and credit_equiv rather than transaction-currency
        debit and credit.

        With include_boundary_date the lines dated for_date count,
        otherwise only earlier lines do.

        Raises:
            AccountNotFoundException: unknown account
            FiscalYearNotFoundException / PeriodNotFoundException: the date
                is outside the fiscal calendar
        """
        account = await self.db.get(Account, account_id)
        if account is None:
            raise AccountNotFoundException(account_id)

        fiscal_year = await self.fiscal.resolve_fiscal_year(for_date)
        closed = await self._period_totals_until(account_id, for_date, fiscal_year.id)

        period = await self.fiscal.resolve_period(for_date)
        running = await self._ledger_totals_until(account_id, for_date, period.id, include_boundary_date)

        balance = {
            key: (closed[key] + running[key]).quantize(BALANCE_PRECISION, rounding=ROUND_HALF_UP)
            for key in ("balance", "debit", "credit")
        }
        logger.debug(f"Opening balance of {account.number} on {for_date}: {balance}")
        return balance

    async def _period_totals_until(
        self,
        account_id: uuid.UUID,
        for_date: date,
        fiscal_year_id: uuid.UUID,
    ) -> Dict[str, Decimal]:
        """Period totals of the fiscal year for periods ended before the date, plus period 0."""
        result = await self.db.execute(
            select(
                func.coalesce(func.sum(PeriodTotal.debit), 0),
                func.coalesce(func.sum(PeriodTotal.credit), 0),
            )
            .join(Period, Period.id == PeriodTotal.period_id)
            .where(and_(
                PeriodTotal.account_id == account_id,
                Period.fiscal_year_id == fiscal_year_id,
                or_(Period.number == 0, Period.end_date < for_date),
            ))
        )
        debit, credit = result.one()
        return _totals(debit, credit)

    async def _ledger_totals_until(
        self,
        account_id: uuid.UUID,
        for_date: date,
        period_id: uuid.UUID,
        include_boundary_date: bool,
    ) -> Dict[str, Decimal]:
        """Posted lines of the period dated before (or on) the date."""
        if include_boundary_date:
            date_condition = GeneralLedger.trans_date <= for_date
        else:
            date_condition = GeneralLedger.trans_date < for_date

        result = await self.db.execute(
            select(
                func.coalesce(func.sum(GeneralLedger.debit_equiv), 0),
                func.coalesce(func.sum(GeneralLedger.credit_equiv), 0),
            )
            .where(and_(
                GeneralLedger.account_id == account_id,
                GeneralLedger.period_id == period_id,
                date_condition,
            ))
        )
        debit, credit = result.one()
        return _totals(debit, credit)
