"""
Journal Ledger - Fiscal Calendar Service

Maps a calendar date to the fiscal year and the period containing it.
Read-only.
"""

import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.models.accounting import FiscalYear, Period
from ledger.utils.error_handling import (
    ClosedFiscalYearException,
    FiscalYearNotFoundException,
    PeriodNotFoundException,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarEntry:
    """The fiscal year and period a date falls in."""
    for_date: date
    fiscal_year: FiscalYear
    period: Period

    @property
    def fiscal_year_id(self) -> UUID:
        return self.fiscal_year.id

    @property
    def period_id(self) -> UUID:
        return self.period.id


class FiscalService:
    """Service for fiscal calendar lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_fiscal_year(self, for_date: date) -> FiscalYear:
        """Fiscal year whose [start_date, end_date] contains the date."""
        result = await self.db.execute(
            select(FiscalYear)
            .where(and_(
                FiscalYear.start_date <= for_date,
                FiscalYear.end_date >= for_date,
            ))
            .order_by(FiscalYear.start_date)
            .limit(1)
        )
        fiscal_year = result.scalar_one_or_none()
        if fiscal_year is None:
            raise FiscalYearNotFoundException(for_date)
        return fiscal_year

    async def resolve_period(self, for_date: date) -> Period:
        """
        Period whose [start_date, end_date] contains the date.

        The opening period (number 0) has no dates and never matches.
        """
        result = await self.db.execute(
            select(Period)
            .where(and_(
                Period.start_date <= for_date,
                Period.end_date >= for_date,
            ))
            .order_by(Period.start_date)
            .limit(1)
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundException(for_date)
        return period

    async def resolve(self, for_date: date, require_open: bool = False) -> CalendarEntry:
        """
        Resolve both the fiscal year and the period of a date.

        With require_open, a locked fiscal year raises CLOSED_FISCAL_YEAR
        before the period is looked up.
        """
        fiscal_year = await self.resolve_fiscal_year(for_date)
        if require_open and fiscal_year.locked:
            logger.info(f"Rejected mutation dated {for_date}: fiscal year {fiscal_year.label} is locked")
            raise ClosedFiscalYearException(fiscal_year.label, for_date)
        period = await self.resolve_period(for_date)
        return CalendarEntry(for_date=for_date, fiscal_year=fiscal_year, period=period)
