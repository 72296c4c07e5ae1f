"""
Tests for the fiscal calendar service.
"""

from datetime import date

import pytest

from ledger.services.fiscal_service import FiscalService
from ledger.utils.error_handling import (
    ClosedFiscalYearException,
    ErrorCode,
    FiscalYearNotFoundException,
)


class TestFiscalService:
    """Test FiscalService lookups."""

    @pytest.mark.asyncio
    async def test_resolve_date_in_open_year(self, db_session, fiscal_year_2024, period_of):
        service = FiscalService(db_session)

        entry = await service.resolve(date(2024, 2, 29), require_open=True)

        february = await period_of(fiscal_year_2024, 2)
        assert entry.fiscal_year_id == fiscal_year_2024.id
        assert entry.period_id == february.id
        assert entry.for_date == date(2024, 2, 29)

    @pytest.mark.asyncio
    async def test_period_boundaries_are_inclusive(self, db_session, fiscal_year_2024, period_of):
        service = FiscalService(db_session)

        first = await service.resolve_period(date(2024, 1, 1))
        last = await service.resolve_period(date(2024, 12, 31))

        assert first.number == 1
        assert last.number == 12

    @pytest.mark.asyncio
    async def test_date_outside_calendar(self, db_session, fiscal_year_2024):
        service = FiscalService(db_session)

        with pytest.raises(FiscalYearNotFoundException) as exc_info:
            await service.resolve(date(2031, 1, 1))

        assert exc_info.value.status_code == 404
        assert exc_info.value.code == ErrorCode.FISCAL_YEAR_NOT_FOUND

    @pytest.mark.asyncio
    async def test_locked_year_readable_without_require_open(self, db_session, fiscal_year_2023_locked):
        service = FiscalService(db_session)

        entry = await service.resolve(date(2023, 7, 14))

        assert entry.fiscal_year.locked is True
        assert entry.period.number == 7

    @pytest.mark.asyncio
    async def test_locked_year_rejected_when_open_required(self, db_session, fiscal_year_2023_locked):
        service = FiscalService(db_session)

        with pytest.raises(ClosedFiscalYearException) as exc_info:
            await service.resolve(date(2023, 7, 14), require_open=True)

        assert exc_info.value.details["fiscal_year"] == "Fiscal Year 2023"
