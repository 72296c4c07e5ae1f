"""
Journal Ledger - Foreign Exchange (FX) Service

Converts enterprise-currency amounts into a transaction's own currency.

Rates are stored per enterprise as "1 unit of enterprise currency = rate
units of currency_id"; the rate in effect on a date is the latest one
dated on or before it. Rates are cached in Redis.
"""

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger.config import settings
from ledger.models.accounting import Enterprise, ExchangeRate, Project
from ledger.services.cache_service import CacheService, get_cache_service
from ledger.utils.error_handling import MissingExchangeRateException

logger = logging.getLogger(__name__)

AMOUNT_PRECISION = Decimal("0.0001")


class FXService:
    """
    Service for exchange rate lookups.

    Every public call opens its own short-lived session from the factory,
    so conversions for several rows can run concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: Optional[CacheService] = None,
        use_cache: Optional[bool] = None,
    ):
        self.session_factory = session_factory
        self.use_cache = settings.fx_rate_cache_enabled if use_cache is None else use_cache
        self._cache = cache

    @property
    def cache(self) -> CacheService:
        if self._cache is None:
            self._cache = get_cache_service()
        return self._cache

    async def _get_enterprise(self, db: AsyncSession, project_id: UUID) -> Optional[Enterprise]:
        result = await db.execute(
            select(Enterprise)
            .join(Project, Project.enterprise_id == Enterprise.id)
            .where(Project.id == project_id)
        )
        return result.scalar_one_or_none()

    async def _get_rate(
        self,
        db: AsyncSession,
        enterprise_id: UUID,
        currency_id: str,
        rate_date: date,
    ) -> Optional[Decimal]:
        if self.use_cache:
            cached_rate = await self.cache.get_fx_rate(enterprise_id, currency_id, rate_date)
            if cached_rate is not None:
                logger.debug(f"Cache hit for FX rate {enterprise_id}/{currency_id} on {rate_date}")
                return cached_rate

        result = await db.execute(
            select(ExchangeRate.rate)
            .where(and_(
                ExchangeRate.enterprise_id == enterprise_id,
                ExchangeRate.currency_id == currency_id,
                ExchangeRate.rate_date <= rate_date,
            ))
            .order_by(ExchangeRate.rate_date.desc())
            .limit(1)
        )
        rate = result.scalar_one_or_none()

        if rate is not None and self.use_cache:
            await self.cache.set_fx_rate(enterprise_id, currency_id, rate_date, rate)
        return rate

    async def get_rate(
        self,
        enterprise_id: UUID,
        currency_id: str,
        rate_date: date,
    ) -> Optional[Decimal]:
        """
        Rate in effect on rate_date for the enterprise, or None when no rate
        is recorded on or before that date.
        """
        async with self.session_factory() as db:
            return await self._get_rate(db, enterprise_id, currency_id, rate_date)

    async def convert(
        self,
        amount: Decimal,
        currency_id: str,
        rate_date: date,
        project_id: UUID,
    ) -> Decimal:
        """
        Convert an enterprise-currency amount into currency_id.

        Raises:
            MissingExchangeRateException: no enterprise, no rate, or a
                conversion that yields zero
        """
        async with self.session_factory() as db:
            enterprise = await self._get_enterprise(db, project_id)
            if enterprise is None:
                logger.warning(f"Project {project_id} has no enterprise; cannot convert {currency_id}")
                raise MissingExchangeRateException(currency_id, rate_date)

            if enterprise.currency_id == currency_id:
                converted = Decimal(amount)
            else:
                rate = await self._get_rate(db, enterprise.id, currency_id, rate_date)
                converted = Decimal(amount) * rate if rate else Decimal("0")

        if not converted:
            raise MissingExchangeRateException(currency_id, rate_date)
        return converted.quantize(AMOUNT_PRECISION, rounding=ROUND_HALF_UP)
