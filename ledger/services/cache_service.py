"""
Journal Ledger - Cache Service

Redis-based caching of exchange rates per (enterprise, currency, date).

The cache is an optimization only: every failure is logged and degrades
to a database read.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from uuid import UUID

import redis.asyncio as redis

from ledger.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class CacheService:
    """Redis-based caching service."""

    # Cache key prefixes
    PREFIX_FX_RATE = "fx:rate"

    def __init__(self, redis_url: Optional[str] = None, ttl: Optional[int] = None):
        self.redis_url = redis_url or settings.redis_url
        self.ttl = ttl or settings.fx_rate_cache_ttl_seconds
        self._client: Optional[redis.Redis] = None

    async def get_client(self) -> redis.Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def close(self):
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # GENERIC CACHE OPERATIONS
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        """Get a value from cache."""
        try:
            client = await self.get_client()
            return await client.get(key)
        except Exception as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None

    async def set(
        self,
        key: str,
        value: str,
        ttl: Optional[int] = None,
    ) -> bool:
        """Set a value in cache with optional TTL."""
        try:
            client = await self.get_client()
            if ttl:
                await client.setex(key, ttl, value)
            else:
                await client.set(key, value)
            return True
        except Exception as e:
            logger.warning(f"Cache set failed for {key}: {e}")
            return False

    # =========================================================================
    # FX RATE CACHING
    # =========================================================================

    def _fx_rate_key(
        self,
        enterprise_id: UUID,
        currency_id: str,
        rate_date: date,
    ) -> str:
        """Generate cache key for FX rate."""
        return f"{self.PREFIX_FX_RATE}:{enterprise_id}:{currency_id}:{rate_date.isoformat()}"

    async def get_fx_rate(
        self,
        enterprise_id: UUID,
        currency_id: str,
        rate_date: date,
    ) -> Optional[Decimal]:
        """Get cached FX rate."""
        key = self._fx_rate_key(enterprise_id, currency_id, rate_date)
        value = await self.get(key)
        if value:
            try:
                return Decimal(value)
            except InvalidOperation:
                logger.warning(f"Discarding malformed cached rate under {key}: {value!r}")
        return None

    async def set_fx_rate(
        self,
        enterprise_id: UUID,
        currency_id: str,
        rate_date: date,
        rate: Decimal,
    ) -> bool:
        """Cache an FX rate."""
        key = self._fx_rate_key(enterprise_id, currency_id, rate_date)
        return await self.set(key, str(rate), self.ttl)

    async def health_check(self) -> Dict[str, Any]:
        """Check Redis connectivity."""
        try:
            client = await self.get_client()
            await client.ping()
            return {"status": "healthy", "redis_url": self.redis_url.split("@")[-1]}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}


# =========================================================================
# GLOBAL CACHE INSTANCE
# =========================================================================

_cache_service: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    """Get global cache service instance."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
    return _cache_service


async def close_cache_service():
    """Close global cache service."""
    global _cache_service
    if _cache_service:
        await _cache_service.close()
        _cache_service = None
