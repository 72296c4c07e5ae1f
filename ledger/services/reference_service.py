"""
Journal Ledger - Reference Resolver

Translates human-readable codes into identities:
- account number -> account id
- printed entity code -> entity uuid
- printed document reference -> document uuid
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ledger.models.accounting import Account
from ledger.models.journal import DocumentMap, EntityMap
from ledger.utils.error_handling import (
    InvalidAccountException,
    InvalidEntityException,
    InvalidReferenceException,
)


class ReferenceService:
    """Each lookup runs in its own session so lookups may run concurrently."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _scalar(self, stmt):
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def resolve_account(self, account_number: str) -> UUID:
        account_id = await self._scalar(
            select(Account.id).where(Account.number == account_number)
        )
        if account_id is None:
            raise InvalidAccountException(account_number)
        return account_id

    async def resolve_entity(self, hr_entity: str) -> UUID:
        entity_uuid = await self._scalar(
            select(EntityMap.uuid).where(EntityMap.text == hr_entity)
        )
        if entity_uuid is None:
            raise InvalidEntityException(hr_entity)
        return entity_uuid

    async def resolve_reference(self, hr_reference: str) -> UUID:
        reference_uuid = await self._scalar(
            select(DocumentMap.uuid).where(DocumentMap.text == hr_reference)
        )
        if reference_uuid is None:
            raise InvalidReferenceException(hr_reference)
        return reference_uuid
