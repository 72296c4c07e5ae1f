"""
Tests for resolving account numbers and printed codes.
"""

import pytest

from ledger.services.reference_service import ReferenceService
from ledger.utils.error_handling import (
    ErrorCode,
    InvalidAccountException,
    InvalidEntityException,
    InvalidReferenceException,
)


class TestReferenceService:

    @pytest.mark.asyncio
    async def test_resolve_account(self, session_factory, test_accounts):
        service = ReferenceService(session_factory)
        assert await service.resolve_account("4000") == test_accounts["4000"].id

    @pytest.mark.asyncio
    async def test_unknown_account(self, session_factory, test_accounts):
        service = ReferenceService(session_factory)

        with pytest.raises(InvalidAccountException) as exc_info:
            await service.resolve_account("4001")

        assert exc_info.value.code == ErrorCode.EDIT_INVALID_ACCOUNT
        assert exc_info.value.field == "account_number"

    @pytest.mark.asyncio
    async def test_resolve_codes(self, session_factory, code_maps):
        service = ReferenceService(session_factory)

        assert await service.resolve_entity("PA.TPA.1") == code_maps["PA.TPA.1"]
        assert await service.resolve_reference("VO.TPA.7") == code_maps["VO.TPA.7"]

    @pytest.mark.asyncio
    async def test_unknown_codes(self, session_factory, code_maps):
        service = ReferenceService(session_factory)

        with pytest.raises(InvalidEntityException):
            await service.resolve_entity("PA.TPA.2")
        with pytest.raises(InvalidReferenceException) as exc_info:
            await service.resolve_reference("VO.TPA.8")

        assert exc_info.value.code == ErrorCode.EDIT_INVALID_REFERENCE
