"""
Journal Ledger - Journal Router

API endpoints for reading, editing and reversing journal transactions.
"""

import uuid
from datetime import date
from typing import List, Mapping, Any, Optional

from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger.database import get_db, get_session_factory
from ledger.dependencies import get_current_user
from ledger.models.user import User
from ledger.schemas.journal import (
    CommentUpdateRequest, CommentUpdateResponse,
    EditHistoryEntry,
    JournalFilters, JournalRowResponse,
    ReverseTransactionRequest, ReverseTransactionResponse,
    TransactionCountResponse, TransactionEditRequest,
)
from ledger.services.journal_service import JournalService


router = APIRouter(prefix="/journal", tags=["Journal"])


def _to_response(rows: List[Mapping[str, Any]]) -> List[JournalRowResponse]:
    return [JournalRowResponse.model_validate(dict(row)) for row in rows]


# ============================================================================
# SEARCH ENDPOINTS
# ============================================================================

@router.get("", response_model=List[JournalRowResponse])
async def search_journal(
    record_uuid: Optional[uuid.UUID] = Query(None),
    trans_id: Optional[str] = Query(None, description="Transaction number, e.g. TPA42"),
    account_id: Optional[uuid.UUID] = Query(None),
    project_id: Optional[uuid.UUID] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    description: Optional[str] = Query(None, description="Substring of the description"),
    comment: Optional[str] = Query(None, description="Substring of the comment"),
    include_non_posted: bool = Query(False, description="Also search the general ledger"),
    show_full_transactions: bool = Query(False, description="Return every row of matched transactions"),
    limit: Optional[int] = Query(None, ge=1, le=10000),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    current_user: User = Depends(get_current_user),
):
    """Search journal rows with a fixed set of filters."""
    filters = JournalFilters(
        record_uuid=record_uuid,
        trans_id=trans_id,
        account_id=account_id,
        project_id=project_id,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        description=description,
        comment=comment,
        include_non_posted=include_non_posted,
        show_full_transactions=show_full_transactions,
        limit=limit,
    )
    service = JournalService(db, session_factory)
    return _to_response(await service.search(filters))


@router.get("/count", response_model=TransactionCountResponse)
async def count_transactions(
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    current_user: User = Depends(get_current_user),
):
    """Number of transactions waiting in the posting journal."""
    service = JournalService(db, session_factory)
    return TransactionCountResponse(
        number_transactions=await service.count_unposted_transactions(),
    )


@router.put("/comments", response_model=CommentUpdateResponse)
async def comment_rows(
    request: CommentUpdateRequest,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    current_user: User = Depends(get_current_user),
):
    """Set the same comment on journal and ledger rows."""
    service = JournalService(db, session_factory)
    updated = await service.update_comments(request.uuids, request.comment)
    return CommentUpdateResponse(updated=updated)


# ============================================================================
# TRANSACTION ENDPOINTS
# ============================================================================

@router.get("/{record_uuid}", response_model=List[JournalRowResponse])
async def get_transaction(
    record_uuid: uuid.UUID = Path(..., description="Transaction record uuid"),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    current_user: User = Depends(get_current_user),
):
    """Get every row of a transaction, posted or not."""
    service = JournalService(db, session_factory)
    return _to_response(await service.lookup_transaction(record_uuid))


@router.put("/{record_uuid}", response_model=List[JournalRowResponse])
async def edit_transaction(
    request: TransactionEditRequest,
    record_uuid: uuid.UUID = Path(..., description="Transaction record uuid"),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    current_user: User = Depends(get_current_user),
):
    """
    Edit an unposted transaction.

    Rows are added, changed and removed in one atomic step; the refreshed
    transaction is returned.
    """
    service = JournalService(db, session_factory)
    rows = await service.edit_transaction(record_uuid, request, current_user.id)
    return _to_response(rows)


@router.post(
    "/{record_uuid}/reverse",
    response_model=ReverseTransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reverse_transaction(
    request: ReverseTransactionRequest,
    record_uuid: uuid.UUID = Path(..., description="Transaction record uuid"),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    current_user: User = Depends(get_current_user),
):
    """Cancel a transaction with a reversing voucher dated today."""
    service = JournalService(db, session_factory)
    voucher_uuid = await service.reverse_transaction(record_uuid, request.description, current_user.id)
    return ReverseTransactionResponse(uuid=voucher_uuid)


@router.get("/{record_uuid}/edit-history", response_model=List[EditHistoryEntry])
async def get_edit_history(
    record_uuid: uuid.UUID = Path(..., description="Transaction record uuid"),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    current_user: User = Depends(get_current_user),
):
    """Users who edited the transaction, oldest edit first."""
    service = JournalService(db, session_factory)
    history = await service.get_edit_history(record_uuid)
    return [EditHistoryEntry.model_validate(dict(entry)) for entry in history]
