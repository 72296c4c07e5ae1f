"""
Journal Ledger - Journal Schemas

Pydantic schemas for journal rows, transaction edits and the collaborator
operations (search, reversal, comments, edit history).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# EDIT REQUEST SCHEMAS
# =============================================================================

class EditableRowFields(BaseModel):
    """
    Columns a caller may edit on a journal row.

    Display-only keys sent back by clients (account_name, account_label...)
    are dropped on validation.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    account_number: Optional[str] = None
    hr_entity: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("hr_entity", "hrEntity"),
    )
    hr_reference: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("hr_reference", "hrReference"),
    )
    debit_equiv: Optional[Decimal] = None
    credit_equiv: Optional[Decimal] = None
    trans_date: Optional[date] = None
    description: Optional[str] = None
    comment: Optional[str] = Field(default=None, max_length=100)

    @field_validator("debit_equiv", "credit_equiv")
    @classmethod
    def validate_amounts(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v < 0:
            raise ValueError("Amount cannot be negative")
        return v

    @field_validator("trans_date", mode="before")
    @classmethod
    def truncate_timestamp(cls, v):
        # Clients send full ISO timestamps; only the day matters
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        if isinstance(v, datetime):
            return v.date()
        return v


class NewJournalRow(EditableRowFields):
    """A row to add to the transaction. account_number is mandatory."""
    kind: Literal["new"] = "new"
    uuid: Optional[UUID] = None


class ChangedJournalRow(EditableRowFields):
    """Changes to an existing row; only the fields sent are applied."""
    kind: Literal["changed"] = "changed"


class RemovedJournalRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uuid: UUID


class TransactionEditRequest(BaseModel):
    """Schema for editing an unposted transaction."""
    added: List[NewJournalRow] = Field(default_factory=list)
    changed: Dict[UUID, ChangedJournalRow] = Field(default_factory=dict)
    removed: List[RemovedJournalRow] = Field(default_factory=list)


# =============================================================================
# JOURNAL ROW RESPONSE
# =============================================================================

class JournalRowResponse(BaseModel):
    """A journal row as read through the combined journal/ledger view."""
    model_config = ConfigDict(from_attributes=True)

    uuid: UUID
    record_uuid: UUID
    trans_id: str
    project_id: UUID
    fiscal_year_id: UUID
    period_id: UUID
    trans_date: date
    description: Optional[str] = None
    account_id: UUID
    account_number: Optional[str] = None
    account_label: Optional[str] = None
    debit: Decimal
    credit: Decimal
    debit_equiv: Decimal
    credit_equiv: Decimal
    currency_id: str
    entity_uuid: Optional[UUID] = None
    hr_entity: Optional[str] = None
    reference_uuid: Optional[UUID] = None
    hr_reference: Optional[str] = None
    comment: Optional[str] = None
    origin_id: Optional[int] = None
    user_id: UUID
    display_name: Optional[str] = None
    posted: bool


# =============================================================================
# SEARCH
# =============================================================================

class JournalFilters(BaseModel):
    """Fixed set of filters accepted by the journal search."""
    record_uuid: Optional[UUID] = None
    trans_id: Optional[str] = None
    account_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    description: Optional[str] = None
    comment: Optional[str] = None
    include_non_posted: bool = False
    show_full_transactions: bool = False
    limit: Optional[int] = Field(default=None, ge=1, le=10000)


class TransactionCountResponse(BaseModel):
    number_transactions: int


# =============================================================================
# REVERSAL, COMMENTS, HISTORY
# =============================================================================

class ReverseTransactionRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)


class ReverseTransactionResponse(BaseModel):
    uuid: UUID


class CommentUpdateRequest(BaseModel):
    """Set the same comment on many rows at once."""
    uuids: List[UUID] = Field(..., min_length=1)
    comment: Optional[str] = Field(default=None, max_length=100)


class CommentUpdateResponse(BaseModel):
    updated: int


class EditHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    display_name: Optional[str] = None
    timestamp: datetime
