"""
Journal Ledger - Journal Models

Double-entry rows live in one of two tables of identical shape:
- posting_journal: unposted rows, editable
- general_ledger: posted rows, immutable history

A transaction (record_uuid) has all of its rows in exactly one of them.
Also defines the edit audit trail, reversal vouchers and the
human-readable code maps used to resolve entities and documents.
"""

from uuid import UUID as PyUUID, uuid4
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Index, func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base


# Voucher type of a cancellation (reversal) voucher
CANCELLATION_VOUCHER_TYPE = 10


class JournalRowMixin:
    """Columns shared by the posting journal and the general ledger."""

    uuid: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    record_uuid: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True,
        comment="Transaction this row belongs to",
    )
    trans_id: Mapped[str] = mapped_column(
        String(100), nullable=False,
        comment="Human readable transaction number (e.g., TPA42)",
    )
    project_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="RESTRICT"),
        nullable=False,
    )
    fiscal_year_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("fiscal_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    period_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("periods.id", ondelete="RESTRICT"),
        nullable=False,
    )
    trans_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    account_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Native (transaction) currency
    debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=19, scale=4), default=Decimal("0.0000"), nullable=False,
    )
    credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=19, scale=4), default=Decimal("0.0000"), nullable=False,
    )
    # Enterprise currency
    debit_equiv: Mapped[Decimal] = mapped_column(
        Numeric(precision=19, scale=4), default=Decimal("0.0000"), nullable=False,
    )
    credit_equiv: Mapped[Decimal] = mapped_column(
        Numeric(precision=19, scale=4), default=Decimal("0.0000"), nullable=False,
    )
    currency_id: Mapped[str] = mapped_column(String(3), nullable=False)

    entity_uuid: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
        comment="Counterparty (debtor, creditor, employee)",
    )
    reference_uuid: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
        comment="Supporting document",
    )
    comment: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    origin_id: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True,
        comment="Transaction type",
    )
    user_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )


class PostingJournal(Base, JournalRowMixin):
    """Unposted journal rows."""

    __tablename__ = "posting_journal"

    def __repr__(self) -> str:
        return f"<PostingJournal({self.trans_id}: DR {self.debit_equiv} CR {self.credit_equiv})>"


class GeneralLedger(Base, JournalRowMixin):
    """Posted journal rows. Nothing in this service writes here."""

    __tablename__ = "general_ledger"

    __table_args__ = (
        Index('ix_general_ledger_account_period', 'account_id', 'period_id'),
    )

    def __repr__(self) -> str:
        return f"<GeneralLedger({self.trans_id}: DR {self.debit_equiv} CR {self.credit_equiv})>"


class TransactionHistory(Base):
    """
    Append-only audit row, one per successful edit of a transaction.
    """

    __tablename__ = "transaction_history"

    uuid: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    record_uuid: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True,
    )
    user_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class Voucher(Base):
    """Voucher created when a transaction is reversed."""

    __tablename__ = "vouchers"

    uuid: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    type_id: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_uuid: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True,
        comment="record_uuid of the reversed transaction",
    )
    project_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="RESTRICT"),
        nullable=False,
    )
    voucher_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    currency_id: Mapped[str] = mapped_column(String(3), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=19, scale=4), default=Decimal("0.0000"), nullable=False,
    )
    user_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


# =============================================================================
# HUMAN READABLE CODE MAPS
# =============================================================================

class EntityMap(Base):
    """Maps a printed entity code (e.g., PA.TPA.1) to the entity uuid."""

    __tablename__ = "entity_map"

    uuid: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    text: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class DocumentMap(Base):
    """Maps a printed document reference (e.g., VO.TPA.12) to the document uuid."""

    __tablename__ = "document_map"

    uuid: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    text: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
