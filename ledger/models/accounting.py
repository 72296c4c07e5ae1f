"""
Journal Ledger - Accounting Reference Models

Read-only inputs of the journal engine:
- Enterprises and projects (owner of the enterprise currency)
- Exchange rates per enterprise
- Chart of accounts
- Fiscal years, periods and closed period totals
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, ForeignKey, Integer, Numeric, String,
    UniqueConstraint, Index, CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger.models.base import BaseModel


# =============================================================================
# ENTERPRISE & PROJECTS
# =============================================================================

class Enterprise(BaseModel):
    """An accounting enterprise. Its currency is the enterprise currency."""

    __tablename__ = "enterprises"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    currency_id: Mapped[str] = mapped_column(
        String(3), nullable=False,
        comment="ISO 4217 code of the enterprise currency",
    )

    projects: Mapped[List["Project"]] = relationship(
        "Project", back_populates="enterprise",
    )


class Project(BaseModel):
    """A project belongs to exactly one enterprise."""

    __tablename__ = "projects"

    enterprise_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enterprises.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    abbr: Mapped[str] = mapped_column(String(10), nullable=False)

    enterprise: Mapped["Enterprise"] = relationship("Enterprise", back_populates="projects")


class ExchangeRate(BaseModel):
    """
    Historical exchange rates of an enterprise.

    1 unit of enterprise currency = rate units of currency_id.
    The rate in effect on a date is the latest one dated on or before it.
    """

    __tablename__ = "exchange_rates"

    enterprise_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enterprises.id", ondelete="CASCADE"),
        nullable=False,
    )
    currency_id: Mapped[str] = mapped_column(String(3), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=6), nullable=False)
    rate_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        Index('ix_exchange_rate_lookup', 'enterprise_id', 'currency_id', 'rate_date'),
    )


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """An account of the chart of accounts, addressed by humans via its number."""

    __tablename__ = "accounts"

    number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    label: Mapped[str] = mapped_column(String(200), nullable=False)

    def __repr__(self) -> str:
        return f"<Account({self.number}: {self.label})>"


# =============================================================================
# FISCAL CALENDAR
# =============================================================================

class FiscalYear(BaseModel):
    """
    Fiscal year definition.
    A locked fiscal year rejects every mutation dated inside it.
    """

    __tablename__ = "fiscal_years"

    label: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    periods: Mapped[List["Period"]] = relationship(
        "Period",
        back_populates="fiscal_year",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint('start_date <= end_date', name='ck_fiscal_year_dates'),
    )


class Period(BaseModel):
    """
    Fiscal period within a fiscal year.

    Period 0 carries the opening balances of the year and has no dates.
    """

    __tablename__ = "periods"

    fiscal_year_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("fiscal_years.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    fiscal_year: Mapped["FiscalYear"] = relationship("FiscalYear", back_populates="periods")

    __table_args__ = (
        UniqueConstraint('fiscal_year_id', 'number', name='uq_period_number'),
        CheckConstraint('number >= 0 AND number <= 13', name='ck_period_number'),
    )


class PeriodTotal(BaseModel):
    """
    Closed totals per account and period, maintained by the closing process.
    """

    __tablename__ = "period_totals"

    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("periods.id", ondelete="CASCADE"),
        nullable=False,
    )
    fiscal_year_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("fiscal_years.id", ondelete="CASCADE"),
        nullable=False,
    )
    debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=19, scale=4),
        default=Decimal("0.0000"),
        nullable=False,
    )
    credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=19, scale=4),
        default=Decimal("0.0000"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint('account_id', 'period_id', name='uq_period_total_account_period'),
    )
