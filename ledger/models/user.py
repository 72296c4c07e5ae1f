"""
Journal Ledger - User Model

Users act on transactions: every journal row, edit history row and
reversal voucher records the user behind it.
"""

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger.models.base import BaseModel


class User(BaseModel):
    """Application user. Authentication happens upstream via JWT."""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(username={self.username})>"
