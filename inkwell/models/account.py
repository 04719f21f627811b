"""
Inkwell Backend — Account SQLAlchemy Model
============================================

What:  ORM model for the `accounts` table: identity plus the credit balance.
How:   Inherits from the shared DeclarativeBase; Alembic reads it for migrations.
Who:   Account service (register/login/profile) and the credit ledger.

Table Design:
    - balance: integer credits, CHECK (balance >= 0) backs the ledger's
      conditional update with a database-level guarantee
    - is_active: soft lifecycle flag; accounts are never hard-deleted
      because their ledger entries must keep resolving
    - email: stored lower-cased and trimmed, unique
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from inkwell.database import Base


class Account(Base):
    """
    A registered user and their credit balance.

    Lifecycle:
        1. Created at registration with balance 0, then credited with the
           signup grant in the same transaction (GRANT ledger entry)
        2. Balance changes only through CreditLedger operations
        3. Deactivated by clearing is_active; never deleted
    """

    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="Lower-cased login email",
    )

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Current credits; equals the sum of this account's ledger deltas",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email='{self.email}', balance={self.balance})>"
