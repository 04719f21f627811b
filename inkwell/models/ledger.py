"""
Inkwell Backend — Ledger Entry SQLAlchemy Model
=================================================

What:  ORM model for `ledger_entries`, the append-only credit audit trail.
Who:   Written only by CreditLedger; read by the credits routes.

Rows are inserted in the same transaction as the balance change they
describe and are never updated or deleted afterwards. For every account,
SUM(delta) equals accounts.balance.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from inkwell.database import Base


class EntryKind(str, enum.Enum):
    GRANT = "GRANT"
    DEDUCTION = "DEDUCTION"
    REFUND = "REFUND"


class LedgerEntry(Base):
    """
    One balance-affecting event.

    delta is signed: GRANT and REFUND are positive, DEDUCTION is negative.
    service tags what the credits were for (AI_TAG, AI_CHAT, SIGNUP_BONUS).
    """

    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )

    delta: Mapped[int] = mapped_column(Integer, nullable=False)

    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="GRANT, DEDUCTION or REFUND",
    )

    service: Mapped[str] = mapped_column(String(50), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_ledger_entries_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(account_id={self.account_id}, delta={self.delta}, "
            f"kind='{self.kind}', service='{self.service}')>"
        )
