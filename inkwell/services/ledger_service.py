"""
Inkwell Backend — Credit Ledger Service
=========================================

What:  Every balance change in the system: deduct, refund, grant.
How:   Each operation runs inside one scoped transaction (`transaction()`)
       that holds both the balance update and the audit entry, so they
       commit together or roll back together.
Who:   NoteAIService reserves credits through `deduct`; AccountService
       grants the signup bonus; the credits routes read balances and entries.
When:  Before every paid AI action, at registration, and on refunds.

Deduction algorithm:
    UPDATE accounts
       SET balance = balance - :amount
     WHERE id = :account_id AND is_active AND balance >= :amount

    The check and the decrement are one statement. Concurrent deductions for
    the same account serialize on the row (PostgreSQL) or the database write
    lock (SQLite); each re-evaluates the guard against the committed balance.
    Zero affected rows means the balance was too low or the account is
    absent/inactive: nothing is written and an INSUFFICIENT_CREDITS failure
    is returned. There are no in-process locks.
"""

import logging
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inkwell.database import transaction
from inkwell.exceptions import DatabaseError, NotFoundError, ValidationError
from inkwell.models.account import Account
from inkwell.models.ledger import EntryKind, LedgerEntry
from inkwell.outcomes import Failure

logger = logging.getLogger(__name__)


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(
            message="Credit amount must be a positive integer",
            field="amount",
            context={"amount": amount},
        )


class CreditLedger:
    """
    Account balances plus their append-only ledger.

    Invariants maintained by every method:
        - balance never drops below zero
        - a ledger entry exists iff its balance change was committed
        - balance == SUM(delta) over the account's entries
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        """
        Args:
            session_factory: Override the default session factory (used in tests).
        """
        self._session_factory = session_factory

    async def deduct(
        self,
        account_id: UUID,
        amount: int,
        service: str,
    ) -> Union[LedgerEntry, Failure]:
        """
        Reserve `amount` credits for `service`.

        Returns:
            The DEDUCTION entry on success, or Failure(INSUFFICIENT_CREDITS)
            when the conditional update matched no row. A failed deduction
            writes nothing.

        Raises:
            ValidationError: amount is not a positive integer
            DatabaseError:   the store failed; the transaction was rolled back
        """
        _require_positive(amount)

        try:
            async with transaction(self._session_factory) as session:
                result = await session.execute(
                    update(Account)
                    .where(
                        Account.id == account_id,
                        Account.is_active.is_(True),
                        Account.balance >= amount,
                    )
                    .values(balance=Account.balance - amount)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    logger.info(
                        "Deduction refused: account=%s amount=%d service=%s",
                        account_id, amount, service,
                    )
                    return Failure.insufficient_credits(required=amount)

                entry = LedgerEntry(
                    account_id=account_id,
                    delta=-amount,
                    kind=EntryKind.DEDUCTION.value,
                    service=service,
                )
                session.add(entry)
                await session.flush()
        except SQLAlchemyError as e:
            logger.error("Ledger deduction failed for account %s: %s", account_id, str(e))
            raise DatabaseError(
                message="Could not reserve credits. Please try again.",
                context={"account_id": str(account_id), "error_type": type(e).__name__},
            )

        logger.info("Deducted %d credits: account=%s service=%s", amount, account_id, service)
        return entry

    async def refund(self, account_id: UUID, amount: int, service: str) -> LedgerEntry:
        """
        Return `amount` credits after a paid operation failed irrecoverably.

        Unconditional increment plus a REFUND entry, in one transaction.

        Raises:
            NotFoundError:   no such account
            ValidationError: amount is not a positive integer
            DatabaseError:   the store failed
        """
        _require_positive(amount)
        try:
            async with transaction(self._session_factory) as session:
                entry = await self._credit(session, account_id, amount, EntryKind.REFUND, service)
        except SQLAlchemyError as e:
            logger.error("Ledger refund failed for account %s: %s", account_id, str(e))
            raise DatabaseError(
                message="Could not refund credits. Please try again.",
                context={"account_id": str(account_id), "error_type": type(e).__name__},
            )

        logger.info("Refunded %d credits: account=%s service=%s", amount, account_id, service)
        return entry

    async def grant(
        self,
        account_id: UUID,
        amount: int,
        service: str,
        session: Optional[AsyncSession] = None,
    ) -> LedgerEntry:
        """
        Credit `amount` as a GRANT.

        With `session`, the grant joins the caller's open transaction (the
        caller commits). Without it, the grant commits on its own.
        """
        _require_positive(amount)
        try:
            if session is not None:
                entry = await self._credit(session, account_id, amount, EntryKind.GRANT, service)
            else:
                async with transaction(self._session_factory) as own_session:
                    entry = await self._credit(
                        own_session, account_id, amount, EntryKind.GRANT, service
                    )
        except SQLAlchemyError as e:
            logger.error("Ledger grant failed for account %s: %s", account_id, str(e))
            raise DatabaseError(
                message="Could not grant credits. Please try again.",
                context={"account_id": str(account_id), "error_type": type(e).__name__},
            )

        logger.info("Granted %d credits: account=%s service=%s", amount, account_id, service)
        return entry

    async def _credit(
        self,
        session: AsyncSession,
        account_id: UUID,
        amount: int,
        kind: EntryKind,
        service: str,
    ) -> LedgerEntry:
        """Increment the balance and append the matching entry on `session`."""
        result = await session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance=Account.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(resource="account", resource_id=str(account_id))

        entry = LedgerEntry(
            account_id=account_id,
            delta=amount,
            kind=kind.value,
            service=service,
        )
        session.add(entry)
        await session.flush()
        return entry

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_balance(self, account_id: UUID) -> int:
        """Current balance. Raises NotFoundError for unknown accounts."""
        async with transaction(self._session_factory) as session:
            balance = await session.scalar(
                select(Account.balance).where(Account.id == account_id)
            )
        if balance is None:
            raise NotFoundError(resource="account", resource_id=str(account_id))
        return balance

    async def list_entries(self, account_id: UUID, limit: int = 50) -> List[LedgerEntry]:
        """Most recent entries first."""
        async with transaction(self._session_factory) as session:
            result = await session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.account_id == account_id)
                .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def is_reconciled(self, account_id: UUID) -> bool:
        """True when the balance equals the signed sum of the account's entries."""
        async with transaction(self._session_factory) as session:
            # Balance and entry sum read from one statement snapshot
            entry_sum = (
                select(func.coalesce(func.sum(LedgerEntry.delta), 0))
                .where(LedgerEntry.account_id == account_id)
                .scalar_subquery()
            )
            row = (
                await session.execute(
                    select(Account.balance, entry_sum).where(Account.id == account_id)
                )
            ).one_or_none()
        if row is None:
            raise NotFoundError(resource="account", resource_id=str(account_id))
        balance, total = row
        return balance == total


# ── Singleton Instance ────────────────────────────────────────────────────
credit_ledger = CreditLedger()
