"""
Inkwell Backend — Credit Ledger Tests
=======================================

What:  CreditLedger against a real SQLite database.

What we test:
    ✅ Deduct lowers the balance and writes one DEDUCTION entry
    ✅ A refused deduct writes nothing
    ✅ N concurrent deducts succeed exactly floor(B / amount) times
    ✅ Refund adds exactly the amount plus one REFUND entry
    ✅ Balance equals the ledger sum after every sequence
    ✅ Invalid amounts and unknown accounts are rejected
    ✅ Store failures surface as DatabaseError
"""

import asyncio
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from inkwell.database import transaction
from inkwell.exceptions import DatabaseError, NotFoundError, ValidationError
from inkwell.models.account import Account
from inkwell.models.ledger import EntryKind, LedgerEntry
from inkwell.outcomes import Failure, FailureKind
from inkwell.services.ledger_service import CreditLedger


async def count_entries(account_id, kind=None) -> int:
    query = select(func.count(LedgerEntry.id)).where(LedgerEntry.account_id == account_id)
    if kind is not None:
        query = query.where(LedgerEntry.kind == kind.value)
    async with transaction() as session:
        return await session.scalar(query)


class TestDeduct:

    def setup_method(self):
        self.ledger = CreditLedger()

    @pytest.mark.asyncio
    async def test_deduct_success(self, make_account):
        account_id = await make_account(balance=5)

        entry = await self.ledger.deduct(account_id, 1, "AI_TAG")

        assert isinstance(entry, LedgerEntry)
        assert entry.delta == -1
        assert entry.kind == EntryKind.DEDUCTION.value
        assert entry.service == "AI_TAG"
        assert await self.ledger.get_balance(account_id) == 4
        assert await count_entries(account_id, EntryKind.DEDUCTION) == 1

    @pytest.mark.asyncio
    async def test_deduct_exact_balance_reaches_zero(self, make_account):
        account_id = await make_account(balance=2)

        result = await self.ledger.deduct(account_id, 2, "AI_CHAT")

        assert not isinstance(result, Failure)
        assert await self.ledger.get_balance(account_id) == 0

    @pytest.mark.asyncio
    async def test_insufficient_balance_writes_nothing(self, make_account):
        account_id = await make_account(balance=1)

        result = await self.ledger.deduct(account_id, 2, "AI_CHAT")

        assert isinstance(result, Failure)
        assert result.kind is FailureKind.INSUFFICIENT_CREDITS
        assert result.status == 2
        assert await self.ledger.get_balance(account_id) == 1
        assert await count_entries(account_id, EntryKind.DEDUCTION) == 0

    @pytest.mark.asyncio
    async def test_inactive_account_cannot_spend(self, make_account):
        account_id = await make_account(balance=10, is_active=False)

        result = await self.ledger.deduct(account_id, 1, "AI_TAG")

        assert isinstance(result, Failure)
        assert await self.ledger.get_balance(account_id) == 10

    @pytest.mark.asyncio
    async def test_unknown_account_is_insufficient(self, database):
        result = await self.ledger.deduct(uuid4(), 1, "AI_TAG")
        assert isinstance(result, Failure)
        assert result.kind is FailureKind.INSUFFICIENT_CREDITS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -3, True])
    async def test_non_positive_amount_rejected(self, make_account, amount):
        account_id = await make_account(balance=5)
        with pytest.raises(ValidationError):
            await self.ledger.deduct(account_id, amount, "AI_TAG")
        assert await self.ledger.get_balance(account_id) == 5

    @pytest.mark.asyncio
    async def test_concurrent_deducts_never_overdraw(self, make_account):
        """10 concurrent deducts of 3 from 20: exactly 6 succeed, balance 2."""
        account_id = await make_account(balance=20)

        results = await asyncio.gather(
            *(self.ledger.deduct(account_id, 3, "AI_CHAT") for _ in range(10))
        )

        successes = [r for r in results if not isinstance(r, Failure)]
        failures = [r for r in results if isinstance(r, Failure)]
        assert len(successes) == 6
        assert all(f.kind is FailureKind.INSUFFICIENT_CREDITS for f in failures)
        assert await self.ledger.get_balance(account_id) == 2
        assert await count_entries(account_id, EntryKind.DEDUCTION) == 6
        assert await self.ledger.is_reconciled(account_id)


class TestRefundAndGrant:

    def setup_method(self):
        self.ledger = CreditLedger()

    @pytest.mark.asyncio
    async def test_refund_adds_amount_and_one_entry(self, make_account):
        account_id = await make_account(balance=5)
        await self.ledger.deduct(account_id, 2, "AI_CHAT")

        entry = await self.ledger.refund(account_id, 2, "AI_CHAT")

        assert entry.delta == 2
        assert entry.kind == EntryKind.REFUND.value
        assert await self.ledger.get_balance(account_id) == 5
        assert await count_entries(account_id, EntryKind.REFUND) == 1

    @pytest.mark.asyncio
    async def test_refund_unknown_account(self, database):
        with pytest.raises(NotFoundError):
            await self.ledger.refund(uuid4(), 1, "AI_TAG")

    @pytest.mark.asyncio
    async def test_grant_joins_callers_transaction(self, make_account):
        account_id = await make_account(balance=0)

        with pytest.raises(RuntimeError):
            async with transaction() as session:
                await self.ledger.grant(account_id, 50, "SIGNUP_BONUS", session=session)
                raise RuntimeError("abort")

        assert await self.ledger.get_balance(account_id) == 0
        assert await count_entries(account_id) == 0

    @pytest.mark.asyncio
    async def test_grant_store_failure_is_database_error(self, make_account):
        account_id = await make_account(balance=0)
        failure = OperationalError("UPDATE accounts", {}, Exception("database is locked"))

        with patch.object(CreditLedger, "_credit", side_effect=failure):
            with pytest.raises(DatabaseError):
                await self.ledger.grant(account_id, 5, "PROMO")

        assert await self.ledger.get_balance(account_id) == 0


class TestReads:

    def setup_method(self):
        self.ledger = CreditLedger()

    @pytest.mark.asyncio
    async def test_reconciled_after_mixed_sequence(self, make_account):
        account_id = await make_account(balance=10)

        await self.ledger.deduct(account_id, 3, "AI_CHAT")
        await self.ledger.deduct(account_id, 20, "AI_CHAT")  # refused
        await self.ledger.refund(account_id, 3, "AI_CHAT")
        await self.ledger.deduct(account_id, 1, "AI_TAG")
        await self.ledger.grant(account_id, 4, "PROMO")

        assert await self.ledger.get_balance(account_id) == 13
        assert await self.ledger.is_reconciled(account_id)

    @pytest.mark.asyncio
    async def test_balance_drift_is_not_reconciled(self, make_account):
        account_id = await make_account(balance=5)
        async with transaction() as session:
            await session.execute(
                update(Account).where(Account.id == account_id).values(balance=6)
            )

        assert await self.ledger.is_reconciled(account_id) is False

    @pytest.mark.asyncio
    async def test_reconcile_unknown_account(self, database):
        with pytest.raises(NotFoundError):
            await self.ledger.is_reconciled(uuid4())

    @pytest.mark.asyncio
    async def test_list_entries_newest_first(self, make_account):
        account_id = await make_account(balance=5)
        await self.ledger.deduct(account_id, 1, "AI_TAG")
        await self.ledger.deduct(account_id, 2, "AI_CHAT")

        entries = await self.ledger.list_entries(account_id)

        assert [e.service for e in entries] == ["AI_CHAT", "AI_TAG", "TEST_GRANT"]

    @pytest.mark.asyncio
    async def test_balance_of_unknown_account(self, database):
        with pytest.raises(NotFoundError):
            await self.ledger.get_balance(uuid4())
