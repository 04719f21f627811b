"""
Inkwell Backend — Credits Route Handlers
==========================================

What:  Read-only views of the caller's balance and ledger.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from inkwell.middleware.rate_limit import limit_account
from inkwell.schemas.auth import (
    CreditBalanceResponse,
    LedgerEntryListResponse,
    LedgerEntryResponse,
)
from inkwell.services.ledger_service import credit_ledger

router = APIRouter(prefix="/api/credits", tags=["Credits"])


@router.get("", response_model=CreditBalanceResponse, summary="Current balance")
async def get_balance(account_id: UUID = Depends(limit_account)) -> CreditBalanceResponse:
    balance = await credit_ledger.get_balance(account_id)
    reconciled = await credit_ledger.is_reconciled(account_id)
    return CreditBalanceResponse(balance=balance, reconciled=reconciled)


@router.get(
    "/transactions",
    response_model=LedgerEntryListResponse,
    summary="Ledger entries, newest first",
)
async def list_transactions(
    limit: int = Query(default=50, ge=1, le=200),
    account_id: UUID = Depends(limit_account),
) -> LedgerEntryListResponse:
    entries = await credit_ledger.list_entries(account_id, limit=limit)
    return LedgerEntryListResponse(
        entries=[LedgerEntryResponse.model_validate(entry) for entry in entries]
    )
