"""
Accounts router: read-only views of the caller's accounts.

  GET /accounts/{account_number}/balance         cached vs ledger balance
  GET /accounts/{account_number}/transactions    ledger rows, newest first

Accounts are addressed by account number, the same identifier the
transaction requests use. A number the caller does not own answers 404.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.database import get_db
from ledger_core.dependencies import get_current_user
from ledger_core.models.transaction import TransactionStatus, TransactionType
from ledger_core.models.user import User
from ledger_core.schemas.account import BalanceResponse
from ledger_core.schemas.transaction import TransactionResponse
from ledger_core.services import account_service

router = APIRouter()


@router.get(
    "/{account_number}/balance",
    response_model=BalanceResponse,
    summary="Get an account's balance",
)
async def get_balance(
    account_number: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Return the account's balance as stored, the balance recomputed from its
    approved transactions, and whether the two match.
    """
    return await account_service.get_balance(db, account_number, user.id)


@router.get(
    "/{account_number}/transactions",
    response_model=list[TransactionResponse],
    summary="List transactions for an account",
)
async def list_transactions(
    account_number: str,
    status: TransactionStatus | None = Query(None, description="Filter by status: approved, denied"),
    type: TransactionType | None = Query(None, description="Filter by transaction type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List approved and denied transactions for an account, newest first."""
    return await account_service.list_transactions(
        db=db,
        account_number=account_number,
        principal_id=user.id,
        status_filter=status,
        type_filter=type,
        limit=limit,
        offset=offset,
    )
