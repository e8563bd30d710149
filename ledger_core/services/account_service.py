"""
Account read-side queries: balance and ledger history.

Both are owner-scoped through the resolver, so a foreign account number gets
the same 404 as a missing one.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.models.transaction import (
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ledger_core.schemas.account import BalanceResponse
from ledger_core.services import ledger, resolver


async def get_balance(
    db: AsyncSession,
    account_number: str,
    principal_id: uuid.UUID,
) -> BalanceResponse:
    """
    Report the cached balance next to the sum of approved ledger rows.

    The two agree as long as every balance change was posted together with
    its row. Accounts seeded with an opening balance and no opening row will
    show a difference; that is expected for seed data only.
    """
    account = await resolver.get_owned_account_by_number(db, account_number, principal_id)

    balance = await ledger.current_balance(db, account.id)
    # SUM and COALESCE keep the Money type, so this comes back as a Decimal
    computed = await db.scalar(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.account_id == account.id,
            Transaction.status == TransactionStatus.APPROVED,
        )
    )

    return BalanceResponse(
        account_number=account.account_number,
        routing_number=account.routing_number,
        is_active=account.is_active,
        balance=balance,
        computed_balance=computed,
        match=balance == computed,
    )


async def list_transactions(
    db: AsyncSession,
    account_number: str,
    principal_id: uuid.UUID,
    status_filter: TransactionStatus | None = None,
    type_filter: TransactionType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Transaction]:
    """List an account's ledger rows, newest first."""
    account = await resolver.get_owned_account_by_number(db, account_number, principal_id)

    query = select(Transaction).where(Transaction.account_id == account.id)
    if status_filter is not None:
        query = query.where(Transaction.status == status_filter)
    if type_filter is not None:
        query = query.where(Transaction.transaction_type == type_filter)

    query = query.order_by(Transaction.created_at.desc()).limit(limit).offset(offset)
    result = await db.execute(query)
    return list(result.scalars().all())
