"""
Ledger mutator: balance changes paired with their approved rows.

Concurrency model:
  Every balance change is ONE conditional UPDATE:

      UPDATE accounts
         SET balance = balance - :amount
       WHERE id = :id AND is_active AND balance >= :amount

  The database evaluates the WHERE clause and the SET atomically, so two
  concurrent withdrawals can never both see the same starting balance and
  overdraw the account. There is no application-level lock and no
  read-modify-write in Python. Credits carry a matching ceiling
  (balance <= MAX_AMOUNT - :amount) so a balance never outgrows its column.
  A zero-row result means the account went inactive, the funds are short or
  the ceiling was hit; one extra read tells which.

Atomicity:
  post_entries() runs all balance changes and all row inserts of one request
  inside a SAVEPOINT. If any step fails (an internal transfer's credit leg
  hits an inactive account, or a racing duplicate trips the fingerprint
  constraint) the savepoint rolls back every change made so far, and the
  caller can still record a denial in the same unit of work.
"""

import enum
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.models.account import Account
from ledger_core.models.transaction import (
    Transaction,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
)
from ledger_core.money import MAX_AMOUNT
from ledger_core.services.idempotency import fingerprint


@dataclass(frozen=True)
class LedgerEntry:
    """
    One intended ledger row: which account moves, which way, and by how much.

    ``amount`` is the positive magnitude; the sign comes from ``direction``.
    """

    account_id: uuid.UUID
    transaction_type: TransactionType
    direction: TransactionDirection
    amount: Decimal
    idempotency_key: str | None = None
    bill_pay_rule_id: uuid.UUID | None = None
    transfer_rule_id: uuid.UUID | None = None
    external_routing_number: str | None = None
    external_account_number: str | None = None

    @property
    def signed_amount(self) -> Decimal:
        if self.direction == TransactionDirection.OUTBOUND:
            return -self.amount
        return self.amount

    @property
    def rule_id(self) -> uuid.UUID | None:
        return self.bill_pay_rule_id or self.transfer_rule_id

    def to_row(self, status: TransactionStatus) -> Transaction:
        """Build the (unsaved) Transaction row for this entry."""
        return Transaction(
            account_id=self.account_id,
            amount=self.signed_amount,
            transaction_type=self.transaction_type,
            direction=self.direction,
            status=status,
            bill_pay_rule_id=self.bill_pay_rule_id,
            transfer_rule_id=self.transfer_rule_id,
            external_routing_number=self.external_routing_number,
            external_account_number=self.external_account_number,
            idempotency_key=self.idempotency_key,
        )


class PostingStatus(str, enum.Enum):
    POSTED = "posted"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ACCOUNT_INACTIVE = "account_inactive"
    DUPLICATE = "duplicate"
    BALANCE_LIMIT = "balance_limit"


@dataclass
class PostingResult:
    status: PostingStatus
    transactions: list[Transaction] = field(default_factory=list)
    # The entry whose balance change was refused (None when posted or duplicate)
    failed_entry: LedgerEntry | None = None


class _PostingRefused(Exception):
    """Unwinds the savepoint when a balance change affects zero rows."""

    def __init__(self, status: PostingStatus, entry: LedgerEntry):
        self.status = status
        self.entry = entry
        super().__init__(status.value)


async def _apply_balance_change(db: AsyncSession, entry: LedgerEntry) -> PostingStatus:
    if entry.direction == TransactionDirection.OUTBOUND:
        stmt = (
            update(Account)
            .where(
                Account.id == entry.account_id,
                Account.is_active.is_(True),
                Account.balance >= entry.amount,
            )
            .values(balance=Account.balance - entry.amount)
        )
    else:
        stmt = (
            update(Account)
            .where(
                Account.id == entry.account_id,
                Account.is_active.is_(True),
                Account.balance <= MAX_AMOUNT - entry.amount,
            )
            .values(balance=Account.balance + entry.amount)
        )

    # ORM objects loaded earlier in this session keep their old balance;
    # read balances through current_balance(), not through loaded Accounts.
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount == 1:
        return PostingStatus.POSTED

    is_active = await db.scalar(
        select(Account.is_active).where(Account.id == entry.account_id)
    )
    if not is_active:
        return PostingStatus.ACCOUNT_INACTIVE
    if entry.direction == TransactionDirection.INBOUND:
        return PostingStatus.BALANCE_LIMIT
    return PostingStatus.INSUFFICIENT_FUNDS


def _approved_row(entry: LedgerEntry) -> Transaction:
    row = entry.to_row(TransactionStatus.APPROVED)
    if entry.idempotency_key is not None:
        row.idempotency_fingerprint = fingerprint(
            entry.idempotency_key,
            entry.transaction_type,
            entry.account_id,
            entry.signed_amount,
            entry.rule_id,
        )
    return row


async def post_entries(db: AsyncSession, entries: Sequence[LedgerEntry]) -> PostingResult:
    """
    Apply every entry's balance change and write its approved row, all or nothing.

    Entries are applied in order, so callers list the debit first: nothing is
    credited unless the debit succeeded.

    Returns:
        PostingResult with status POSTED and the new rows, or the reason
        nothing was written (INSUFFICIENT_FUNDS, ACCOUNT_INACTIVE or
        BALANCE_LIMIT with the refused entry, or DUPLICATE when an identical
        keyed request won a race).
    """
    try:
        async with db.begin_nested():
            for entry in entries:
                status = await _apply_balance_change(db, entry)
                if status is not PostingStatus.POSTED:
                    raise _PostingRefused(status, entry)

            rows = [_approved_row(entry) for entry in entries]
            db.add_all(rows)
            await db.flush()
    except _PostingRefused as refused:
        return PostingResult(refused.status, failed_entry=refused.entry)
    except IntegrityError:
        if all(entry.idempotency_key is None for entry in entries):
            raise
        return PostingResult(PostingStatus.DUPLICATE)

    return PostingResult(PostingStatus.POSTED, transactions=rows)


async def current_balance(db: AsyncSession, account_id: uuid.UUID) -> Decimal | None:
    """Read the balance column as it stands in this unit of work."""
    return await db.scalar(select(Account.balance).where(Account.id == account_id))
