"""
Idempotency guard: duplicate detection for retried requests.

A client may send an ``Idempotency-Key`` header. The key alone does not
identify a request: a replay must also match the transaction type, the
account, the signed amount and the rule. Reusing a key with different
parameters is an independent request.

Each approved row that carries a key also stores a fingerprint of that tuple,
and the fingerprint column is UNIQUE. The lookup below reads it inside the
request's unit of work; the constraint is what closes the window between two
identical requests that both pass the lookup (see ledger.post_entries).

Denied rows never carry a fingerprint, so a denied attempt can be retried
with the same key once the cause is fixed.
"""

import hashlib
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.models.transaction import (
    Transaction,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
)

# Appended to the client's key for the credit leg of an internal transfer
INBOUND_LEG_SUFFIX = ":inbound"


def normalize_key(raw: str | None) -> str | None:
    """Trim a header value; blank means no key."""
    if raw is None:
        return None
    key = raw.strip()
    return key or None


def derive_leg_key(key: str | None, leg: TransactionDirection) -> str | None:
    """
    Key for one leg of a two-row transfer.

    The outbound leg keeps the client's key and the inbound leg gets
    ``key + ":inbound"``, so both rows are keyed but never collide.
    """
    if key is None:
        return None
    if leg == TransactionDirection.INBOUND:
        return f"{key}{INBOUND_LEG_SUFFIX}"
    return key


def fingerprint(
    idempotency_key: str,
    transaction_type: TransactionType,
    account_id: uuid.UUID,
    signed_amount: Decimal,
    rule_id: uuid.UUID | None = None,
) -> str:
    parts = (
        idempotency_key,
        transaction_type.value,
        str(account_id),
        f"{signed_amount:.2f}",
        str(rule_id) if rule_id is not None else "",
    )
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


async def lookup(
    db: AsyncSession,
    idempotency_key: str | None,
    transaction_type: TransactionType,
    account_id: uuid.UUID,
    signed_amount: Decimal,
    rule_id: uuid.UUID | None = None,
) -> Transaction | None:
    """
    Return the approved transaction this request would duplicate, if any.

    Without a key there is nothing to deduplicate and the result is always None.
    """
    if idempotency_key is None:
        return None

    digest = fingerprint(
        idempotency_key, transaction_type, account_id, signed_amount, rule_id
    )
    result = await db.execute(
        select(Transaction).where(
            Transaction.idempotency_fingerprint == digest,
            Transaction.status == TransactionStatus.APPROVED,
        )
    )
    return result.scalar_one_or_none()
