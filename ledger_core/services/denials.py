"""
Denial recorder.

A well-formed, authorized request that the bank refuses still leaves a trace:
one ``status=denied`` row carrying the attempted signed amount and the
reason. The row is written in the request's unit of work and committed with
it, because a denial is an outcome, not an error.

Malformed bodies, authentication failures and not-found/not-owned lookups
never reach this module and never write rows.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.models.transaction import DenialReason, Transaction, TransactionStatus
from ledger_core.services.ledger import LedgerEntry
from ledger_core.services.outcomes import TransactionOutcome

logger = logging.getLogger(__name__)

DENIAL_MESSAGES: dict[DenialReason, str] = {
    DenialReason.SOURCE_INACTIVE: "Forbidden: Source account is inactive.",
    DenialReason.DESTINATION_INACTIVE: "Forbidden: Destination account is inactive.",
    DenialReason.PAYEE_INACTIVE: "Forbidden: Payee is inactive.",
    DenialReason.INSUFFICIENT_FUNDS: "Conflict: Insufficient funds.",
    DenialReason.BALANCE_LIMIT: "Conflict: Balance limit exceeded.",
    DenialReason.GATEWAY_FAILURE: "Bad Gateway: External payment failed.",
    DenialReason.GATEWAY_TIMEOUT: "Bad Gateway: External payment timed out.",
}


async def record_denial(
    db: AsyncSession, entry: LedgerEntry, reason: DenialReason
) -> Transaction:
    """Write the denied row for ``entry`` and flush it so it has an id."""
    row = entry.to_row(TransactionStatus.DENIED)
    row.denial_reason = reason
    db.add(row)
    await db.flush()
    return row


async def deny(
    db: AsyncSession, entry: LedgerEntry, reason: DenialReason
) -> TransactionOutcome:
    """Record the denial and turn it into the outcome the caller returns."""
    row = await record_denial(db, entry, reason)
    logger.info(
        "Transaction denied",
        extra={
            "transaction_id": str(row.id),
            "transaction_type": entry.transaction_type.value,
            "account_id": str(entry.account_id),
            "amount": str(entry.signed_amount),
            "reason": reason.value,
        },
    )
    return TransactionOutcome.denied(DENIAL_MESSAGES[reason], reason, row)
