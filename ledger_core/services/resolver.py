"""
Account and rule resolution.

Turns the identifiers in a request into loaded rows and enforces who may use
them:

  - Accounts addressed by number (deposit, withdrawal) must belong to the
    caller.
  - The destination of an inbound external transfer only has to exist; a
    third party is sending money in.
  - Rules must belong to the caller, and the rule's source account must ALSO
    belong to the caller, checked independently of the rule's owner.

"Missing" and "belongs to someone else" produce the same 404 so that the API
never confirms that someone else's account or rule exists. None of these
failures writes a ledger row.

Active-state checks live here too, but an inactive party is a business
denial rather than an error: check_parties_active() records the denied row
and hands back the outcome.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.exceptions import ResourceNotFoundError
from ledger_core.models.account import Account
from ledger_core.models.payee import Payee
from ledger_core.models.rule import BillPayRule, TransferRule
from ledger_core.models.transaction import DenialReason
from ledger_core.services.denials import deny
from ledger_core.services.ledger import LedgerEntry
from ledger_core.services.outcomes import TransactionOutcome

ACCOUNT_NOT_FOUND = "Account not found."
DESTINATION_NOT_FOUND = "Destination account not found."
BILL_PAY_RULE_NOT_FOUND = "Bill pay rule not found."
TRANSFER_RULE_NOT_FOUND = "Transfer rule not found."
PAYEE_NOT_FOUND = "Payee not found."


async def get_account_by_number(
    db: AsyncSession,
    account_number: str,
    detail: str = ACCOUNT_NOT_FOUND,
) -> Account:
    """Load an account by its number, with no ownership check."""
    result = await db.execute(
        select(Account).where(Account.account_number == account_number)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise ResourceNotFoundError(detail)
    return account


async def get_owned_account_by_number(
    db: AsyncSession,
    account_number: str,
    principal_id: uuid.UUID,
) -> Account:
    """Load an account by number, as long as ``principal_id`` owns it."""
    result = await db.execute(
        select(Account).where(
            Account.account_number == account_number,
            Account.user_id == principal_id,
        )
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise ResourceNotFoundError(ACCOUNT_NOT_FOUND)
    return account


async def _get_owned_account(
    db: AsyncSession,
    account_id: uuid.UUID,
    principal_id: uuid.UUID,
) -> Account:
    account = await db.get(Account, account_id)
    if account is None or account.user_id != principal_id:
        raise ResourceNotFoundError(ACCOUNT_NOT_FOUND)
    return account


async def get_bill_pay_rule(
    db: AsyncSession,
    rule_id: uuid.UUID,
    principal_id: uuid.UUID,
) -> tuple[BillPayRule, Account, Payee]:
    """
    Load a bill-pay rule with its source account and payee.

    Raises:
        ResourceNotFoundError: rule missing or not the caller's, source
            account missing or not the caller's, or payee missing.
    """
    rule = await db.get(BillPayRule, rule_id)
    if rule is None or rule.user_id != principal_id:
        raise ResourceNotFoundError(BILL_PAY_RULE_NOT_FOUND)

    source = await _get_owned_account(db, rule.source_account_id, principal_id)

    payee = await db.get(Payee, rule.payee_id)
    if payee is None:
        raise ResourceNotFoundError(PAYEE_NOT_FOUND)

    return rule, source, payee


async def get_transfer_rule(
    db: AsyncSession,
    rule_id: uuid.UUID,
    principal_id: uuid.UUID,
    *,
    internal: bool,
) -> tuple[TransferRule, Account, Account | None]:
    """
    Load a transfer rule with its source account and, for internal rules,
    its destination account.

    ``internal`` states which kind of rule the request asked to execute. A
    rule of the other kind is reported as not found: an internal transfer
    request cannot push money to an external destination, or vice versa.

    The destination of an internal transfer may belong to anyone.
    """
    rule = await db.get(TransferRule, rule_id)
    if rule is None or rule.user_id != principal_id:
        raise ResourceNotFoundError(TRANSFER_RULE_NOT_FOUND)
    if internal and not rule.is_internal:
        raise ResourceNotFoundError(TRANSFER_RULE_NOT_FOUND)
    if not internal and not rule.is_external:
        raise ResourceNotFoundError(TRANSFER_RULE_NOT_FOUND)

    source = await _get_owned_account(db, rule.source_account_id, principal_id)

    destination = None
    if internal:
        destination = await db.get(Account, rule.destination_account_id)
        if destination is None:
            raise ResourceNotFoundError(DESTINATION_NOT_FOUND)

    return rule, source, destination


async def check_parties_active(
    db: AsyncSession,
    entry: LedgerEntry,
    *,
    source: Account | None = None,
    destination: Account | None = None,
    payee: Payee | None = None,
) -> TransactionOutcome | None:
    """
    Deny ``entry`` if any named party is inactive; None when all are active.

    Checked in order source, destination, payee, and only the first
    inactive party is reported. The denied row is written against
    ``entry``'s account.
    """
    if source is not None and not source.is_active:
        return await deny(db, entry, DenialReason.SOURCE_INACTIVE)
    if destination is not None and not destination.is_active:
        return await deny(db, entry, DenialReason.DESTINATION_INACTIVE)
    if payee is not None and not payee.is_active:
        return await deny(db, entry, DenialReason.PAYEE_INACTIVE)
    return None
