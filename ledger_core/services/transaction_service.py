"""
Transaction processing: one classified request in, one outcome out.

Flow for every request type:

  1. Resolve: load the accounts / rule named by the request and check
     ownership (404 on failure, nothing written).
  2. Active checks: an inactive source, destination or payee is denied
     (403, denied row written).
  3. Idempotency: a keyed request matching an earlier approved transaction
     is a replay; it answers 200 with the original rows and changes nothing.
  4. Payment (bill pay and outbound external transfers only): the payment
     network must accept the payment before any money moves. A failed or
     timed-out payment is denied (502) and the balance stays as it was.
  5. Post: the conditional balance update(s) plus the approved row(s), all
     or nothing. Short funds, or a credit past the balance ceiling, are
     denied (409).

Everything runs in the caller's session (one per request) and the route
commits it before answering. Payment-backed requests commit once more, with
nothing written, right before the gateway call, so the wait for the payment
network holds no database lock.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.exceptions import AuthenticationError
from ledger_core.models.transaction import (
    DenialReason,
    TransactionDirection,
    TransactionType,
)
from ledger_core.schemas.transaction import (
    REQUEST_VARIANTS,
    BillPayRequest,
    DepositRequest,
    ExternalTransferInboundRequest,
    ExternalTransferOutboundRequest,
    InternalTransferRequest,
    WithdrawalRequest,
)
from ledger_core.services import idempotency, ledger, resolver
from ledger_core.services.denials import deny
from ledger_core.services.gateway import (
    GatewayOutcome,
    PaymentGateway,
    PaymentInstruction,
    execute_payment,
)
from ledger_core.services.ledger import LedgerEntry, PostingStatus
from ledger_core.services.outcomes import OutcomeKind, TransactionOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Messages:
    approved: str
    replayed: str


DEPOSIT_MESSAGES = _Messages(
    "Deposit successful.",
    "Deposit already processed (idempotency key found).",
)
WITHDRAWAL_MESSAGES = _Messages(
    "Withdrawal successful.",
    "Withdrawal already processed (idempotency key found).",
)
BILLPAY_MESSAGES = _Messages(
    "Bill pay successful.",
    "Bill pay transaction already processed (idempotency key found).",
)
INTERNAL_TRANSFER_MESSAGES = _Messages(
    "Internal transfer successful.",
    "Internal transfer already processed (idempotency key found).",
)
EXTERNAL_OUTBOUND_MESSAGES = _Messages(
    "External transfer from internal account successful.",
    "External transfer already processed (idempotency key found).",
)
EXTERNAL_INBOUND_MESSAGES = _Messages(
    "External transfer to internal account successful.",
    "External transfer already processed (idempotency key found).",
)


@dataclass(frozen=True)
class _RequestContext:
    db: AsyncSession
    principal_id: uuid.UUID | None
    idempotency_key: str | None
    gateway: PaymentGateway
    gateway_timeout: float

    def require_principal(self) -> uuid.UUID:
        if self.principal_id is None:
            raise AuthenticationError()
        return self.principal_id


async def _replayed_rows(db: AsyncSession, entries: list[LedgerEntry]) -> list:
    rows = []
    for entry in entries:
        existing = await idempotency.lookup(
            db,
            entry.idempotency_key,
            entry.transaction_type,
            entry.account_id,
            entry.signed_amount,
            entry.rule_id,
        )
        if existing is not None:
            rows.append(existing)
    return rows


async def _settle(
    ctx: _RequestContext,
    entries: list[LedgerEntry],
    messages: _Messages,
    payment: PaymentInstruction | None = None,
) -> TransactionOutcome:
    """
    Replay check, optional payment step, then the all-or-nothing posting.

    ``entries[0]`` is the primary entry: its tuple drives the idempotency
    lookup and any denial is recorded against it.
    """
    db = ctx.db
    primary = entries[0]

    existing = await idempotency.lookup(
        db,
        primary.idempotency_key,
        primary.transaction_type,
        primary.account_id,
        primary.signed_amount,
        primary.rule_id,
    )
    if existing is not None:
        return TransactionOutcome.replayed(
            messages.replayed, await _replayed_rows(db, entries)
        )

    if payment is not None:
        # Advisory read: refuse to send money out for an account that clearly
        # cannot cover it. The conditional update below is still the real check.
        balance = await ledger.current_balance(db, primary.account_id)
        if balance is None or balance < primary.amount:
            return await deny(db, primary, DenialReason.INSUFFICIENT_FUNDS)

        # Nothing is written yet. End the unit of work so no database lock is
        # held while the payment network answers; posting starts a fresh one
        # and its conditional update re-checks activity and funds.
        await db.commit()

        result = await execute_payment(ctx.gateway, payment, ctx.gateway_timeout)
        if result.outcome is GatewayOutcome.TIMEOUT:
            return await deny(db, primary, DenialReason.GATEWAY_TIMEOUT)
        if not result.ok:
            return await deny(db, primary, DenialReason.GATEWAY_FAILURE)

    posting = await ledger.post_entries(db, entries)

    if posting.status is PostingStatus.POSTED:
        return TransactionOutcome.approved(messages.approved, posting.transactions)

    if posting.status is PostingStatus.DUPLICATE:
        rows = await _replayed_rows(db, entries)
        if not rows:
            raise RuntimeError("Idempotency fingerprint conflict without a matching transaction")
        return TransactionOutcome.replayed(messages.replayed, rows)

    if posting.status is PostingStatus.INSUFFICIENT_FUNDS:
        return await deny(db, primary, DenialReason.INSUFFICIENT_FUNDS)

    if posting.status is PostingStatus.BALANCE_LIMIT:
        return await deny(db, primary, DenialReason.BALANCE_LIMIT)

    # ACCOUNT_INACTIVE: an account was deactivated after it was resolved
    if posting.failed_entry.direction == TransactionDirection.OUTBOUND:
        reason = DenialReason.SOURCE_INACTIVE
    else:
        reason = DenialReason.DESTINATION_INACTIVE
    return await deny(db, primary, reason)


# ---------------------------------------------------------------------------
# Handlers, one per request variant
# ---------------------------------------------------------------------------

async def _handle_deposit(ctx: _RequestContext, request: DepositRequest) -> TransactionOutcome:
    account = await resolver.get_owned_account_by_number(
        ctx.db, request.destination_account_number, ctx.require_principal()
    )
    entry = LedgerEntry(
        account_id=account.id,
        transaction_type=TransactionType.DEPOSIT,
        direction=TransactionDirection.INBOUND,
        amount=request.requested_amount,
        idempotency_key=ctx.idempotency_key,
    )
    denial = await resolver.check_parties_active(ctx.db, entry, destination=account)
    if denial is not None:
        return denial
    return await _settle(ctx, [entry], DEPOSIT_MESSAGES)


async def _handle_withdrawal(ctx: _RequestContext, request: WithdrawalRequest) -> TransactionOutcome:
    account = await resolver.get_owned_account_by_number(
        ctx.db, request.source_account_number, ctx.require_principal()
    )
    entry = LedgerEntry(
        account_id=account.id,
        transaction_type=TransactionType.WITHDRAWAL,
        direction=TransactionDirection.OUTBOUND,
        amount=request.requested_amount,
        idempotency_key=ctx.idempotency_key,
    )
    denial = await resolver.check_parties_active(ctx.db, entry, source=account)
    if denial is not None:
        return denial
    return await _settle(ctx, [entry], WITHDRAWAL_MESSAGES)


async def _handle_billpay(ctx: _RequestContext, request: BillPayRequest) -> TransactionOutcome:
    rule, source, payee = await resolver.get_bill_pay_rule(
        ctx.db, request.bill_pay_rule_id, ctx.require_principal()
    )
    entry = LedgerEntry(
        account_id=source.id,
        transaction_type=TransactionType.BILLPAY,
        direction=TransactionDirection.OUTBOUND,
        amount=rule.amount,
        idempotency_key=ctx.idempotency_key,
        bill_pay_rule_id=rule.id,
        external_routing_number=payee.routing_number,
        external_account_number=payee.account_number,
    )
    denial = await resolver.check_parties_active(ctx.db, entry, source=source, payee=payee)
    if denial is not None:
        return denial

    payment = PaymentInstruction(
        amount=rule.amount,
        source_account_number=source.account_number,
        source_routing_number=source.routing_number,
        destination_routing_number=payee.routing_number,
        destination_account_number=payee.account_number,
        reference=ctx.idempotency_key,
    )
    return await _settle(ctx, [entry], BILLPAY_MESSAGES, payment=payment)


async def _handle_internal_transfer(
    ctx: _RequestContext, request: InternalTransferRequest
) -> TransactionOutcome:
    rule, source, destination = await resolver.get_transfer_rule(
        ctx.db, request.transfer_rule_id, ctx.require_principal(), internal=True
    )
    outbound = LedgerEntry(
        account_id=source.id,
        transaction_type=TransactionType.INTERNAL_TRANSFER,
        direction=TransactionDirection.OUTBOUND,
        amount=rule.amount,
        idempotency_key=idempotency.derive_leg_key(
            ctx.idempotency_key, TransactionDirection.OUTBOUND
        ),
        transfer_rule_id=rule.id,
    )
    inbound = LedgerEntry(
        account_id=destination.id,
        transaction_type=TransactionType.INTERNAL_TRANSFER,
        direction=TransactionDirection.INBOUND,
        amount=rule.amount,
        idempotency_key=idempotency.derive_leg_key(
            ctx.idempotency_key, TransactionDirection.INBOUND
        ),
        transfer_rule_id=rule.id,
    )
    denial = await resolver.check_parties_active(
        ctx.db, outbound, source=source, destination=destination
    )
    if denial is not None:
        return denial
    return await _settle(ctx, [outbound, inbound], INTERNAL_TRANSFER_MESSAGES)


async def _handle_external_outbound(
    ctx: _RequestContext, request: ExternalTransferOutboundRequest
) -> TransactionOutcome:
    rule, source, _ = await resolver.get_transfer_rule(
        ctx.db, request.transfer_rule_id, ctx.require_principal(), internal=False
    )
    entry = LedgerEntry(
        account_id=source.id,
        transaction_type=TransactionType.EXTERNAL_TRANSFER,
        direction=TransactionDirection.OUTBOUND,
        amount=rule.amount,
        idempotency_key=ctx.idempotency_key,
        transfer_rule_id=rule.id,
        external_routing_number=rule.external_routing_number,
        external_account_number=rule.external_account_number,
    )
    denial = await resolver.check_parties_active(ctx.db, entry, source=source)
    if denial is not None:
        return denial

    payment = PaymentInstruction(
        amount=rule.amount,
        source_account_number=source.account_number,
        source_routing_number=source.routing_number,
        destination_routing_number=rule.external_routing_number,
        destination_account_number=rule.external_account_number,
        reference=ctx.idempotency_key,
    )
    return await _settle(ctx, [entry], EXTERNAL_OUTBOUND_MESSAGES, payment=payment)


async def _handle_external_inbound(
    ctx: _RequestContext, request: ExternalTransferInboundRequest
) -> TransactionOutcome:
    account = await resolver.get_account_by_number(
        ctx.db, request.destination_account_number, resolver.DESTINATION_NOT_FOUND
    )
    entry = LedgerEntry(
        account_id=account.id,
        transaction_type=TransactionType.EXTERNAL_TRANSFER,
        direction=TransactionDirection.INBOUND,
        amount=request.requested_amount,
        idempotency_key=ctx.idempotency_key,
        external_routing_number=request.source_routing_number,
        external_account_number=request.source_account_number,
    )
    denial = await resolver.check_parties_active(ctx.db, entry, destination=account)
    if denial is not None:
        return denial
    return await _settle(ctx, [entry], EXTERNAL_INBOUND_MESSAGES)


_Handler = Callable[[_RequestContext, object], Awaitable[TransactionOutcome]]

_HANDLERS: dict[type, _Handler] = {
    DepositRequest: _handle_deposit,
    WithdrawalRequest: _handle_withdrawal,
    BillPayRequest: _handle_billpay,
    InternalTransferRequest: _handle_internal_transfer,
    ExternalTransferOutboundRequest: _handle_external_outbound,
    ExternalTransferInboundRequest: _handle_external_inbound,
}

# Every request shape the classifier can produce must be handled
_unhandled = [variant.__name__ for variant in REQUEST_VARIANTS if variant not in _HANDLERS]
if _unhandled:
    raise RuntimeError(f"No transaction handler for: {', '.join(_unhandled)}")


async def process_transaction(
    db: AsyncSession,
    request,
    *,
    principal_id: uuid.UUID | None,
    idempotency_key: str | None,
    gateway: PaymentGateway,
    gateway_timeout: float,
) -> TransactionOutcome:
    """
    Execute one classified transaction request.

    Args:
        db: The request's session; the caller commits it.
        request: One of the request variants from ledger_core.schemas.transaction.
        principal_id: Authenticated user id, or None for unauthenticated
                      inbound external transfers.
        idempotency_key: Normalized Idempotency-Key header, or None.
        gateway: Payment gateway for bill pay and outbound external transfers.
        gateway_timeout: Seconds to wait for the gateway.

    Returns:
        The outcome: approved, replayed, or denied (with its denied row).

    Raises:
        ResourceNotFoundError: An account or rule is missing or not the caller's.
        AuthenticationError: The request type needs a principal and got none.
    """
    handler = _HANDLERS[type(request)]
    ctx = _RequestContext(
        db=db,
        principal_id=principal_id,
        idempotency_key=idempotency_key,
        gateway=gateway,
        gateway_timeout=gateway_timeout,
    )
    outcome = await handler(ctx, request)

    if outcome.kind is not OutcomeKind.DENIED:
        logger.info(
            "Transaction approved" if outcome.kind is OutcomeKind.APPROVED else "Transaction replayed",
            extra={
                "transaction_type": request.requested_transaction_type,
                "transaction_ids": [str(txn_id) for txn_id in outcome.transaction_ids],
                "idempotency_key_present": idempotency_key is not None,
            },
        )
    return outcome
