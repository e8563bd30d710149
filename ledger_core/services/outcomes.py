"""Terminal outcomes of one processed transaction request."""

import enum
import uuid
from dataclasses import dataclass

from ledger_core.models.transaction import DenialReason, Transaction


class OutcomeKind(str, enum.Enum):
    APPROVED = "approved"
    REPLAYED = "replayed"
    DENIED = "denied"


# HTTP status for each denial reason
DENIAL_STATUS_CODES: dict[DenialReason, int] = {
    DenialReason.SOURCE_INACTIVE: 403,
    DenialReason.DESTINATION_INACTIVE: 403,
    DenialReason.PAYEE_INACTIVE: 403,
    DenialReason.INSUFFICIENT_FUNDS: 409,
    DenialReason.BALANCE_LIMIT: 409,
    DenialReason.GATEWAY_FAILURE: 502,
    DenialReason.GATEWAY_TIMEOUT: 502,
}


@dataclass(frozen=True)
class TransactionOutcome:
    """
    What the engine decided, plus the rows behind the decision.

    Approved: the newly written rows. Replayed: the rows written by the
    original request. Denied: the single denied row.
    """

    kind: OutcomeKind
    message: str
    transactions: tuple[Transaction, ...] = ()
    denial_reason: DenialReason | None = None

    @classmethod
    def approved(cls, message: str, transactions) -> "TransactionOutcome":
        return cls(OutcomeKind.APPROVED, message, tuple(transactions))

    @classmethod
    def replayed(cls, message: str, transactions) -> "TransactionOutcome":
        return cls(OutcomeKind.REPLAYED, message, tuple(transactions))

    @classmethod
    def denied(
        cls, message: str, reason: DenialReason, transaction: Transaction
    ) -> "TransactionOutcome":
        return cls(OutcomeKind.DENIED, message, (transaction,), reason)

    @property
    def status_code(self) -> int:
        if self.kind is OutcomeKind.DENIED:
            return DENIAL_STATUS_CODES[self.denial_reason]
        return 200

    @property
    def transaction_ids(self) -> list[uuid.UUID]:
        return [txn.id for txn in self.transactions]
