"""
Transaction model: the immutable ledger record.

Every processed money movement produces Transaction rows, approved or denied:

  - A deposit / withdrawal / bill payment creates one row
  - An internal transfer creates TWO approved rows: an outbound row on the
    source account and an inbound row on the destination, both referencing
    the same transfer rule
  - A business failure (inactive account or payee, insufficient funds,
    payment gateway failure) creates one DENIED row carrying the attempted
    amount, for audit

Key fields:
  - amount: signed Decimal; negative for outbound, positive for inbound
  - transaction_type / direction / status: see the enums below
  - idempotency_key: the client-supplied key (or the derived key for the
    inbound leg of an internal transfer)
  - idempotency_fingerprint: hash of (key, type, account, amount, rule), set
    only on approved rows that carry a key. The UNIQUE constraint on it is
    what guarantees one approved row per key + business tuple even when two
    identical requests race.

Rows are never updated after insert (status is decided at creation time),
so, unlike the other tables, there is no updated_at column.
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Enum, Index
from sqlalchemy.orm import Mapped, mapped_column

from ledger_core.database import Base, Money


class TransactionType(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BILLPAY = "billpay"
    INTERNAL_TRANSFER = "internal_transfer"
    EXTERNAL_TRANSFER = "external_transfer"


class TransactionDirection(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class TransactionStatus(str, enum.Enum):
    APPROVED = "approved"
    DENIED = "denied"


class DenialReason(str, enum.Enum):
    """Why a well-formed, authorized request was denied."""
    SOURCE_INACTIVE = "source_inactive"
    DESTINATION_INACTIVE = "destination_inactive"
    PAYEE_INACTIVE = "payee_inactive"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    GATEWAY_FAILURE = "gateway_failure"
    GATEWAY_TIMEOUT = "gateway_timeout"
    BALANCE_LIMIT = "balance_limit_exceeded"


def _enum_values(enum_cls):
    # Persist "deposit", not "DEPOSIT"
    return [member.value for member in enum_cls]


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        Index("ix_transactions_account_created", "account_id", "created_at"),
        Index("ix_transactions_status_type", "status", "transaction_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    # Signed: outbound rows are negative
    amount: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, values_callable=_enum_values, name="transaction_type"),
        nullable=False,
    )

    direction: Mapped[TransactionDirection] = mapped_column(
        Enum(TransactionDirection, values_callable=_enum_values, name="transaction_direction"),
        nullable=False,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus, values_callable=_enum_values, name="transaction_status"),
        nullable=False,
    )

    # Set on denied rows only
    denial_reason: Mapped[DenialReason | None] = mapped_column(
        Enum(DenialReason, values_callable=_enum_values, name="denial_reason"),
        nullable=True,
    )

    bill_pay_rule_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("billpay_rules.id"),
        nullable=True,
        index=True,
    )

    transfer_rule_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("transfer_rules.id"),
        nullable=True,
        index=True,
    )

    # Counterparty outside the bank (payee, external destination or inbound source)
    external_routing_number: Mapped[str | None] = mapped_column(
        String(9),
        nullable=True,
    )
    external_account_number: Mapped[str | None] = mapped_column(
        String(17),
        nullable=True,
    )

    idempotency_key: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    idempotency_fingerprint: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    @property
    def rule_id(self) -> uuid.UUID | None:
        return self.bill_pay_rule_id or self.transfer_rule_id
