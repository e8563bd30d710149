"""
Payment rule models: persisted templates the engine executes.

A rule names who pays, who gets paid, how much, and on what schedule. The
scheduler (outside this service) submits a request carrying the rule id on
each due date; users can also trigger a rule on demand. The engine only
reads rules, it never changes them.

  - BillPayRule: internal source account -> external Payee
  - TransferRule: internal source account -> either another internal
    account (destination_account_id) or an external account given by
    routing + account number

The rule's user_id is its owner. The engine checks it AND independently
checks that the source account belongs to that same user, so a rule can
never be used to pull money out of someone else's account.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_core.database import Base, Money


class BillPayRule(Base):
    __tablename__ = "billpay_rules"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_billpay_rules_positive_amount"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    source_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    payee_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("billpay_payees.id"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
    )

    # Cron-style or "monthly"/"weekly"; interpreted by the scheduler only
    frequency: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # --- Relationships ---
    source_account: Mapped["Account"] = relationship()
    payee: Mapped["Payee"] = relationship()


class TransferRule(Base):
    __tablename__ = "transfer_rules"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transfer_rules_positive_amount"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    source_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    # Internal destination (internal transfers)
    destination_account_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=True,
        index=True,
    )

    # External destination (outbound external transfers)
    external_routing_number: Mapped[str | None] = mapped_column(
        String(9),
        nullable=True,
    )
    external_account_number: Mapped[str | None] = mapped_column(
        String(17),
        nullable=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
    )

    # Null for one-off transfers
    frequency: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # --- Relationships ---
    source_account: Mapped["Account"] = relationship(
        foreign_keys=[source_account_id],
    )
    destination_account: Mapped["Account"] = relationship(
        foreign_keys=[destination_account_id],
    )

    @property
    def is_internal(self) -> bool:
        return self.destination_account_id is not None

    @property
    def is_external(self) -> bool:
        return (
            self.destination_account_id is None
            and self.external_routing_number is not None
            and self.external_account_number is not None
        )
