"""
Account model: an internal bank account owned by one User.

Each account has:
  - A unique account number (string, up to 17 digits) and a routing number
  - A balance held as an exact 2-decimal Decimal (stored in integer cents)
  - An active flag; inactive accounts can neither send nor receive money

Balance management:
  The balance is only ever changed by the ledger mutator, through a single
  conditional UPDATE inside the same unit of work that writes the matching
  Transaction row. A CHECK constraint also keeps the stored balance from
  going negative; the conditional update is what normally prevents it.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_core.database import Base, Money

DEFAULT_ROUTING_NUMBER = "724722907"


class Account(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_non_negative_balance"),
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

    account_number: Mapped[str] = mapped_column(
        String(17),
        unique=True,
        nullable=False,
    )

    routing_number: Mapped[str] = mapped_column(
        String(9),
        nullable=False,
        default=DEFAULT_ROUTING_NUMBER,
    )

    balance: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
        default=Decimal("0.00"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    owner: Mapped["User"] = relationship(
        back_populates="accounts",
    )
