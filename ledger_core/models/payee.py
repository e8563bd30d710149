"""
Payee model: an external bill-pay recipient.

Payees are shared reference data (utility companies, card issuers, ...);
users point BillPayRules at them. A payee that has been deactivated must not
receive money: every bill payment to it is denied and recorded.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ledger_core.database import Base


class Payee(Base):
    __tablename__ = "billpay_payees"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    business_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    routing_number: Mapped[str] = mapped_column(
        String(9),
        nullable=False,
    )

    account_number: Mapped[str] = mapped_column(
        String(17),
        nullable=False,
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
