"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all runs
  2. Other modules can import from ledger_core.models directly
"""

from ledger_core.models.user import User  # noqa: F401
from ledger_core.models.account import Account  # noqa: F401
from ledger_core.models.payee import Payee  # noqa: F401
from ledger_core.models.rule import BillPayRule, TransferRule  # noqa: F401
from ledger_core.models.transaction import (  # noqa: F401
    DenialReason,
    Transaction,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
)
