"""Pydantic schemas for the account read endpoints."""

from decimal import Decimal

from pydantic import BaseModel


class BalanceResponse(BaseModel):
    """
    Balance of one account, read two ways.

    ``balance`` is the cached column the ledger mutates; ``computed_balance``
    is the sum of the account's approved ledger rows. ``match`` is False only
    if the two have drifted apart, which should never happen.
    """
    account_number: str
    routing_number: str
    is_active: bool
    balance: Decimal
    computed_balance: Decimal
    match: bool
