"""
Fixed-point money helpers.

Every amount in the service is a ``decimal.Decimal`` with exactly two
fractional digits. Floats never reach arithmetic: request amounts are parsed
from their textual form, and storage uses integer minor units (cents) so the
database never rounds.
"""

import re
from decimal import Decimal, InvalidOperation

CENT = Decimal("0.01")

# Largest amount or balance the ledger holds: 13 integer digits, as a
# NUMERIC(15, 2) column would allow. Its cents fit a 64-bit integer.
MAX_AMOUNT = Decimal("9999999999999.99")

# Optional sign, digits, optionally followed by one or two fractional digits
_AMOUNT_PATTERN = re.compile(r"-?\d+(\.\d{1,2})?")


def parse_amount(value: object) -> Decimal:
    """
    Parse a client-supplied amount into an exact 2-decimal ``Decimal``.

    Accepts ints, floats, Decimals and numeric strings (surrounding whitespace
    is ignored). Values with more than two fractional digits are rejected,
    never truncated, and so is anything that is not strictly positive or
    that exceeds ``MAX_AMOUNT``.

    Raises:
        ValueError: If the value is not a valid positive amount.
    """
    # bool is an int subclass; True is not "1.00"
    if isinstance(value, bool):
        raise ValueError("Amount must be a number or a numeric string")
    if isinstance(value, str):
        text = value.strip()
    elif isinstance(value, (int, float, Decimal)):
        text = str(value)
    else:
        raise ValueError("Amount must be a number or a numeric string")

    if not _AMOUNT_PATTERN.fullmatch(text):
        raise ValueError("Invalid amount (max 2 decimal places)")

    amount = Decimal(text)
    if amount <= 0:
        raise ValueError("Amount must be greater than 0")
    # Checked before quantize, which fails past the context precision
    if amount > MAX_AMOUNT:
        raise ValueError(f"Amount must not exceed {MAX_AMOUNT}")
    return amount.quantize(CENT)


def to_minor_units(value: Decimal | int) -> int:
    """Convert an amount to integer cents, refusing anything finer than a cent."""
    try:
        cents = Decimal(value) * 100
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if cents != cents.to_integral_value():
        raise ValueError(f"Amount {value} has more than two decimal places")
    return int(cents)


def from_minor_units(cents: int) -> Decimal:
    """Convert integer cents back into a 2-decimal ``Decimal``."""
    return (Decimal(cents) / 100).quantize(CENT)
