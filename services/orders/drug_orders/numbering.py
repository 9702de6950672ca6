"""
Order number generation and money formatting.
"""
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Union

from .enums import TransactionType

ORDER_NO_PREFIXES = {
    TransactionType.INSTITUTE: "INST",
    TransactionType.MANUFACTURER: "MFR",
    TransactionType.PHARMACY_TO_INSTITUTE: "PHARM",
}

CENTS = Decimal("0.01")


def generate_order_no(transaction_type: TransactionType) -> str:
    """
    Build a new order number such as ``PHARM-3F9A0C1B``.

    The prefix encodes the channel; the suffix is the first 8 hex characters
    of a random UUID, upper-cased.
    """
    return f"{ORDER_NO_PREFIXES[transaction_type]}-{uuid.uuid4().hex[:8].upper()}"


def unique_order_no(transaction_type: TransactionType, exists: Callable[[str], bool], attempts: int = 5) -> str:
    """
    Generate an order number that ``exists`` reports as unused.

    The unique index on ``orders.order_no`` is the final guard; this only
    keeps collisions from surfacing as storage errors in the common case.

    Raises:
        RuntimeError: If every attempt collided
    """
    for _ in range(attempts):
        order_no = generate_order_no(transaction_type)
        if not exists(order_no):
            return order_no
    raise RuntimeError(f"Could not allocate a unique order number after {attempts} attempts")


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Convert a value to a Decimal rounded to cents."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def line_total(unit_price: Union[Decimal, int, float, str], quantity: int) -> Decimal:
    """Value of one order line, rounded to cents."""
    return to_money(Decimal(str(unit_price)) * quantity)


def format_amount(value: Union[Decimal, int, float, str]) -> str:
    """Render an amount with exactly two decimal places, e.g. ``"100.00"``."""
    return str(to_money(value))
