"""
Money helpers shared by the calculators.

Rounding happens only on totals, never on individual line items, so that
per-item rounding error cannot compound.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_total(value: Decimal) -> Decimal:
    """Round a side total and clamp it at zero."""
    return max(Decimal("0.00"), quantize_money(value))


def fmt(value) -> str:
    """Format a number as a currency string for descriptions."""
    return f"${value:,.2f}"
