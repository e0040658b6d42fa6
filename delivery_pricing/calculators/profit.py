"""
Profit Calculator

Calculates the margin between what the customer is charged and what the
driver is paid.
"""

from decimal import Decimal

from .money import quantize_money
from ..models import ProcessingContext


class ProfitCalculator:
    """Calculates profit and profit margin."""

    def calculate(self, ctx: ProcessingContext) -> tuple[Decimal, Decimal]:
        """
        Profit        = Customer Total - Driver Total
        Profit Margin = Profit / Customer Total × 100  (0 when nothing is charged)
        """
        customer_total = ctx.customer.total
        profit = quantize_money(customer_total - ctx.driver.total)

        if customer_total == 0:
            return profit, Decimal("0.00")

        margin = quantize_money(profit / customer_total * Decimal("100"))
        return profit, margin
