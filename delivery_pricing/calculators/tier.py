"""
Tier Resolver

Maps headcount and food cost to a base fee / base pay pair.
"""

from decimal import Decimal

from ..errors import ConfigurationError, ValidationError
from ..models import PricingTier, TierResult


class TierResolver:
    """Resolves the pricing tier for an order."""

    def resolve(self, headcount: int, food_cost: Decimal, tiers: tuple[PricingTier, ...]) -> TierResult:
        """
        Resolve the tier for an order.

        Headcount and food cost are looked up independently. When they point
        at different brackets, the LOWER (cheaper) tier wins so that diverging
        signals never overcharge the customer.
        """
        if isinstance(headcount, bool) or not isinstance(headcount, int) or headcount < 0:
            raise ValidationError(f"headcount must be a non-negative integer, got: {headcount!r}")
        if not isinstance(food_cost, Decimal) or not food_cost.is_finite() or food_cost < 0:
            raise ValidationError(f"food_cost must be a non-negative decimal, got: {food_cost!r}")
        if not tiers:
            raise ConfigurationError("Template has no pricing tiers")

        headcount_rank = self._rank(headcount, [t.min_headcount for t in tiers])
        food_cost_rank = self._rank(food_cost, [t.min_food_cost for t in tiers])
        rank = min(headcount_rank, food_cost_rank)
        tier = tiers[rank]

        return TierResult(
            rank=rank,
            customer_base=tier.customer_amount(food_cost),
            driver_base=tier.driver_amount(food_cost),
            headcount_rank=headcount_rank,
            food_cost_rank=food_cost_rank,
        )

    @staticmethod
    def _rank(value, minimums: list) -> int:
        """
        Index of the highest bracket whose minimum is <= value.

        Values below the first minimum land in the first bracket and values
        past a closed last bracket land in the last one, so both ends of the
        table behave as open-ended.
        """
        rank = 0
        for i, minimum in enumerate(minimums):
            if value >= minimum:
                rank = i
            else:
                break
        return rank
