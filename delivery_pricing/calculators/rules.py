"""
Rule Evaluator

Executes one side of a template's pricing rules (customer charges or driver
payments) against a calculation input and produces itemized totals.
"""

import logging

from .money import clamp_total, fmt
from ..models import (
    ZERO,
    CalculationInput,
    ChargeBreakdown,
    LineItem,
    PricingRule,
    RuleName,
    ThresholdType,
    TierResult,
)

logger = logging.getLogger(__name__)


def rule_sort_key(rule: PricingRule) -> tuple:
    """Highest priority first; equal priorities fall back to rule id, then name."""
    return (-rule.priority, rule.id, rule.rule_name)


class RuleEvaluator:
    """Evaluates an ordered set of typed pricing rules."""

    def __init__(self):
        self._handlers = {
            RuleName.TIERED_BASE_FEE: self._tiered_base_fee,
            RuleName.TIERED_BASE_PAY: self._tiered_base_pay,
            RuleName.LONG_DISTANCE: self._distance,
            RuleName.MILEAGE: self._distance,
            RuleName.BRIDGE_TOLL: self._bridge_toll,
            RuleName.EXTRA_STOPS: self._extra_stops,
            RuleName.TIPS: self._tips,
            RuleName.HEADCOUNT_ADJUSTMENT: self._headcount_adjustment,
            RuleName.ADJUSTMENTS: self._adjustments,
        }

    def evaluate(
        self,
        rules: list[PricingRule],
        calc_input: CalculationInput,
        tier: TierResult,
        pass_through_tips: bool = False,
    ) -> ChargeBreakdown:
        """
        Evaluate rules in descending priority order.

        Args:
            rules: Rules for ONE side of the template
            calc_input: Validated calculation input
            tier: Resolved tier for the order
            pass_through_tips: Add the tip as a customer-side line item even if
                no tips rule exists on this side

        Returns:
            ChargeBreakdown with unrounded items and a rounded, clamped total
        """
        breakdown = ChargeBreakdown()
        ordered = sorted(rules, key=rule_sort_key)

        # Tips replace the driver's base/bonus structure, they don't add to it
        tips_replace_base = calc_input.tips > 0 and any(
            r.rule_name == RuleName.TIPS.value for r in ordered
        )

        for rule in ordered:
            try:
                name = RuleName(rule.rule_name)
            except ValueError:
                logger.warning(
                    "Skipping unresolved rule '%s' (id=%s, template=%s)",
                    rule.rule_name, rule.id, rule.template_id,
                )
                breakdown.unresolved.append(rule.rule_name)
                continue

            if name == RuleName.TIERED_BASE_PAY and tips_replace_base:
                breakdown.suppressed.append(name.value)
                continue

            breakdown.add(self._handlers[name](rule, calc_input, tier))

        if pass_through_tips and calc_input.tips > 0 and RuleName.TIPS.value not in breakdown.items:
            breakdown.add(LineItem(
                RuleName.TIPS.value,
                calc_input.tips,
                f"Tip pass-through to driver: {fmt(calc_input.tips)}",
            ))

        breakdown.total = clamp_total(sum(breakdown.items.values(), ZERO))
        return breakdown

    # -------------------------------------------------------------------------
    # Handlers, one per rule name
    # -------------------------------------------------------------------------

    def _tiered_base_fee(self, rule: PricingRule, calc_input: CalculationInput, tier: TierResult) -> LineItem:
        if rule.base_amount is not None:
            return LineItem(rule.rule_name, rule.base_amount, f"Flat base fee {fmt(rule.base_amount)}")
        return LineItem(
            rule.rule_name,
            tier.customer_base,
            f"Tier {tier.rank + 1} base fee {fmt(tier.customer_base)}",
        )

    def _tiered_base_pay(self, rule: PricingRule, calc_input: CalculationInput, tier: TierResult) -> LineItem:
        if rule.base_amount is not None:
            return LineItem(rule.rule_name, rule.base_amount, f"Flat base pay {fmt(rule.base_amount)}")
        return LineItem(
            rule.rule_name,
            tier.driver_base,
            f"Tier {tier.rank + 1} base pay {fmt(tier.driver_base)}",
        )

    def _distance(self, rule: PricingRule, calc_input: CalculationInput, tier: TierResult) -> LineItem:
        """
        Per-mile surcharge.

        With thresholdType=above only the miles past the threshold are billed;
        otherwise every mile is. A rule with no per-unit amount uses the
        input's mileage_rate.
        """
        rate = rule.per_unit_amount if rule.per_unit_amount is not None else calc_input.mileage_rate
        if rule.threshold_type == ThresholdType.ABOVE:
            threshold = rule.threshold_value or ZERO
            miles = max(ZERO, calc_input.mileage - threshold)
            description = f"{fmt(rate)}/mi × {miles} mi over {threshold}"
        else:
            miles = calc_input.mileage
            description = f"{fmt(rate)}/mi × {miles} mi"
        return LineItem(rule.rule_name, rate * miles, description)

    def _bridge_toll(self, rule: PricingRule, calc_input: CalculationInput, tier: TierResult) -> LineItem:
        if not calc_input.requires_bridge:
            return LineItem(rule.rule_name, ZERO, "No bridge crossing")
        toll = rule.base_amount or ZERO
        return LineItem(rule.rule_name, toll, f"Bridge toll {fmt(toll)}")

    def _extra_stops(self, rule: PricingRule, calc_input: CalculationInput, tier: TierResult) -> LineItem:
        rate = rule.per_unit_amount or ZERO
        extra = max(0, calc_input.number_of_stops - 1)
        return LineItem(rule.rule_name, rate * extra, f"{fmt(rate)} × {extra} extra stop(s)")

    def _tips(self, rule: PricingRule, calc_input: CalculationInput, tier: TierResult) -> LineItem:
        return LineItem(rule.rule_name, calc_input.tips, f"Tip passed through in full: {fmt(calc_input.tips)}")

    def _headcount_adjustment(self, rule: PricingRule, calc_input: CalculationInput, tier: TierResult) -> LineItem:
        rate = rule.per_unit_amount or ZERO
        return LineItem(
            rule.rule_name,
            rate * calc_input.headcount,
            f"{fmt(rate)} × {calc_input.headcount} headcount",
        )

    def _adjustments(self, rule: PricingRule, calc_input: CalculationInput, tier: TierResult) -> LineItem:
        return LineItem(rule.rule_name, calc_input.adjustments, f"Manual adjustment {fmt(calc_input.adjustments)}")
