"""
Unit Tests for Rule Evaluator

Tests verify each rule kind, ordering, tips handling and total rounding.
"""

from decimal import Decimal

import pytest

from delivery_pricing.calculators.money import clamp_total, fmt, quantize_money
from delivery_pricing.calculators.rules import RuleEvaluator, rule_sort_key
from delivery_pricing.models import (
    CalculationInput,
    PricingRule,
    RuleType,
    ThresholdType,
    TierResult,
)

CUSTOMER = RuleType.CUSTOMER_CHARGE
DRIVER = RuleType.DRIVER_PAYMENT


def make_rule(rule_name, rule_type=CUSTOMER, rule_id=None, priority=0, **amounts):
    return PricingRule(
        id=rule_id or f"r-{rule_name}",
        template_id="t",
        rule_type=rule_type,
        rule_name=rule_name,
        priority=priority,
        **amounts,
    )


def make_input(**overrides):
    values = dict(headcount=35, food_cost=Decimal("450"), mileage=Decimal("12"))
    values.update(overrides)
    return CalculationInput(**values)


@pytest.fixture
def evaluator():
    return RuleEvaluator()


@pytest.fixture
def tier():
    return TierResult(
        rank=1,
        customer_base=Decimal("75.00"),
        driver_base=Decimal("40.00"),
        headcount_rank=1,
        food_cost_rank=1,
    )


class TestMoneyHelpers:
    """Test the money rounding utilities."""

    def test_rounds_half_up(self):
        assert quantize_money(Decimal("0.005")) == Decimal("0.01")
        assert quantize_money(Decimal("0.004")) == Decimal("0.00")

    def test_clamp_total_floors_at_zero(self):
        assert clamp_total(Decimal("-12.5")) == Decimal("0.00")

    def test_clamp_total_rounds(self):
        assert clamp_total(Decimal("10.005")) == Decimal("10.01")

    def test_fmt(self):
        assert fmt(Decimal("1234.5")) == "$1,234.50"


class TestTieredBase:
    """tiered_base_fee / tiered_base_pay."""

    def test_base_fee_from_tier(self, evaluator, tier):
        result = evaluator.evaluate([make_rule("tiered_base_fee")], make_input(), tier)
        assert result.items == {"tiered_base_fee": Decimal("75.00")}
        assert result.total == Decimal("75.00")
        assert "Tier 2" in result.descriptions["tiered_base_fee"]

    def test_base_pay_from_tier(self, evaluator, tier):
        result = evaluator.evaluate([make_rule("tiered_base_pay", DRIVER)], make_input(), tier)
        assert result.items == {"tiered_base_pay": Decimal("40.00")}

    def test_base_amount_used_as_flat_base(self, evaluator, tier):
        rule = make_rule("tiered_base_fee", base_amount=Decimal("99"))
        result = evaluator.evaluate([rule], make_input(), tier)
        assert result.items["tiered_base_fee"] == Decimal("99")


class TestDistance:
    """long_distance / mileage surcharges."""

    def test_only_miles_above_threshold_are_billed(self, evaluator, tier):
        rule = make_rule("long_distance", per_unit_amount=Decimal("3.00"),
                         threshold_value=Decimal("10"), threshold_type=ThresholdType.ABOVE)
        result = evaluator.evaluate([rule], make_input(mileage=Decimal("12")), tier)
        assert result.items["long_distance"] == Decimal("6.00")

    def test_mileage_under_threshold_is_free(self, evaluator, tier):
        rule = make_rule("long_distance", per_unit_amount=Decimal("3.00"),
                         threshold_value=Decimal("10"), threshold_type=ThresholdType.ABOVE)
        result = evaluator.evaluate([rule], make_input(mileage=Decimal("8")), tier)
        assert result.items["long_distance"] == Decimal("0")

    def test_mileage_at_threshold_is_free(self, evaluator, tier):
        rule = make_rule("mileage", DRIVER, per_unit_amount=Decimal("0.35"),
                         threshold_value=Decimal("10"), threshold_type=ThresholdType.ABOVE)
        result = evaluator.evaluate([rule], make_input(mileage=Decimal("10")), tier)
        assert result.items["mileage"] == Decimal("0")

    def test_no_threshold_bills_every_mile(self, evaluator, tier):
        rule = make_rule("long_distance", per_unit_amount=Decimal("3.00"))
        result = evaluator.evaluate([rule], make_input(mileage=Decimal("12")), tier)
        assert result.items["long_distance"] == Decimal("36.00")

    def test_below_threshold_bills_every_mile(self, evaluator, tier):
        rule = make_rule("long_distance", per_unit_amount=Decimal("3.00"),
                         threshold_value=Decimal("10"), threshold_type=ThresholdType.BELOW)
        result = evaluator.evaluate([rule], make_input(mileage=Decimal("12")), tier)
        assert result.items["long_distance"] == Decimal("36.00")

    def test_missing_rate_falls_back_to_input_mileage_rate(self, evaluator, tier):
        rule = make_rule("mileage", DRIVER)
        result = evaluator.evaluate([rule], make_input(mileage=Decimal("12")), tier)
        assert result.items["mileage"] == Decimal("8.40")

    def test_custom_mileage_rate(self, evaluator, tier):
        rule = make_rule("mileage", DRIVER, threshold_value=Decimal("10"),
                         threshold_type=ThresholdType.ABOVE)
        calc_input = make_input(mileage=Decimal("15"), mileage_rate=Decimal("0.50"))
        result = evaluator.evaluate([rule], calc_input, tier)
        assert result.items["mileage"] == Decimal("2.50")


class TestFlatAndPerUnitRules:
    """bridge_toll, extra_stops, headcount_adjustment, adjustments."""

    def test_bridge_toll_when_crossing(self, evaluator, tier):
        rule = make_rule("bridge_toll", base_amount=Decimal("8.00"))
        result = evaluator.evaluate([rule], make_input(requires_bridge=True), tier)
        assert result.items["bridge_toll"] == Decimal("8.00")

    def test_bridge_toll_zero_without_crossing(self, evaluator, tier):
        rule = make_rule("bridge_toll", base_amount=Decimal("8.00"))
        result = evaluator.evaluate([rule], make_input(requires_bridge=False), tier)
        assert result.items["bridge_toll"] == Decimal("0")
        assert result.total == Decimal("0.00")

    def test_extra_stops_exclude_first_stop(self, evaluator, tier):
        rule = make_rule("extra_stops", per_unit_amount=Decimal("5.00"))
        result = evaluator.evaluate([rule], make_input(number_of_stops=3), tier)
        assert result.items["extra_stops"] == Decimal("10.00")

    def test_single_stop_has_no_extra(self, evaluator, tier):
        rule = make_rule("extra_stops", per_unit_amount=Decimal("5.00"))
        result = evaluator.evaluate([rule], make_input(number_of_stops=1), tier)
        assert result.items["extra_stops"] == Decimal("0")

    def test_headcount_adjustment(self, evaluator, tier):
        rule = make_rule("headcount_adjustment", per_unit_amount=Decimal("4.50"))
        result = evaluator.evaluate([rule], make_input(headcount=35), tier)
        assert result.items["headcount_adjustment"] == Decimal("157.50")

    def test_adjustments_pass_sign_through(self, evaluator, tier):
        rules = [make_rule("tiered_base_pay", DRIVER, priority=10), make_rule("adjustments", DRIVER)]
        result = evaluator.evaluate(rules, make_input(adjustments=Decimal("-5.25")), tier)
        assert result.items["adjustments"] == Decimal("-5.25")
        assert result.total == Decimal("34.75")


class TestOrderingAndTotals:
    """Priority ordering, unresolved rules, rounding and clamping."""

    def test_items_follow_descending_priority(self, evaluator, tier):
        rules = [
            make_rule("bridge_toll", base_amount=Decimal("8"), priority=80),
            make_rule("long_distance", per_unit_amount=Decimal("3"), priority=90),
            make_rule("tiered_base_fee", priority=100),
        ]
        result = evaluator.evaluate(rules, make_input(), tier)
        assert list(result.items) == ["tiered_base_fee", "long_distance", "bridge_toll"]

    def test_equal_priority_breaks_tie_by_rule_id(self):
        a = make_rule("extra_stops", rule_id="b-rule", priority=5)
        b = make_rule("bridge_toll", rule_id="a-rule", priority=5)
        assert sorted([a, b], key=rule_sort_key) == [b, a]

    def test_unknown_rule_is_flagged_not_fatal(self, evaluator, tier, caplog):
        rules = [make_rule("tiered_base_fee", priority=10), make_rule("fuel_surcharge")]
        result = evaluator.evaluate(rules, make_input(), tier)
        assert result.unresolved == ["fuel_surcharge"]
        assert "fuel_surcharge" not in result.items
        assert result.total == Decimal("75.00")
        assert "fuel_surcharge" in caplog.text

    def test_total_is_clamped_at_zero(self, evaluator, tier):
        rules = [make_rule("adjustments", DRIVER)]
        result = evaluator.evaluate(rules, make_input(adjustments=Decimal("-100")), tier)
        assert result.items["adjustments"] == Decimal("-100")
        assert result.total == Decimal("0.00")

    def test_items_are_not_rounded_only_the_total(self, evaluator, tier):
        rule = make_rule("headcount_adjustment", per_unit_amount=Decimal("0.335"))
        result = evaluator.evaluate([rule], make_input(headcount=3), tier)
        assert result.items["headcount_adjustment"] == Decimal("1.005")
        assert result.total == Decimal("1.01")

    def test_no_rules_gives_zero_total(self, evaluator, tier):
        result = evaluator.evaluate([], make_input(), tier)
        assert result.items == {}
        assert result.total == Decimal("0.00")


class TestTips:
    """Tips replace the driver's base pay and are billed through to the customer."""

    @pytest.fixture
    def driver_rules(self):
        return [
            make_rule("tiered_base_pay", DRIVER, priority=100),
            make_rule("mileage", DRIVER, per_unit_amount=Decimal("0.35"), priority=90,
                      threshold_value=Decimal("10"), threshold_type=ThresholdType.ABOVE),
            make_rule("extra_stops", DRIVER, per_unit_amount=Decimal("2.50"), priority=70),
            make_rule("tips", DRIVER, priority=60),
        ]

    def test_tips_suppress_base_pay(self, evaluator, tier, driver_rules):
        calc_input = make_input(mileage=Decimal("15"), tips=Decimal("20"))
        result = evaluator.evaluate(driver_rules, calc_input, tier)
        assert "tiered_base_pay" not in result.items
        assert result.suppressed == ["tiered_base_pay"]
        assert result.items["tips"] == Decimal("20")
        assert result.total == Decimal("21.75")

    def test_extra_stops_stay_additive_with_tips(self, evaluator, tier, driver_rules):
        calc_input = make_input(mileage=Decimal("15"), tips=Decimal("20"), number_of_stops=2)
        result = evaluator.evaluate(driver_rules, calc_input, tier)
        assert result.total == Decimal("24.25")

    def test_zero_tips_keep_base_pay(self, evaluator, tier, driver_rules):
        result = evaluator.evaluate(driver_rules, make_input(mileage=Decimal("15")), tier)
        assert result.items["tiered_base_pay"] == Decimal("40.00")
        assert result.items["tips"] == Decimal("0")
        assert result.suppressed == []
        assert result.total == Decimal("41.75")

    def test_tips_without_tips_rule_do_not_suppress(self, evaluator, tier):
        rules = [make_rule("tiered_base_pay", DRIVER)]
        result = evaluator.evaluate(rules, make_input(tips=Decimal("20")), tier)
        assert result.items == {"tiered_base_pay": Decimal("40.00")}

    def test_customer_pass_through(self, evaluator, tier):
        rules = [make_rule("tiered_base_fee")]
        result = evaluator.evaluate(rules, make_input(tips=Decimal("20")), tier, pass_through_tips=True)
        assert result.items["tips"] == Decimal("20")
        assert result.total == Decimal("95.00")

    def test_no_pass_through_line_for_zero_tips(self, evaluator, tier):
        rules = [make_rule("tiered_base_fee")]
        result = evaluator.evaluate(rules, make_input(), tier, pass_through_tips=True)
        assert "tips" not in result.items

    def test_pass_through_is_not_duplicated(self, evaluator, tier):
        rules = [make_rule("tiered_base_fee", priority=10), make_rule("tips")]
        result = evaluator.evaluate(rules, make_input(tips=Decimal("20")), tier, pass_through_tips=True)
        assert result.items["tips"] == Decimal("20")
        assert result.total == Decimal("95.00")
