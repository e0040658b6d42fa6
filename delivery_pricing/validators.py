"""
Input and Configuration Validation for the Delivery Pricing Engine

Validates calculation input before any pricing step runs, and template
rule sets before they are published to readers.
"""

from decimal import Decimal

from .errors import ConfigurationError, DuplicateRuleError, InvalidTierTable, ValidationError
from .models import CalculationInput, PricingRule, PricingTemplate, PricingTier


class InputValidator:
    """Validates calculation input according to business rules."""

    def validate(self, calc_input: CalculationInput) -> None:
        """
        Run all validations. Raises ValidationError if any check fails.
        """
        self._validate_order(calc_input)
        self._validate_route(calc_input)
        self._validate_money(calc_input)

    def _validate_order(self, calc_input: CalculationInput) -> None:
        if isinstance(calc_input.headcount, bool) or not isinstance(calc_input.headcount, int):
            raise ValidationError(f"headcount must be an integer, got: {calc_input.headcount!r}")
        if calc_input.headcount < 0:
            raise ValidationError(f"headcount cannot be negative, got: {calc_input.headcount}")

        self._require_decimal(calc_input.food_cost, "food_cost")
        if calc_input.food_cost < 0:
            raise ValidationError(f"food_cost cannot be negative, got: {calc_input.food_cost}")

    def _validate_route(self, calc_input: CalculationInput) -> None:
        self._require_decimal(calc_input.mileage, "mileage")
        if calc_input.mileage < 0:
            raise ValidationError(f"mileage cannot be negative, got: {calc_input.mileage}")

        if not isinstance(calc_input.requires_bridge, bool):
            raise ValidationError(f"requires_bridge must be true or false, got: {calc_input.requires_bridge!r}")

        stops = calc_input.number_of_stops
        if isinstance(stops, bool) or not isinstance(stops, int):
            raise ValidationError(f"number_of_stops must be an integer, got: {stops!r}")
        if stops < 1:
            raise ValidationError(f"number_of_stops must be at least 1, got: {stops}")

    def _validate_money(self, calc_input: CalculationInput) -> None:
        self._require_decimal(calc_input.tips, "tips")
        if calc_input.tips < 0:
            raise ValidationError(f"tips cannot be negative, got: {calc_input.tips}")

        # Adjustments may carry either sign
        self._require_decimal(calc_input.adjustments, "adjustments")

        self._require_decimal(calc_input.mileage_rate, "mileage_rate")
        if calc_input.mileage_rate < 0:
            raise ValidationError(f"mileage_rate cannot be negative, got: {calc_input.mileage_rate}")

    @staticmethod
    def _require_decimal(value, name: str) -> None:
        if not isinstance(value, Decimal) or not value.is_finite():
            raise ValidationError(f"{name} must be a finite decimal, got: {value!r}")


class TemplateValidator:
    """Validates a template and its rules before they become visible."""

    def validate(self, template: PricingTemplate, rules: tuple[PricingRule, ...]) -> None:
        self._validate_rules(template, rules)
        self._validate_tiers(template.tiers)

    def _validate_rules(self, template: PricingTemplate, rules: tuple[PricingRule, ...]) -> None:
        seen: set[tuple[str, str]] = set()
        rule_ids: set[str] = set()
        for rule in rules:
            if rule.template_id != template.id:
                raise ConfigurationError(
                    f"Rule {rule.id} belongs to template {rule.template_id}, not {template.id}"
                )
            if rule.id in rule_ids:
                raise DuplicateRuleError(f"Rule id {rule.id} appears twice in template {template.id}")
            rule_ids.add(rule.id)

            for name in ("base_amount", "per_unit_amount", "threshold_value"):
                value = getattr(rule, name)
                if value is not None and value < 0:
                    raise ConfigurationError(f"Rule {rule.id} {name} cannot be negative, got: {value}")

            key = (rule.rule_type.value, rule.rule_name)
            if key in seen:
                raise DuplicateRuleError(
                    f"Template {template.id} defines '{rule.rule_name}' more than once "
                    f"on the {rule.rule_type.value} side"
                )
            seen.add(key)

    def _validate_tiers(self, tiers: tuple[PricingTier, ...]) -> None:
        for i, tier in enumerate(tiers):
            if tier.min_headcount < 0 or tier.min_food_cost < 0:
                raise InvalidTierTable(f"Tier {i} minimums cannot be negative")
            if tier.max_headcount is not None and tier.max_headcount < tier.min_headcount:
                raise InvalidTierTable(f"Tier {i} max_headcount is below min_headcount")
            if tier.max_food_cost is not None and tier.max_food_cost < tier.min_food_cost:
                raise InvalidTierTable(f"Tier {i} max_food_cost is below min_food_cost")
            if tier.customer_base is None and tier.customer_base_percent is None:
                raise InvalidTierTable(f"Tier {i} has no customer base amount or percent")
            if tier.driver_base is None and tier.driver_base_percent is None:
                raise InvalidTierTable(f"Tier {i} has no driver base amount or percent")
            for name in ("customer_base", "driver_base", "customer_base_percent", "driver_base_percent"):
                value = getattr(tier, name)
                if value is not None and value < 0:
                    raise InvalidTierTable(f"Tier {i} {name} cannot be negative, got: {value}")

            if i == 0:
                continue
            previous = tiers[i - 1]
            # Brackets must ascend on both dimensions without overlapping
            if previous.max_headcount is None or tier.min_headcount <= previous.max_headcount:
                raise InvalidTierTable(f"Tier {i} headcount range overlaps tier {i - 1}")
            if previous.max_food_cost is None or tier.min_food_cost <= previous.max_food_cost:
                raise InvalidTierTable(f"Tier {i} food cost range overlaps tier {i - 1}")
