"""
Built-in Pricing Templates and Client Configurations

The standard catering template and a few client configurations layered on
top of it. These seed the in-memory stores; a JSON seed file can add to or
replace them at start-up.
"""

from decimal import Decimal

from .models import (
    AreaRule,
    ClientConfiguration,
    PricingRule,
    PricingTemplate,
    PricingTier,
    RuleOverride,
    RuleType,
    ThresholdType,
)
from .store import InMemoryClientConfigStore, InMemoryTemplateStore

STANDARD_TEMPLATE_ID = "ready-set-food-standard"
SPECIALTY_TEMPLATE_ID = "per-head-specialty"

DISTANCE_THRESHOLD = Decimal("10")  # miles included in the base fee
CUSTOMER_MILEAGE_RATE = Decimal("3.00")
DRIVER_MILEAGE_RATE = Decimal("0.35")
BRIDGE_TOLL = Decimal("8.00")

# Lower tier wins when headcount and food cost disagree
STANDARD_TIERS = (
    PricingTier(0, 24, Decimal("0"), Decimal("299.99"),
                customer_base=Decimal("65.00"), driver_base=Decimal("35.00")),
    PricingTier(25, 49, Decimal("300"), Decimal("599.99"),
                customer_base=Decimal("75.00"), driver_base=Decimal("40.00")),
    PricingTier(50, 74, Decimal("600"), Decimal("899.99"),
                customer_base=Decimal("85.00"), driver_base=Decimal("45.00")),
    PricingTier(75, 99, Decimal("900"), Decimal("1199.99"),
                customer_base=Decimal("95.00"), driver_base=Decimal("50.00")),
    # Enterprise orders are priced as a share of the food cost
    PricingTier(100, None, Decimal("1200"), None,
                customer_base_percent=Decimal("0.09"), driver_base_percent=Decimal("0.05")),
)


def _rule(template_id, rule_id, rule_type, rule_name, priority, **amounts) -> PricingRule:
    return PricingRule(
        id=rule_id,
        template_id=template_id,
        rule_type=rule_type,
        rule_name=rule_name,
        priority=priority,
        **amounts,
    )


def standard_template() -> tuple[PricingTemplate, list[PricingRule]]:
    template = PricingTemplate(
        id=STANDARD_TEMPLATE_ID,
        name="Ready Set Food - Standard",
        description="Tiered catering delivery pricing with long-distance, bridge and multi-stop charges",
        tiers=STANDARD_TIERS,
    )
    t = template.id
    customer, driver = RuleType.CUSTOMER_CHARGE, RuleType.DRIVER_PAYMENT
    rules = [
        _rule(t, "std-c-base", customer, "tiered_base_fee", 100),
        _rule(t, "std-c-distance", customer, "long_distance", 90,
              per_unit_amount=CUSTOMER_MILEAGE_RATE, threshold_value=DISTANCE_THRESHOLD,
              threshold_type=ThresholdType.ABOVE),
        _rule(t, "std-c-bridge", customer, "bridge_toll", 80, base_amount=BRIDGE_TOLL),
        _rule(t, "std-c-stops", customer, "extra_stops", 70, per_unit_amount=Decimal("5.00")),
        _rule(t, "std-d-base", driver, "tiered_base_pay", 100),
        _rule(t, "std-d-mileage", driver, "mileage", 90,
              per_unit_amount=DRIVER_MILEAGE_RATE, threshold_value=DISTANCE_THRESHOLD,
              threshold_type=ThresholdType.ABOVE),
        _rule(t, "std-d-bridge", driver, "bridge_toll", 80, base_amount=BRIDGE_TOLL),
        _rule(t, "std-d-stops", driver, "extra_stops", 70, per_unit_amount=Decimal("2.50")),
        _rule(t, "std-d-tips", driver, "tips", 60),
        _rule(t, "std-d-adjustments", driver, "adjustments", 50),
    ]
    return template, rules


def specialty_template() -> tuple[PricingTemplate, list[PricingRule]]:
    """Per-plate pricing: customers pay per head, drivers are paid per mile at the order's rate."""
    template = PricingTemplate(
        id=SPECIALTY_TEMPLATE_ID,
        name="Per-Head Specialty",
        description="Headcount-driven customer charge for boxed-meal programs",
        tiers=STANDARD_TIERS,
    )
    t = template.id
    customer, driver = RuleType.CUSTOMER_CHARGE, RuleType.DRIVER_PAYMENT
    rules = [
        _rule(t, "spc-c-head", customer, "headcount_adjustment", 100, per_unit_amount=Decimal("4.50")),
        _rule(t, "spc-c-distance", customer, "long_distance", 90,
              per_unit_amount=CUSTOMER_MILEAGE_RATE, threshold_value=DISTANCE_THRESHOLD,
              threshold_type=ThresholdType.ABOVE),
        _rule(t, "spc-d-base", driver, "tiered_base_pay", 100),
        _rule(t, "spc-d-mileage", driver, "mileage", 90),
        _rule(t, "spc-d-tips", driver, "tips", 60),
    ]
    return template, rules


def default_client_configurations() -> list[ClientConfiguration]:
    return [
        ClientConfiguration(
            id="kasa",
            client_id="kasa",
            client_name="Kasa",
            template_id=STANDARD_TEMPLATE_ID,
            rule_overrides={
                "extra_stops": RuleOverride(amount=Decimal("7.50")),
                "bridge_toll": RuleOverride(base_amount=Decimal("10.00")),
            },
            area_rules=(
                AreaRule("Marin County", Decimal("95.00"), Decimal("50.00"),
                         has_tolls=True, toll_amount=BRIDGE_TOLL),
            ),
        ),
        ClientConfiguration(
            id="cater-valley",
            client_id="cater-valley",
            client_name="CaterValley",
            template_id=STANDARD_TEMPLATE_ID,
            rule_overrides={"mileage": RuleOverride(amount=Decimal("0.70"))},
        ),
    ]


def build_default_stores() -> tuple[InMemoryTemplateStore, InMemoryClientConfigStore]:
    """Fresh stores seeded with the built-in templates and client configurations."""
    template_store = InMemoryTemplateStore()
    for template, rules in (standard_template(), specialty_template()):
        template_store.publish(template, rules)

    client_store = InMemoryClientConfigStore()
    for config in default_client_configurations():
        client_store.put(config)

    return template_store, client_store
