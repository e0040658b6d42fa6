"""
Domain Models for the Delivery Pricing Engine

These dataclasses provide type-safe representations of templates, rules,
client configurations, calculation inputs and results.
All monetary values use Decimal for precision.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

from .errors import ValidationError

ZERO = Decimal("0")
DEFAULT_MILEAGE_RATE = Decimal("0.70")


# =============================================================================
# VOCABULARY
# =============================================================================


class RuleType(str, Enum):
    CUSTOMER_CHARGE = "customer_charge"
    DRIVER_PAYMENT = "driver_payment"


class RuleName(str, Enum):
    TIERED_BASE_FEE = "tiered_base_fee"
    TIERED_BASE_PAY = "tiered_base_pay"
    LONG_DISTANCE = "long_distance"
    MILEAGE = "mileage"
    BRIDGE_TOLL = "bridge_toll"
    EXTRA_STOPS = "extra_stops"
    TIPS = "tips"
    HEADCOUNT_ADJUSTMENT = "headcount_adjustment"
    ADJUSTMENTS = "adjustments"


class ThresholdType(str, Enum):
    ABOVE = "above"
    BELOW = "below"


# Rules whose bare override amount replaces the per-unit amount
PER_UNIT_RULES = frozenset({
    RuleName.LONG_DISTANCE.value,
    RuleName.MILEAGE.value,
    RuleName.EXTRA_STOPS.value,
    RuleName.HEADCOUNT_ADJUSTMENT.value,
})


# =============================================================================
# PARSING HELPERS
# =============================================================================


def _pick(data: dict, key: str, legacy: str | None = None, default=None):
    """Read a snake_case key, falling back to the legacy camelCase key."""
    if key in data:
        return data[key]
    if legacy is not None and legacy in data:
        return data[legacy]
    return default


def _decimal(value, name: str, error: type[Exception] = ValidationError) -> Decimal:
    if isinstance(value, bool):
        raise error(f"{name} must be numeric, got: {value!r}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise error(f"{name} must be numeric, got: {value!r}")
    if not result.is_finite():
        raise error(f"{name} must be a finite number, got: {value!r}")
    return result


def _optional_decimal(value, name: str, error: type[Exception] = ValueError) -> Decimal | None:
    if value is None:
        return None
    return _decimal(value, name, error)


def _integer(value, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer, got: {value!r}")
    if isinstance(value, int):
        return value
    number = _decimal(value, name)
    if number != number.to_integral_value():
        raise ValidationError(f"{name} must be an integer, got: {value!r}")
    return int(number)


def _boolean(value, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false, got: {value!r}")
    return value


def _required(data: dict, key: str, legacy: str | None = None):
    value = _pick(data, key, legacy)
    if value is None:
        raise ValidationError(f"{key} is required")
    return value


# =============================================================================
# CONFIGURATION MODELS
# =============================================================================


@dataclass(frozen=True)
class PricingTier:
    """One headcount / food-cost bracket of a template's tier table."""

    min_headcount: int
    max_headcount: int | None  # None = open-ended
    min_food_cost: Decimal
    max_food_cost: Decimal | None  # None = open-ended
    customer_base: Decimal | None = None
    driver_base: Decimal | None = None
    customer_base_percent: Decimal | None = None  # fraction of food cost
    driver_base_percent: Decimal | None = None

    def customer_amount(self, food_cost: Decimal) -> Decimal:
        if self.customer_base_percent is not None:
            return food_cost * self.customer_base_percent
        return self.customer_base if self.customer_base is not None else ZERO

    def driver_amount(self, food_cost: Decimal) -> Decimal:
        if self.driver_base_percent is not None:
            return food_cost * self.driver_base_percent
        return self.driver_base if self.driver_base is not None else ZERO

    @classmethod
    def from_dict(cls, data: dict) -> "PricingTier":
        max_headcount = _pick(data, "max_headcount", "maxHeadCount")
        return cls(
            min_headcount=int(_pick(data, "min_headcount", "minHeadCount", 0)),
            max_headcount=int(max_headcount) if max_headcount is not None else None,
            min_food_cost=_decimal(_pick(data, "min_food_cost", "minFoodCost", 0), "min_food_cost", ValueError),
            max_food_cost=_optional_decimal(_pick(data, "max_food_cost", "maxFoodCost"), "max_food_cost"),
            customer_base=_optional_decimal(_pick(data, "customer_base", "customerBase"), "customer_base"),
            driver_base=_optional_decimal(_pick(data, "driver_base", "driverBase"), "driver_base"),
            customer_base_percent=_optional_decimal(
                _pick(data, "customer_base_percent", "customerBasePercent"), "customer_base_percent"
            ),
            driver_base_percent=_optional_decimal(
                _pick(data, "driver_base_percent", "driverBasePercent"), "driver_base_percent"
            ),
        )


@dataclass(frozen=True)
class PricingRule:
    """A single priced line-item definition on one side of a template."""

    id: str
    template_id: str
    rule_type: RuleType
    rule_name: str  # kept as str so unknown vocabulary can be flagged, not rejected
    base_amount: Decimal | None = None
    per_unit_amount: Decimal | None = None
    threshold_value: Decimal | None = None
    threshold_type: ThresholdType | None = None
    priority: int = 0

    @classmethod
    def from_dict(cls, data: dict, template_id: str | None = None) -> "PricingRule":
        threshold_type = _pick(data, "threshold_type", "thresholdType")
        return cls(
            id=str(data["id"]),
            template_id=str(_pick(data, "template_id", "templateId", template_id)),
            rule_type=RuleType(_pick(data, "rule_type", "ruleType")),
            rule_name=_pick(data, "rule_name", "ruleName"),
            base_amount=_optional_decimal(_pick(data, "base_amount", "baseAmount"), "base_amount"),
            per_unit_amount=_optional_decimal(_pick(data, "per_unit_amount", "perUnitAmount"), "per_unit_amount"),
            threshold_value=_optional_decimal(_pick(data, "threshold_value", "thresholdValue"), "threshold_value"),
            threshold_type=ThresholdType(threshold_type) if threshold_type else None,
            priority=int(data.get("priority", 0)),
        )


@dataclass(frozen=True)
class PricingTemplate:
    """A named set of pricing rules plus the tier table they price against."""

    id: str
    name: str
    description: str = ""
    is_active: bool = True
    tiers: tuple[PricingTier, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "PricingTemplate":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            description=data.get("description", ""),
            is_active=_pick(data, "is_active", "isActive", True),
            tiers=tuple(PricingTier.from_dict(t) for t in data.get("tiers", [])),
        )


@dataclass(frozen=True)
class AreaRule:
    """Flat customer/driver amounts for deliveries into a named area."""

    area_name: str
    customer_pays: Decimal
    driver_gets: Decimal
    has_tolls: bool = False
    toll_amount: Decimal = ZERO

    def matches(self, delivery_area: str | None) -> bool:
        if not delivery_area:
            return False
        return self.area_name.strip().casefold() == delivery_area.strip().casefold()

    @classmethod
    def from_dict(cls, data: dict) -> "AreaRule":
        return cls(
            area_name=_pick(data, "area_name", "areaName"),
            customer_pays=_decimal(_pick(data, "customer_pays", "customerPays"), "customer_pays", ValueError),
            driver_gets=_decimal(_pick(data, "driver_gets", "driverGets"), "driver_gets", ValueError),
            has_tolls=_pick(data, "has_tolls", "hasTolls", False),
            toll_amount=_decimal(_pick(data, "toll_amount", "tollAmount", 0), "toll_amount", ValueError),
        )


@dataclass(frozen=True)
class RuleOverride:
    """Client-specific replacement value for a template rule."""

    base_amount: Decimal | None = None
    per_unit_amount: Decimal | None = None
    amount: Decimal | None = None  # bare value, routed by rule kind

    @classmethod
    def from_value(cls, value) -> "RuleOverride":
        if isinstance(value, dict):
            return cls(
                base_amount=_optional_decimal(_pick(value, "base_amount", "baseAmount"), "base_amount"),
                per_unit_amount=_optional_decimal(
                    _pick(value, "per_unit_amount", "perUnitAmount"), "per_unit_amount"
                ),
                amount=_optional_decimal(value.get("amount"), "amount"),
            )
        return cls(amount=_decimal(value, "override amount", ValueError))


@dataclass(frozen=True)
class ClientConfiguration:
    """Per-client override layer on top of one template."""

    id: str
    template_id: str
    client_id: str = ""
    client_name: str = ""
    rule_overrides: dict[str, RuleOverride] = field(default_factory=dict)
    area_rules: tuple[AreaRule, ...] = ()
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "ClientConfiguration":
        overrides = _pick(data, "rule_overrides", "ruleOverrides", {}) or {}
        areas = _pick(data, "area_rules", "areaRules", []) or []
        return cls(
            id=str(data["id"]),
            template_id=str(_pick(data, "template_id", "templateId")),
            client_id=str(_pick(data, "client_id", "clientId", "")),
            client_name=_pick(data, "client_name", "clientName", ""),
            rule_overrides={name: RuleOverride.from_value(v) for name, v in overrides.items()},
            area_rules=tuple(AreaRule.from_dict(a) for a in areas),
            is_active=_pick(data, "is_active", "isActive", True),
        )


# =============================================================================
# INPUT MODEL
# =============================================================================


@dataclass(frozen=True)
class CalculationInput:
    """Order attributes a delivery is priced from."""

    headcount: int
    food_cost: Decimal
    mileage: Decimal
    requires_bridge: bool = False
    number_of_stops: int = 1
    tips: Decimal = ZERO
    adjustments: Decimal = ZERO
    mileage_rate: Decimal = DEFAULT_MILEAGE_RATE
    delivery_area: str | None = None
    # Carried into the history record only
    user_id: str | None = None
    notes: str | None = None

    def snapshot(self) -> dict:
        """Plain JSON-safe copy of the input, used for audit records."""
        return {
            "headcount": self.headcount,
            "food_cost": str(self.food_cost),
            "mileage": str(self.mileage),
            "requires_bridge": self.requires_bridge,
            "number_of_stops": self.number_of_stops,
            "tips": str(self.tips),
            "adjustments": str(self.adjustments),
            "mileage_rate": str(self.mileage_rate),
            "delivery_area": self.delivery_area,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalculationInput":
        if not isinstance(data, dict):
            raise ValidationError("Calculation input must be an object")
        area = _pick(data, "delivery_area", "deliveryArea")
        return cls(
            headcount=_integer(_required(data, "headcount", "headCount"), "headcount"),
            food_cost=_decimal(_required(data, "food_cost", "foodCost"), "food_cost"),
            mileage=_decimal(_required(data, "mileage"), "mileage"),
            requires_bridge=_boolean(_pick(data, "requires_bridge", "requiresBridge", False), "requires_bridge"),
            number_of_stops=_integer(_pick(data, "number_of_stops", "numberOfStops", 1), "number_of_stops"),
            tips=_decimal(_pick(data, "tips", default=0), "tips"),
            adjustments=_decimal(_pick(data, "adjustments", default=0), "adjustments"),
            mileage_rate=_decimal(
                _pick(data, "mileage_rate", "mileageRate", DEFAULT_MILEAGE_RATE), "mileage_rate"
            ),
            delivery_area=str(area) if area is not None else None,
            user_id=_pick(data, "user_id", "userId"),
            notes=data.get("notes"),
        )


# =============================================================================
# STEP RESULT MODELS
# =============================================================================


@dataclass(frozen=True)
class TierResult:
    """Outcome of the tier lookup."""

    rank: int
    customer_base: Decimal
    driver_base: Decimal
    headcount_rank: int
    food_cost_rank: int


@dataclass(frozen=True)
class LineItem:
    rule_name: str
    amount: Decimal
    description: str = ""


@dataclass
class ChargeBreakdown:
    """Itemized totals for one side (customer charges or driver payments)."""

    items: dict[str, Decimal] = field(default_factory=dict)
    descriptions: dict[str, str] = field(default_factory=dict)
    total: Decimal = ZERO
    unresolved: list[str] = field(default_factory=list)
    suppressed: list[str] = field(default_factory=list)

    def add(self, item: LineItem) -> None:
        self.items[item.rule_name] = item.amount
        self.descriptions[item.rule_name] = item.description


@dataclass(frozen=True)
class FlatRate:
    """Area-rule match: fixed amounts that bypass rule evaluation."""

    area_name: str
    customer_pays: Decimal
    driver_gets: Decimal
    toll: Decimal = ZERO


@dataclass(frozen=True)
class EffectiveRules:
    """Template rules after client overrides were merged in."""

    rules: tuple[PricingRule, ...]
    overridden: tuple[str, ...] = ()

    def for_type(self, rule_type: RuleType) -> list[PricingRule]:
        return [r for r in self.rules if r.rule_type == rule_type]


@dataclass
class ProcessingContext:
    """
    Holds all intermediate state during a calculation.
    This is the "bag" that flows through the pipeline.
    """

    # Input (immutable during processing)
    template: PricingTemplate
    template_version: int
    rules: tuple[PricingRule, ...]
    calc_input: CalculationInput
    client_config: ClientConfiguration | None = None

    # Step results (populated as we go)
    tier: TierResult | None = None
    resolution: EffectiveRules | FlatRate | None = None
    customer: ChargeBreakdown = field(default_factory=ChargeBreakdown)
    driver: ChargeBreakdown = field(default_factory=ChargeBreakdown)

    # Final outputs
    profit: Decimal = ZERO
    profit_margin: Decimal = ZERO


# =============================================================================
# OUTPUT / RESULT MODELS
# =============================================================================


@dataclass
class CalculationResult:
    """Final output of a pricing calculation."""

    customer_charges: ChargeBreakdown
    driver_payments: ChargeBreakdown
    profit: Decimal
    profit_margin: Decimal
    template_id: str
    template_version: int
    client_config_id: str | None = None
    area_rule: str | None = None
    tier_rank: int | None = None

    @property
    def unresolved_rules(self) -> list[str]:
        return self.customer_charges.unresolved + self.driver_payments.unresolved

    @property
    def suppressed_items(self) -> list[str]:
        return self.customer_charges.suppressed + self.driver_payments.suppressed


@dataclass(frozen=True)
class CalculationHistory:
    """Immutable audit record written after a successful calculation."""

    template_id: str
    template_version: int
    client_config_id: str | None
    input_snapshot: dict
    result: dict
    customer_total: Decimal
    driver_total: Decimal
    created_at: datetime
    user_id: str | None = None
    notes: str | None = None
