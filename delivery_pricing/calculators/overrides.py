"""
Client Override Resolver

Merges a client configuration on top of a template's rules.
"""

import dataclasses
import logging

from .money import fmt
from ..models import (
    PER_UNIT_RULES,
    ZERO,
    ClientConfiguration,
    EffectiveRules,
    FlatRate,
    PricingRule,
    RuleOverride,
)

logger = logging.getLogger(__name__)


class ClientOverrideResolver:
    """Resolves the effective rule set (or flat rate) for a delivery."""

    def resolve(
        self,
        client_config: ClientConfiguration | None,
        rules: tuple[PricingRule, ...],
        delivery_area: str | None = None,
    ) -> EffectiveRules | FlatRate:
        """
        Apply client-specific pricing on top of template defaults.

        Precedence, highest first:
        1. Area rule matching the delivery area (flat amounts, no rule evaluation)
        2. Rule override keyed by rule name
        3. Template default

        Pure function: the template rules are never mutated.
        """
        if client_config is None:
            return EffectiveRules(rules=tuple(rules))

        area_rule = next((a for a in client_config.area_rules if a.matches(delivery_area)), None)
        if area_rule is not None:
            toll = area_rule.toll_amount if area_rule.has_tolls else ZERO
            logger.info(
                "Area rule '%s' matched for client config %s: customer %s, driver %s, toll %s",
                area_rule.area_name, client_config.id,
                fmt(area_rule.customer_pays), fmt(area_rule.driver_gets), fmt(toll),
            )
            return FlatRate(
                area_name=area_rule.area_name,
                customer_pays=area_rule.customer_pays,
                driver_gets=area_rule.driver_gets,
                toll=toll,
            )

        effective = []
        overridden = []
        for rule in rules:
            override = client_config.rule_overrides.get(rule.rule_name)
            if override is None:
                effective.append(rule)
                continue
            effective.append(self._apply(rule, override))
            overridden.append(rule.rule_name)

        return EffectiveRules(rules=tuple(effective), overridden=tuple(dict.fromkeys(overridden)))

    def _apply(self, rule: PricingRule, override: RuleOverride) -> PricingRule:
        """Return a copy of the rule with override values substituted."""
        changes = {}
        if override.base_amount is not None:
            changes["base_amount"] = override.base_amount
        if override.per_unit_amount is not None:
            changes["per_unit_amount"] = override.per_unit_amount
        if override.amount is not None:
            if rule.rule_name in PER_UNIT_RULES:
                changes["per_unit_amount"] = override.amount
            else:
                changes["base_amount"] = override.amount
        return dataclasses.replace(rule, **changes)
