"""
Output Builder

Constructs the JSON-safe API response from calculation results.
Money is always rendered as fixed-point decimal strings, never floats.
"""

from decimal import Decimal

from .calculators.money import quantize_money
from .models import CalculationHistory, CalculationResult, ChargeBreakdown, ClientConfiguration
from .store import TemplateSnapshot


def to_money(value: Decimal) -> str:
    """Render a Decimal as a 2-place fixed-point string."""
    return format(quantize_money(value), "f")


def to_amount(value: Decimal) -> str:
    """Render an unrounded line item; sub-cent precision is kept when present."""
    if value == quantize_money(value):
        return to_money(value)
    return format(value, "f")


class OutputBuilder:
    """Builds the final output response."""

    def build(self, result: CalculationResult) -> dict:
        """Construct the complete response from a calculation result."""
        return {
            "customer_charges": self._build_side(result.customer_charges),
            "driver_payments": self._build_side(result.driver_payments),
            "profit": to_money(result.profit),
            "profit_margin": to_money(result.profit_margin),
            "metadata": self._build_metadata(result),
        }

    def build_history(self, history: CalculationHistory) -> dict:
        """Construct the response for one history record."""
        return {
            "template_id": history.template_id,
            "template_version": history.template_version,
            "client_config_id": history.client_config_id,
            "user_id": history.user_id,
            "notes": history.notes,
            "input": history.input_snapshot,
            "result": history.result,
            "customer_total": to_money(history.customer_total),
            "driver_total": to_money(history.driver_total),
            "created_at": history.created_at.isoformat(),
        }

    def build_template(self, snapshot: TemplateSnapshot) -> dict:
        """Summary of one published template."""
        template = snapshot.template
        return {
            "id": template.id,
            "name": template.name,
            "description": template.description,
            "is_active": template.is_active,
            "version": snapshot.version,
            "rule_count": len(snapshot.rules),
            "tier_count": len(template.tiers),
        }

    def build_client_config(self, config: ClientConfiguration) -> dict:
        """Summary of one client configuration."""
        return {
            "id": config.id,
            "client_id": config.client_id,
            "client_name": config.client_name,
            "template_id": config.template_id,
            "is_active": config.is_active,
            "overridden_rules": sorted(config.rule_overrides),
            "areas": [
                {
                    "area_name": area.area_name,
                    "customer_pays": to_money(area.customer_pays),
                    "driver_gets": to_money(area.driver_gets),
                    "toll_amount": to_money(area.toll_amount) if area.has_tolls else None,
                }
                for area in config.area_rules
            ],
        }

    def _build_side(self, breakdown: ChargeBreakdown) -> dict:
        return {
            "items": {name: to_amount(value) for name, value in breakdown.items.items()},
            "descriptions": dict(breakdown.descriptions),
            "total": to_money(breakdown.total),
        }

    def _build_metadata(self, result: CalculationResult) -> dict:
        return {
            "template_id": result.template_id,
            "template_version": result.template_version,
            "client_config_id": result.client_config_id,
            "area_rule": result.area_rule,
            "tier": result.tier_rank + 1 if result.tier_rank is not None else None,
            "unresolved_rules": result.unresolved_rules,
            "suppressed_items": result.suppressed_items,
        }
